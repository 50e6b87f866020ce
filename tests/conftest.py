"""
Shared fixtures for usage log tests.
"""

import json
from datetime import datetime, timezone
from typing import Optional

import pytest

from ai_usage_watch.storage.models import UsageRecord

SONNET = "claude-sonnet-4-20250514"
OPUS = "claude-opus-4-20250514"

# Wednesday, so the week started two days earlier
NOW = datetime(2024, 6, 12, 15, 30, tzinfo=timezone.utc)


def usage_line(
    request_id: Optional[str] = "req_1",
    timestamp: str = "2024-06-12T15:00:00Z",
    session_id: str = "sess_1",
    model: str = SONNET,
    input_tokens=100,
    output_tokens=50,
    **extra,
) -> str:
    """Serialize one assistant usage line as the logging tool writes it."""
    data = {
        "type": "assistant",
        "timestamp": timestamp,
        "sessionId": session_id,
        "message": {
            "model": model,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        },
    }
    if request_id is not None:
        data["requestId"] = request_id
    data.update(extra)
    return json.dumps(data)


def make_record(
    request_id: str = "req_1",
    timestamp: datetime = NOW,
    conversation_id: str = "conv_1",
    model: str = SONNET,
    prompt_tokens=100,
    completion_tokens=50,
    cost=None,
    **kwargs,
) -> UsageRecord:
    return UsageRecord(
        timestamp=timestamp,
        conversation_id=conversation_id,
        request_id=request_id,
        model=model,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        cost=cost,
        **kwargs,
    )


def write_lines(path, lines, mode: str = "w") -> None:
    with open(path, mode, encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


@pytest.fixture
def data_dir(tmp_path):
    """A project directory laid out like the tool's log root."""
    root = tmp_path / "projects"
    (root / "project-a").mkdir(parents=True)
    return root
