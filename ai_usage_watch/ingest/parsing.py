"""
Decoding of usage log lines.

Turns one JSON line of the tool's conversation log into a validated
UsageRecord.
"""

import json
from typing import Any, Dict, Optional

from ai_usage_watch.core.clock import parse_timestamp
from ai_usage_watch.storage.models import UsageRecord

USAGE_LINE_TYPE = "assistant"


class MalformedLineError(ValueError):
    """Raised when a line is not a JSON object."""


def decode_line(line: str) -> Optional[Dict[str, Any]]:
    """Decode a log line into the raw usage shape.

    Args:
        line: One line of a ``.jsonl`` log

    Returns:
        Raw usage mapping, or None when the line is valid JSON but not a
        usage line (user messages, summaries, tool results)

    Raises:
        MalformedLineError: If the line is not a JSON object
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedLineError(f"invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedLineError("line is not a JSON object")

    if data.get("type") != USAGE_LINE_TYPE:
        return None
    message = data.get("message")
    if not isinstance(message, dict):
        return None
    usage = message.get("usage")
    model = message.get("model")
    if not isinstance(usage, dict) or not model:
        return None

    return {
        "timestamp": data.get("timestamp"),
        "session_id": data.get("sessionId"),
        "request_id": data.get("requestId"),
        "model": model,
        "usage": usage,
        "cost": data.get("costUSD", data.get("cost")),
        "is_batch_api": data.get("isBatchAPI", False),
    }


def build_record(raw: Dict[str, Any]) -> UsageRecord:
    """Validate a raw usage mapping into a UsageRecord.

    A missing ``requestId`` falls back to ``"{sessionId}-{timestamp}"``.

    Raises:
        ValueError: If the raw mapping fails schema validation
    """
    timestamp = raw.get("timestamp")
    if not isinstance(timestamp, str):
        raise ValueError("timestamp must be an ISO-8601 string")
    parsed = parse_timestamp(timestamp)

    conversation_id = raw.get("session_id") or "unknown"
    request_id = raw.get("request_id") or f"{conversation_id}-{timestamp}"

    usage = raw["usage"]
    prompt_tokens = usage.get("input_tokens") or 0
    completion_tokens = usage.get("output_tokens") or 0
    if isinstance(prompt_tokens, bool) or isinstance(completion_tokens, bool):
        raise ValueError("token counts must be numbers")
    try:
        total_tokens = prompt_tokens + completion_tokens
    except TypeError as e:
        raise ValueError("token counts must be numbers") from e

    is_batch_api = raw.get("is_batch_api", False)
    if not isinstance(is_batch_api, bool):
        raise ValueError("isBatchAPI must be a boolean")

    return UsageRecord(
        timestamp=parsed,
        conversation_id=str(conversation_id),
        request_id=str(request_id),
        model=str(raw["model"]),
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        cache_creation_tokens=usage.get("cache_creation_input_tokens"),
        cache_read_tokens=usage.get("cache_read_input_tokens"),
        cost=raw.get("cost"),
        is_batch_api=is_batch_api,
    )
