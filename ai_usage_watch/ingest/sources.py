"""
File discovery and raw reads for usage logs.
"""

import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


def discover_log_files(roots: Iterable[Path], pattern: str = "*.jsonl") -> List[str]:
    """Recursively list log files under each existing root.

    Missing roots are optional data sources and are skipped silently.

    Args:
        roots: Directories to search
        pattern: Glob pattern for file names

    Returns:
        Sorted, de-duplicated list of file paths
    """
    found = set()
    for root in roots:
        root = Path(root).expanduser()
        if not root.is_dir():
            logger.debug("Skipping missing data directory %s", root)
            continue
        try:
            found.update(str(path) for path in root.rglob(pattern) if path.is_file())
        except OSError as e:
            logger.warning("Failed to scan %s: %s", root, e)
    return sorted(found)


def read_file_bytes(path: str) -> bytes:
    """Full current content of ``path``.

    Raises:
        OSError: If the file cannot be opened or read
    """
    with open(path, "rb") as f:
        return f.read()
