"""
Identity deduplication window.

Guarantees each request id is admitted at most once within a bounded horizon.
"""

import logging
from typing import Dict

logger = logging.getLogger(__name__)


class IdentityWindow:
    """Capacity-bounded set of admitted request ids.

    Admission order is tracked by dict insertion order. When the window
    grows past ``capacity`` it keeps only the most recently admitted
    ``capacity // 2`` ids, so an id older than that horizon may be admitted
    again.
    """

    def __init__(self, capacity: int = 10000):
        if capacity < 2:
            raise ValueError("capacity must be >= 2")
        self.capacity = capacity
        self._ids: Dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._ids

    def admit(self, request_id: str) -> bool:
        """Record ``request_id`` if it has not been seen.

        Args:
            request_id: Identity of the record

        Returns:
            True if the id is new and was recorded, False if it is a duplicate
        """
        if request_id in self._ids:
            return False
        self._ids[request_id] = None
        if len(self._ids) > self.capacity:
            self.trim(self.capacity)
        return True

    def trim(self, capacity: int) -> None:
        """Enforce the capacity ceiling.

        Does nothing while the window holds ``capacity`` ids or fewer;
        otherwise keeps the ``capacity // 2`` most recently admitted.

        Args:
            capacity: Ceiling to enforce
        """
        if len(self._ids) <= capacity:
            return
        keep = capacity // 2
        retained = list(self._ids)[-keep:] if keep else []
        logger.debug("Trimming identity window from %d to %d ids", len(self._ids), len(retained))
        self._ids = dict.fromkeys(retained)

    def release(self, request_id: str) -> None:
        """Forget an admitted id whose record could not be aggregated."""
        self._ids.pop(request_id, None)

    def clear(self) -> None:
        self._ids.clear()
