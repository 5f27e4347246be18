"""Identity and timestamp generation for local-only entities.

When no remote store is configured, entities get surrogate ids of the
form ``local-<epoch-ms>-<counter>``. The prefix makes them visually
distinct from store-issued UUIDs, so any later code path can tell from
the id alone which synchronization branch produced an entity.

One IdentityGenerator lives for one session; tests construct their own
and may reset or seed the counter and inject a fixed clock.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timezone

LOCAL_ID_PREFIX = "local-"

_LOCAL_ID_RE = re.compile(r"^local-\d+-\d+$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_local_id(entity_id: str) -> bool:
    """Return True if ``entity_id`` was minted by an IdentityGenerator."""
    return bool(_LOCAL_ID_RE.match(entity_id))


class IdentityGenerator:
    """Session-scoped generator of local ids and ISO timestamps.

    Generation is synchronous and never fails. The counter is strictly
    increasing, so ids are unique for the generator's lifetime even when
    the clock does not advance between calls.

    Args:
        clock: Callable returning the current aware datetime. Defaults to UTC now.
        start: Initial counter value; the first id uses ``start + 1``.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None, start: int = 0) -> None:
        self._clock = clock or _utc_now
        self._counter = start

    def new_id(self) -> str:
        self._counter += 1
        epoch_ms = int(self._clock().timestamp() * 1000)
        return f"{LOCAL_ID_PREFIX}{epoch_ms}-{self._counter}"

    def now(self) -> str:
        """Wall-clock time at call, ISO-8601 formatted."""
        return self._clock().isoformat()

    def reset(self, start: int = 0) -> None:
        self._counter = start
