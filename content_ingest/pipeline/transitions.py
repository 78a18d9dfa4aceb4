"""
Status Transitions
==================
Legal status edges for a content row and a guard that applies them.

The persisted ``status`` column is the only record of pipeline progress.
Every change goes through ``StatusGuard.advance``, which checks the edge
and then performs a compare-and-set update, so duplicate deliveries and
racing handlers resolve to exactly one winner.
"""

from typing import Any, Dict, FrozenSet, Iterable

from ..core.exceptions import InvalidTransitionError
from ..core.logging_config import get_logger
from ..storage.models import ContentStatus
from ..storage.repositories import ContentRepository

logger = get_logger(__name__)

PENDING = ContentStatus.PENDING.value
TRANSCRIBING = ContentStatus.TRANSCRIBING.value
ANALYZING = ContentStatus.ANALYZING.value
COMPLETE = ContentStatus.COMPLETE.value
ERROR = ContentStatus.ERROR.value
BLOCKED = ContentStatus.BLOCKED.value

# Forward edges taken by the pipeline itself
FORWARD_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({TRANSCRIBING, ANALYZING, BLOCKED, ERROR}),
    TRANSCRIBING: frozenset({ANALYZING, BLOCKED, ERROR}),
    ANALYZING: frozenset({COMPLETE, ERROR, BLOCKED}),
    COMPLETE: frozenset(),
    ERROR: frozenset(),
    BLOCKED: frozenset(),
}

# Operator-triggered retry edges; a transcribing row qualifies only while it
# has no vendor correlation ID (its submission never completed)
RETRYABLE_STATUSES: FrozenSet[str] = frozenset({PENDING, TRANSCRIBING, BLOCKED, ERROR})
RETRY_TARGETS: FrozenSet[str] = frozenset({PENDING, ANALYZING})


def is_legal(from_status: str, to_status: str, retry: bool = False) -> bool:
    if retry:
        return from_status in RETRYABLE_STATUSES and to_status in RETRY_TARGETS
    return to_status in FORWARD_TRANSITIONS.get(from_status, frozenset())


class StatusGuard:
    """Validates and applies status transitions for content rows."""

    def __init__(self, contents: ContentRepository):
        self.contents = contents

    async def advance(
        self,
        content_id: str,
        from_statuses: Iterable[str],
        to_status: str,
        retry: bool = False,
        **values: Any,
    ) -> bool:
        """
        Move ``content_id`` to ``to_status`` if it is currently in one of
        ``from_statuses``.

        Args:
            content_id: Content row to update
            from_statuses: Statuses the row is expected to be in
            to_status: Target status
            retry: Validate against the operator retry edges instead
            **values: Extra columns written in the same statement

        Returns:
            bool: True if this call won the transition; False if the row
            had already moved on (a no-op, not an error)

        Raises:
            InvalidTransitionError: If any expected edge is not legal
        """
        from_statuses = tuple(from_statuses)
        for from_status in from_statuses:
            if not is_legal(from_status, to_status, retry=retry):
                raise InvalidTransitionError(content_id, from_status, to_status)

        applied = await self.contents.transition(
            content_id, from_statuses, to_status, **values
        )
        if applied:
            logger.debug(
                f"Content {content_id}: {'/'.join(from_statuses)} -> {to_status}",
                extra={"content_id": content_id},
            )
        else:
            logger.info(
                f"Content {content_id} not in {'/'.join(from_statuses)}; "
                f"skipping transition to {to_status}",
                extra={"content_id": content_id},
            )
        return applied
