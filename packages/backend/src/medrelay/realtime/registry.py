"""Subscription registry — one per session.

Learn: Maps subscription id → cancellation handle of a live query. The
registry owns each handle's lifecycle: an entry is always removed from
the map BEFORE its handle runs, so a handle can never be invoked twice
and nothing iterating the registry sees a cancelled subscription.

Ids are unique within the owning session only; two sessions may hand
out the same id independently.
"""

import secrets
from typing import Callable, Iterator, Optional

import structlog

from medrelay.store.base import CancelHandle

logger = structlog.get_logger()


def new_subscription_id() -> str:
    return secrets.token_urlsafe(12)


class SubscriptionRegistry:
    """Per-session map of live subscriptions."""

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self._handles: dict[str, CancelHandle] = {}
        self._new_id = id_factory or new_subscription_id

    def add(self, handle: CancelHandle) -> str:
        """Register a cancellation handle under a fresh id."""
        sid = self._new_id()
        while sid in self._handles:
            sid = self._new_id()
        self._handles[sid] = handle
        return sid

    def remove_and_cancel(self, sid: str) -> bool:
        """Cancel one subscription. Unknown ids are a no-op (returns False)."""
        handle = self._handles.pop(sid, None)
        if handle is None:
            return False
        handle()
        return True

    def cancel_all(self) -> int:
        """Cancel every subscription; a failing handle does not stop the rest.

        Returns the number of handles that were invoked.
        """
        cancelled = 0
        while self._handles:
            sid, handle = self._handles.popitem()
            cancelled += 1
            try:
                handle()
            except Exception:
                logger.exception("subscriptions.cancel_failed", sid=sid)
        return cancelled

    def __contains__(self, sid: object) -> bool:
        return sid in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._handles))
