# app/services/subscriptions.py
"""In-process live-query subscriptions over the issue registry.

Subscribers receive a full replacement snapshot, never a diff: the whole
issue list for "all" / "reporter" subscriptions, or the single issue (or
``None`` once it is gone) for "one".
"""
import logging
import threading
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Optional

from app.core.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

ALL = "all"
REPORTER = "reporter"
ONE = "one"

_ids = count(1)


@dataclass(eq=False)
class Subscription:
    kind: str
    key: Optional[str]
    callback: Callable[[Any], None]
    on_error: Optional[Callable[[Exception], None]] = None
    id: int = field(default_factory=lambda: next(_ids))
    active: bool = True
    # held across a callback and by cancel()
    lock: Any = field(default_factory=threading.RLock, repr=False)

    def wants(self, issue_id: Optional[str], reporter_id: Optional[str]) -> bool:
        if self.kind == ALL:
            return True
        if self.kind == REPORTER:
            return reporter_id is None or self.key == reporter_id
        return issue_id is None or self.key == issue_id

    def cancel(self) -> None:
        with self.lock:
            self.active = False


class SubscriptionHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._subs: list[Subscription] = []

    def add(self, sub: Subscription) -> Callable[[], None]:
        with self._lock:
            self._subs.append(sub)

        def unsubscribe() -> None:
            sub.cancel()
            with self._lock:
                if sub in self._subs:
                    self._subs.remove(sub)

        return unsubscribe

    def matching(self, issue_id: Optional[str] = None, reporter_id: Optional[str] = None) -> list[Subscription]:
        with self._lock:
            return [s for s in self._subs if s.active and s.wants(issue_id, reporter_id)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)

    def clear(self) -> None:
        with self._lock:
            subs, self._subs = self._subs, []
        for s in subs:
            s.cancel()


def deliver(sub: Subscription, load_snapshot: Callable[[], Any]) -> None:
    """Load a fresh snapshot and hand it to ``sub`` unless it was cancelled meanwhile.

    Once ``unsubscribe()`` returns, no callback of that subscription runs,
    whichever thread delivers.
    """
    try:
        snapshot = load_snapshot()
    except UpstreamUnavailableError as e:
        logger.warning("Snapshot load failed for subscription %s (%s): %s", sub.id, sub.kind, e)
        with sub.lock:
            if sub.on_error and sub.active:
                sub.on_error(e)
        return
    with sub.lock:
        if not sub.active:
            return
        try:
            sub.callback(snapshot)
        except Exception:
            logger.exception("Subscriber %s callback raised", sub.id)


hub = SubscriptionHub()
