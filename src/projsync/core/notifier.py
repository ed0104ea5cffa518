"""Change fan-out to external subscribers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from projsync.core.project_model import ProjectModel

logger = logging.getLogger(__name__)

ChangeSubscriber: TypeAlias = Callable[["ProjectModel"], None]


class ChangeNotifier:
    """Notify subscribers whenever a model's observable fields may have changed.

    Subscribers must tolerate being called when nothing actually changed.
    A subscriber that raises is logged and does not stop the fan-out.
    """

    def __init__(self) -> None:
        self._subscribers: list[ChangeSubscriber] = []
        self._notifications = 0

    def subscribe(self, subscriber: ChangeSubscriber) -> Callable[[], None]:
        """Register ``subscriber``; return a callable that removes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def notify(self, model: ProjectModel) -> None:
        self._notifications += 1
        for subscriber in list(self._subscribers):
            try:
                subscriber(model)
            except Exception:  # noqa: BLE001
                logger.exception("Change subscriber %r failed for %s", subscriber, model)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def notification_count(self) -> int:
        return self._notifications
