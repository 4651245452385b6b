"""Adapter power-state monitor."""

from __future__ import annotations

import logging
from collections.abc import Callable

from blelink.core.model import AdapterState
from blelink.transports.base import BLEStack, Subscription

LOGGER = logging.getLogger(__name__)

AdapterListener = Callable[[AdapterState], None]


class AdapterMonitor:
    """Tracks the radio power state and fans changes out to listeners.

    The stack delivers the current state at subscribe time, so a listener
    registered before `start` sees the initial state too.
    """

    def __init__(self, stack: BLEStack) -> None:
        self._stack = stack
        self._subscription: Subscription | None = None
        self._listeners: list[AdapterListener] = []
        self.state = AdapterState.UNKNOWN

    @property
    def powered_on(self) -> bool:
        return self.state is AdapterState.POWERED_ON

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def add_listener(self, listener: AdapterListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def start(self) -> None:
        if self.subscribed:
            return
        self._subscription = self._stack.subscribe_adapter_state(self._on_state)

    def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.remove()

    def reset(self) -> None:
        self.stop()
        self.state = AdapterState.UNKNOWN

    def _on_state(self, state: AdapterState) -> None:
        previous, self.state = self.state, AdapterState(state)
        if previous is not self.state:
            LOGGER.info("Adapter state %s -> %s", previous.value, self.state.value)
        for listener in list(self._listeners):
            listener(self.state)
