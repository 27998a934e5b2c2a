from __future__ import annotations

from PySide6.QtCore import QObject, Signal

from calculatorcore.controller.bus import ChangeBus
from calculatorcore.model.state import Topic


class Store(QObject):
    """Re-emits change bus topics as Qt signals for panel/display sync."""
    value_changed = Signal(str)
    memory_changed = Signal(float)
    history_updated = Signal(object)
    state_reset = Signal(object)

    def __init__(self, bus: ChangeBus, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.bus = bus
        self._routes = {
            Topic.VALUE_CHANGED: self._on_value_changed,
            Topic.MEMORY_CHANGED: self._on_memory_changed,
            Topic.HISTORY_UPDATED: self._on_history_updated,
            Topic.STATE_RESET: self._on_state_reset,
        }
        for topic, handler in self._routes.items():
            self.bus.subscribe(topic, handler)

    def detach(self) -> None:
        """Stop forwarding; signals stay connected but go quiet."""
        for topic, handler in self._routes.items():
            self.bus.unsubscribe(topic, handler)

    def _on_value_changed(self, value: str) -> None:
        self.value_changed.emit(value)

    def _on_memory_changed(self, value: float) -> None:
        self.memory_changed.emit(float(value))

    def _on_history_updated(self, log: object) -> None:
        self.history_updated.emit(log)

    def _on_state_reset(self, prior: object) -> None:
        self.state_reset.emit(prior)
