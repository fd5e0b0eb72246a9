"""
Jungian Mirror — Session Signals
Named callbacks the control surface subscribes to.

Signals:
    effect_changed(effect_id, name, description)
    effect_previewed(effect_id)       -- cosmetic spin tick
    spin_started() / spin_ended()
    recording_started() / recording_ended()
    recording_failed(error)
"""

import logging

logger = logging.getLogger(__name__)

SIGNALS = (
    "effect_changed",
    "effect_previewed",
    "spin_started",
    "spin_ended",
    "recording_started",
    "recording_ended",
    "recording_failed",
)


class EventHub:
    def __init__(self):
        self._handlers = {name: [] for name in SIGNALS}

    def on(self, name: str, callback):
        if name not in self._handlers:
            raise ValueError(f"Unknown signal: {name}. Available: {', '.join(SIGNALS)}")
        self._handlers[name].append(callback)
        return callback

    def off(self, name: str, callback):
        handlers = self._handlers.get(name, [])
        if callback in handlers:
            handlers.remove(callback)

    def emit(self, name: str, *args):
        # A broken observer must not break the render/capture timeline
        for callback in list(self._handlers[name]):
            try:
                callback(*args)
            except Exception:
                logger.exception("Handler for '%s' failed", name)
