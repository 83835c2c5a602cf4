"""Named events raised from inside the frame callback.

The scheduler emits ``"trigger"``, ``"angle"`` and ``"mode"``; the session
emits ``"trigger"`` and ``"scale"``. Emission happens mid-frame, so
listeners are plain functions called in place: coroutine functions are
refused when registered, and a listener that raises is logged without
aborting the frame.
"""

import asyncio
import logging
import typing


CallbackType = typing.Callable[..., typing.Any]

logger = logging.getLogger(__name__)


class EventEmitter:

	"""Per-event listener lists, called in registration order."""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.

		Raises ``TypeError`` for coroutine functions, which the frame loop cannot await.
		"""

		if asyncio.iscoroutinefunction(callback):
			raise TypeError(f"Listener for {event_name!r} must not be a coroutine function")

		self._listeners.setdefault(event_name, []).append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		listeners = self._listeners.get(event_name, [])

		if callback not in listeners:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		listeners.remove(callback)


	def listener_count (self, event_name: str) -> int:

		return len(self._listeners.get(event_name, []))


	def emit_sync (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""Call every listener for ``event_name`` now."""

		# Copy: a listener may unregister itself while we iterate.
		for callback in list(self._listeners.get(event_name, [])):

			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")
