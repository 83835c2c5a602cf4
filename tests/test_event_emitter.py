import logging

import pytest

import polyphactory.event_emitter


def test_on_and_emit_sync () -> None:

	"""Registered sync callbacks are called on emit_sync."""

	emitter = polyphactory.event_emitter.EventEmitter()
	received: list[float] = []

	emitter.on("angle", lambda v: received.append(v))
	emitter.emit_sync("angle", 90.0)

	assert received == [90.0]


def test_listeners_run_in_registration_order () -> None:

	"""Listeners for one event run in the order they were added."""

	emitter = polyphactory.event_emitter.EventEmitter()
	order: list[str] = []

	emitter.on("trigger", lambda: order.append("engine"))
	emitter.on("trigger", lambda: order.append("osc"))
	emitter.emit_sync("trigger")

	assert order == ["engine", "osc"]


def test_off_only_removes_target_callback () -> None:

	"""off() leaves other callbacks for the same event intact."""

	emitter = polyphactory.event_emitter.EventEmitter()
	a: list[int] = []
	b: list[int] = []

	def cb_a (v: int) -> None:
		a.append(v)

	def cb_b (v: int) -> None:
		b.append(v)

	emitter.on("trigger", cb_a)
	emitter.on("trigger", cb_b)
	emitter.off("trigger", cb_a)
	emitter.emit_sync("trigger", 7)

	assert a == []
	assert b == [7]


def test_off_raises_for_unregistered_callback () -> None:

	"""off() raises ValueError when the callback was never registered."""

	emitter = polyphactory.event_emitter.EventEmitter()

	with pytest.raises(ValueError, match="trigger"):
		emitter.off("trigger", lambda: None)


def test_failing_listener_does_not_stop_others (caplog: pytest.LogCaptureFixture) -> None:

	"""A listener that raises is logged and the remaining listeners still run."""

	emitter = polyphactory.event_emitter.EventEmitter()
	received: list[int] = []

	def broken (v: int) -> None:
		raise RuntimeError("boom")

	emitter.on("trigger", broken)
	emitter.on("trigger", lambda v: received.append(v))

	with caplog.at_level(logging.ERROR):
		emitter.emit_sync("trigger", 3)

	assert received == [3]
	assert "trigger" in caplog.text


def test_coroutine_listeners_are_refused () -> None:

	"""Listeners run inside the frame callback, so coroutine functions cannot be registered."""

	emitter = polyphactory.event_emitter.EventEmitter()

	async def slow (v: str) -> None:
		pass

	with pytest.raises(TypeError):
		emitter.on("scale", slow)

	assert emitter.listener_count("scale") == 0


def test_listener_may_remove_itself () -> None:

	"""A listener that unregisters itself mid-emit does not disturb the others."""

	emitter = polyphactory.event_emitter.EventEmitter()
	received: list[str] = []

	def once (name: str) -> None:
		received.append(f"once {name}")
		emitter.off("scale", once)

	emitter.on("scale", once)
	emitter.on("scale", lambda name: received.append(f"always {name}"))

	emitter.emit_sync("scale", "Minor")
	emitter.emit_sync("scale", "Dorian")

	assert received == ["once Minor", "always Minor", "always Dorian"]
	assert emitter.listener_count("scale") == 1
