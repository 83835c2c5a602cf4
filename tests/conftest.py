import typing

import mido
import pytest


class FakeMidiOut:

	"""Minimal MIDI output stub for tests. Keeps every message it is sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False


	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.sent.append(message)


	def close (self) -> None:

		"""Mark the fake device closed."""

		self.closed = True


class FakeClock:

	"""A settable monotonic clock. Call it to read the time; assign ``now`` to move it."""

	def __init__ (self, start: float = 0.0) -> None:

		self.now = start


	def __call__ (self) -> float:

		return self.now


	def advance (self, seconds: float) -> float:

		self.now += seconds
		return self.now


# Module-level reference so tests can inspect the most recently opened FakeMidiOut.
_current_fake_output: typing.Optional[FakeMidiOut] = None


def _fake_get_output_names () -> typing.List[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	fake = FakeMidiOut()
	_current_fake_output = fake
	return fake


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def clock () -> FakeClock:

	"""A fake clock starting at 0.0 seconds."""

	return FakeClock()
