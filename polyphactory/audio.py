"""A scheduled audio context with the shape of a real-time audio subsystem.

The voice engine builds note voices from oscillators, gains, filters and
panners, and drives their parameters with future-timestamped automation.
:class:`ScheduledAudioContext` implements that interface in-process: it keeps
every connection and automation event, so the exact sounding schedule of a
voice can be inspected with :meth:`AudioParam.value_at` and
:meth:`AudioSourceNode.is_sounding`.

Automation events on a parameter must be added in time order. A ramp
interpolates from the previous event's time and value, as in Web Audio.
"""

import logging
import math
import time
import typing

import polyphactory.errors


logger = logging.getLogger(__name__)


OSCILLATOR_TYPES: typing.Tuple[str, ...] = ("sine", "square", "sawtooth", "triangle", "custom")
FILTER_TYPES: typing.Tuple[str, ...] = ("lowpass", "highpass", "bandpass", "notch")

SUSPENDED = "suspended"
RUNNING = "running"
CLOSED = "closed"


class InvalidStateError (RuntimeError):

	"""A source was started or stopped at a point where that is not allowed."""


Destination = typing.Union["AudioNode", "AudioParam"]
NodeT = typing.TypeVar("NodeT", bound="AudioNode")


class AudioParam:

	"""A node parameter with an automation timeline."""

	def __init__ (self, name: str, default: float, min_value: float = -math.inf, max_value: float = math.inf) -> None:

		self.name = name
		self.default = default
		self.min_value = min_value
		self.max_value = max_value
		self._value = default
		self._events: typing.List[typing.Tuple[float, str, float]] = []
		self.inputs: typing.List["AudioNode"] = []


	@property
	def value (self) -> float:

		"""The static value used before the first automation event."""

		return self._value

	@value.setter
	def value (self, new_value: float) -> None:

		self._value = self._clamp(new_value)


	@property
	def events (self) -> typing.List[typing.Tuple[float, str, float]]:

		"""Scheduled ``(time, kind, value)`` events, ``kind`` being ``"set"`` or ``"ramp"``."""

		return list(self._events)


	def set_value_at_time (self, value: float, start_time: float) -> "AudioParam":

		"""Jump to ``value`` at ``start_time``."""

		self._append(start_time, "set", value)
		return self


	def linear_ramp_to_value_at_time (self, value: float, end_time: float) -> "AudioParam":

		"""Ramp linearly from the previous event to ``value``, arriving at ``end_time``."""

		self._append(end_time, "ramp", value)
		return self


	def cancel_scheduled_values (self, cancel_time: float) -> "AudioParam":

		"""Drop every event at or after ``cancel_time``."""

		self._events = [event for event in self._events if event[0] < cancel_time]
		return self


	def value_at (self, when: float) -> float:

		"""Evaluate the automation timeline at ``when`` (modulating inputs are not included)."""

		current_time: typing.Optional[float] = None
		current_value = self._value

		for event_time, kind, value in self._events:

			if event_time <= when:
				current_time = event_time
				current_value = value
				continue

			if kind == "ramp":
				start_time = current_time if current_time is not None else 0.0
				span = event_time - start_time
				if span <= 0:
					return value
				fraction = (when - start_time) / span
				return current_value + (value - current_value) * max(0.0, fraction)

			break

		return current_value


	def _append (self, when: float, kind: str, value: float) -> None:

		if not math.isfinite(when) or not math.isfinite(value):
			raise ValueError(f"{self.name}: automation time and value must be finite (got {when!r}, {value!r})")

		if self._events and when < self._events[-1][0]:
			raise ValueError(
				f"{self.name}: automation event at {when:.6f} precedes the previous event at {self._events[-1][0]:.6f}"
			)

		self._events.append((when, kind, self._clamp(value)))

	def _clamp (self, value: float) -> float:

		return max(self.min_value, min(self.max_value, float(value)))


class AudioNode:

	"""A processing stage that can be wired into the graph."""

	def __init__ (self, context: "ScheduledAudioContext") -> None:

		self.context = context
		self.outputs: typing.List[Destination] = []


	def connect (self, destination: Destination) -> Destination:

		"""Route this node's output into another node or into a parameter."""

		self.outputs.append(destination)

		if isinstance(destination, AudioParam):
			destination.inputs.append(self)

		return destination


	def disconnect (self) -> None:

		"""Remove every outgoing connection."""

		for destination in self.outputs:
			if isinstance(destination, AudioParam) and self in destination.inputs:
				destination.inputs.remove(self)

		self.outputs = []


class AudioDestinationNode (AudioNode):

	"""The context's final output."""


class GainNode (AudioNode):

	def __init__ (self, context: "ScheduledAudioContext") -> None:

		super().__init__(context)
		self.gain = AudioParam("gain", 1.0)


class BiquadFilterNode (AudioNode):

	def __init__ (self, context: "ScheduledAudioContext") -> None:

		super().__init__(context)
		self._type = "lowpass"
		self.frequency = AudioParam("frequency", 350.0, 0.0, context.sample_rate / 2)
		self.Q = AudioParam("Q", 1.0, 0.0001, 1000.0)


	@property
	def type (self) -> str:

		return self._type

	@type.setter
	def type (self, filter_type: str) -> None:

		if filter_type not in FILTER_TYPES:
			raise ValueError(f"Unknown filter type: {filter_type!r}")

		self._type = filter_type


class StereoPannerNode (AudioNode):

	def __init__ (self, context: "ScheduledAudioContext") -> None:

		super().__init__(context)
		self.pan = AudioParam("pan", 0.0, -1.0, 1.0)


class AudioSourceNode (AudioNode):

	"""A node that produces signal between a start and a stop time."""

	def __init__ (self, context: "ScheduledAudioContext") -> None:

		super().__init__(context)
		self.start_time: typing.Optional[float] = None
		self.stop_time: typing.Optional[float] = None


	def start (self, when: typing.Optional[float] = None) -> None:

		"""Begin producing signal at ``when`` (default: now). A source can start only once."""

		if self.start_time is not None:
			raise InvalidStateError("Source has already been started")

		self.start_time = self.context.current_time if when is None else when


	def stop (self, when: typing.Optional[float] = None) -> None:

		"""Stop producing signal at ``when`` (default: now).

		Raises:
			InvalidStateError: If the source was never started or has already ended.
		"""

		if self.start_time is None:
			raise InvalidStateError("Source has not been started")

		now = self.context.current_time

		if self.has_ended(now):
			raise InvalidStateError("Source has already ended")

		self.stop_time = now if when is None else max(when, self.start_time)


	def has_ended (self, when: float) -> bool:

		"""True once the stop time has passed."""

		return self.stop_time is not None and when >= self.stop_time


	def is_sounding (self, when: float) -> bool:

		"""True between the start time (inclusive) and the stop time (exclusive)."""

		if self.start_time is None or when < self.start_time:
			return False

		return not self.has_ended(when)


class OscillatorNode (AudioSourceNode):

	def __init__ (self, context: "ScheduledAudioContext") -> None:

		super().__init__(context)
		self._type = "sine"
		self.frequency = AudioParam("frequency", 440.0, -context.sample_rate / 2, context.sample_rate / 2)
		self.detune = AudioParam("detune", 0.0)
		self.wavetable: typing.Tuple[float, ...] = ()


	@property
	def type (self) -> str:

		return self._type

	@type.setter
	def type (self, wave_type: str) -> None:

		if wave_type not in OSCILLATOR_TYPES or wave_type == "custom":
			raise ValueError(f"Oscillator type must be one of {OSCILLATOR_TYPES[:-1]}, got {wave_type!r}")

		self._type = wave_type


	def set_periodic_wave (self, table: typing.Sequence[float]) -> None:

		"""Play one cycle of ``table`` per period. Switches the type to ``"custom"``."""

		if len(table) < 2:
			raise ValueError("A periodic wave needs at least two samples")

		self.wavetable = tuple(table)
		self._type = "custom"


class ScheduledAudioContext:

	"""Creates nodes and owns the audio clock.

	Parameters:
		clock: Monotonic seconds source. The context's ``current_time`` is measured from
			the clock value at construction.
		sample_rate: Nominal sample rate, used for parameter ranges.
		state: Initial state, ``"running"`` or ``"suspended"``.
	"""

	def __init__ (
		self,
		clock: typing.Callable[[], float] = time.perf_counter,
		sample_rate: int = 44100,
		state: str = RUNNING
	) -> None:

		if state not in (RUNNING, SUSPENDED):
			raise ValueError(f"Initial state must be {RUNNING!r} or {SUSPENDED!r}")

		self._clock = clock
		self._origin = clock()
		self.sample_rate = sample_rate
		self.state = state
		self.destination = AudioDestinationNode(self)
		self.nodes_created = 0


	@property
	def current_time (self) -> float:

		return self._clock() - self._origin


	def resume (self) -> None:

		if self.state == CLOSED:
			raise polyphactory.errors.ResourceError("Audio context is closed")

		if self.state != RUNNING:
			self.state = RUNNING
			logger.info("Audio context resumed")


	def suspend (self) -> None:

		if self.state == RUNNING:
			self.state = SUSPENDED
			logger.info("Audio context suspended")


	def close (self) -> None:

		self.state = CLOSED
		logger.info("Audio context closed")


	def create_oscillator (self) -> OscillatorNode:

		return self._register(OscillatorNode(self))

	def create_gain (self) -> GainNode:

		return self._register(GainNode(self))

	def create_biquad_filter (self) -> BiquadFilterNode:

		return self._register(BiquadFilterNode(self))

	def create_stereo_panner (self) -> StereoPannerNode:

		return self._register(StereoPannerNode(self))


	def _register (self, node: NodeT) -> NodeT:

		if self.state == CLOSED:
			raise polyphactory.errors.ResourceError("Cannot create nodes on a closed audio context")

		self.nodes_created += 1
		return node
