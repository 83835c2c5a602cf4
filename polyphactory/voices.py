"""Note voices: one bounded-lifetime signal chain per trigger.

:class:`VoiceEngine` turns a pitch into a voice graph, writes an ADSR
envelope against a single start time, starts the sources, and keeps the
voice in a live registry until its release tail has passed. Expired voices
are released by :meth:`VoiceEngine.collect`, which the host calls every
frame; :meth:`VoiceEngine.stop_all_voices` silences everything at once.
"""

import dataclasses
import heapq
import itertools
import logging
import typing

import polyphactory.audio
import polyphactory.constants
import polyphactory.errors
import polyphactory.scales
import polyphactory.voice_graph

from polyphactory.synth_settings import Envelope, SynthSettings


logger = logging.getLogger(__name__)


def pitch_to_frequency (
	pitch: str,
	octave: int = polyphactory.constants.DEFAULT_OCTAVE,
	reference: float = polyphactory.constants.REFERENCE_FREQUENCY
) -> float:

	"""Return the equal-tempered frequency of a pitch.

	Parameters:
		pitch: Note name, optionally with an octave (``"A"``, ``"C#5"``). Names without an
			octave use ``octave``.
		octave: Octave for bare note names (C4 is middle C).
		reference: Frequency of A4.

	Raises:
		ConfigurationError: If the pitch name is not recognised.

	Example:
		```python
		pitch_to_frequency("A")    # → 440.0
		pitch_to_frequency("C")    # → 261.63 (approx.)
		pitch_to_frequency("A5")   # → 880.0
		```
	"""

	pc, explicit_octave = polyphactory.scales.parse_pitch(pitch)
	midi_note = pitch_to_midi(pc, explicit_octave if explicit_octave is not None else octave)

	return reference * 2 ** ((midi_note - polyphactory.constants.REFERENCE_MIDI_NOTE) / 12)


def pitch_to_midi (pc: int, octave: int) -> int:

	"""MIDI note number of a pitch class in an octave (C4 = 60)."""

	return (octave + 1) * 12 + pc


@dataclasses.dataclass(frozen=True)
class EnvelopePlan:

	"""Absolute breakpoints of one amplitude envelope.

	Times are ordered: ``start <= attack_end <= decay_end <= release_start <= end``.
	When attack and decay do not fit inside the note, the plan is ``compressed``:
	the level starts at ``peak`` and fades straight to silence at ``end``.
	"""

	start: float
	attack_end: float
	decay_end: float
	release_start: float
	end: float
	peak: float
	sustain_level: float
	compressed: bool


	def points (self) -> typing.List[typing.Tuple[float, str, float]]:

		"""The automation events to write, as ``(time, kind, value)``."""

		if self.compressed:
			return [
				(self.start, "set", self.peak),
				(self.end, "ramp", 0.0),
			]

		return [
			(self.start, "set", 0.0),
			(self.attack_end, "ramp", self.peak),
			(self.decay_end, "ramp", self.sustain_level),
			(self.release_start, "set", self.sustain_level),
			(self.end, "ramp", 0.0),
		]


	def apply (self, param: polyphactory.audio.AudioParam) -> None:

		for when, kind, value in self.points():
			if kind == "set":
				param.set_value_at_time(value, when)
			else:
				param.linear_ramp_to_value_at_time(value, when)


def plan_envelope (start: float, duration: float, envelope: Envelope, peak: float) -> EnvelopePlan:

	"""Lay out attack, decay, sustain and release for a note of ``duration`` seconds.

	The release ramp ends at ``start + duration``. A release longer than the
	time left after decay is shortened so it begins where decay ends.
	"""

	duration = max(0.0, duration)
	end = start + duration
	attack = max(0.0, envelope.attack)
	decay = max(0.0, envelope.decay)
	release = max(0.0, envelope.release)

	if duration <= 0 or attack + decay >= duration:
		return EnvelopePlan(
			start = start,
			attack_end = start,
			decay_end = start,
			release_start = start,
			end = end,
			peak = peak,
			sustain_level = peak,
			compressed = True
		)

	attack_end = start + attack
	decay_end = attack_end + decay

	return EnvelopePlan(
		start = start,
		attack_end = attack_end,
		decay_end = decay_end,
		release_start = max(decay_end, end - release),
		end = end,
		peak = peak,
		sustain_level = peak * envelope.sustain,
		compressed = False
	)


@dataclasses.dataclass
class Voice:

	"""A sounding note and the resources it holds."""

	voice_id: str
	pitch: str
	frequency: float
	start_time: float
	duration: float
	volume: float
	settings: SynthSettings
	envelope: EnvelopePlan
	graph: polyphactory.voice_graph.VoiceGraph
	stop_time: float


class VoiceEngine:

	"""Plays note voices through an audio context and reclaims them afterwards.

	The registry and expiry queue are only touched from the host's frame
	callback, so no locking is needed.
	"""

	def __init__ (
		self,
		context: polyphactory.audio.ScheduledAudioContext,
		master_volume: float = polyphactory.constants.DEFAULT_MASTER_VOLUME
	) -> None:

		self.context = context
		self.voices: typing.Dict[str, Voice] = {}
		self._expiries: typing.List[typing.Tuple[float, str]] = []
		self._ids = itertools.count()
		self._master: typing.Optional[polyphactory.audio.GainNode] = None
		self._master_volume = max(0.0, min(1.0, master_volume))


	@property
	def master_volume (self) -> float:

		return self._master_volume


	def set_master_volume (self, volume: float) -> None:

		"""Set the master output level (clamped to 0..1)."""

		self._master_volume = max(0.0, min(1.0, volume))

		if self._master is not None:
			self._master.gain.value = self._master_volume


	def play_voice (
		self,
		pitch: str,
		duration: float = polyphactory.constants.DEFAULT_NOTE_DURATION,
		volume: float = polyphactory.constants.DEFAULT_TRIGGER_VOLUME,
		settings: typing.Optional[SynthSettings] = None,
		start_time: typing.Optional[float] = None
	) -> typing.Optional[str]:

		"""Start one note.

		Parameters:
			pitch: Note name, e.g. ``"E"`` or ``"G#3"``.
			duration: Seconds from the start until the release ramp reaches silence.
			volume: Peak level, 0..1.
			settings: The polygon's synth settings (defaults when omitted).
			start_time: Context time the note starts at (default: now).

		Returns:
			The new voice's id, or ``None`` if nothing was played. Unknown pitches,
			disabled settings, a non-running audio context, or a failure while
			building the graph all skip the note with a log message.
		"""

		settings = settings if settings is not None else SynthSettings()

		if not settings.enabled:
			return None

		try:
			frequency = pitch_to_frequency(pitch)
		except polyphactory.errors.ConfigurationError as e:
			logger.warning(f"Not playing voice: {e}")
			return None

		if duration <= 0:
			logger.warning(f"Not playing {pitch}: duration must be positive, got {duration}")
			return None

		if self.context.state != polyphactory.audio.RUNNING:
			logger.warning(f"Not playing {pitch}: audio context is {self.context.state}")
			return None

		start = self.context.current_time if start_time is None else start_time
		peak = max(0.0, min(1.0, volume))
		plan = plan_envelope(start, duration, settings.envelope, peak)
		stop_time = plan.end + settings.envelope.release + polyphactory.constants.SOURCE_STOP_MARGIN

		try:
			master = self._ensure_master()
			graph = polyphactory.voice_graph.build_voice_graph(self.context, settings, frequency)

		except Exception:
			logger.exception(f"Failed to build voice for {pitch}")
			return None

		try:
			plan.apply(graph.amp.gain)
			graph.schedule(start, plan.end)

			for source in graph.sources:
				source.start(start)
				source.stop(stop_time)

			graph.output.connect(master)

		except Exception:
			logger.exception(f"Failed to schedule voice for {pitch}")
			graph.disconnect()
			return None

		voice_id = f"{pitch}_{next(self._ids)}"

		self.voices[voice_id] = Voice(
			voice_id = voice_id,
			pitch = pitch,
			frequency = frequency,
			start_time = start,
			duration = duration,
			volume = peak,
			settings = settings,
			envelope = plan,
			graph = graph,
			stop_time = stop_time
		)

		heapq.heappush(self._expiries, (stop_time, voice_id))

		logger.debug(f"Voice {voice_id} at {frequency:.2f} Hz, {start:.3f}s → {stop_time:.3f}s")

		return voice_id


	def collect (self, now: typing.Optional[float] = None) -> int:

		"""Release every voice whose lifetime has passed. Returns how many were released."""

		now = self.context.current_time if now is None else now
		released = 0

		while self._expiries and self._expiries[0][0] <= now:
			_, voice_id = heapq.heappop(self._expiries)
			if self._release(voice_id):
				released += 1

		return released


	def stop_all_voices (self) -> None:

		"""Silence and release every live voice immediately.

		Sources that already finished on their own are skipped quietly; a
		failure on one voice never prevents the rest from being stopped.
		"""

		count = len(self.voices)

		for voice in list(self.voices.values()):

			for source in voice.graph.sources:
				try:
					source.stop()
				except polyphactory.audio.InvalidStateError:
					pass
				except Exception as e:
					logger.warning(f"Could not stop a source of voice {voice.voice_id}: {e}")

			voice.graph.disconnect()

		self.voices.clear()
		self._expiries = []

		if count:
			logger.info(f"Stopped {count} voice(s)")


	@property
	def live_voice_count (self) -> int:

		return len(self.voices)


	def _release (self, voice_id: str) -> bool:

		"""Drop one voice from the registry. Absent ids are ignored."""

		voice = self.voices.pop(voice_id, None)

		if voice is None:
			return False

		voice.graph.disconnect()
		return True


	def _ensure_master (self) -> polyphactory.audio.GainNode:

		if self._master is None:
			master = self.context.create_gain()
			master.gain.value = self._master_volume
			master.connect(self.context.destination)
			self._master = master

		return self._master
