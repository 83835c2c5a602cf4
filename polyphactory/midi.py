"""MIDI collaborators: device selection, live mirroring, recording and note-event export.

None of these touch the voice engine; they read triggers and the polygon
exchange shape only.
"""

import dataclasses
import datetime
import heapq
import logging
import typing

import mido

import polyphactory.constants
import polyphactory.scales
import polyphactory.scheduler
import polyphactory.voices

from polyphactory.polygon import Polygon


logger = logging.getLogger(__name__)


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""Select and open a MIDI output device.

	If ``device_name`` is given, that device is opened. Otherwise a single
	available device is used automatically, and with several the user is
	prompted on the console.

	Returns:
		``(device_name, port)``, or ``(None, None)`` if nothing could be opened.
	"""

	try:
		outputs = mido.get_output_names()
		logger.info(f"Available MIDI outputs: {outputs}")

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is not None:
			if device_name in outputs:
				port = mido.open_output(device_name)
				logger.info(f"Opened MIDI output: {device_name}")
				return device_name, port

			logger.error(f"MIDI output device '{device_name}' not found. Available devices: {outputs}")
			return None, None

		if len(outputs) == 1:
			port = mido.open_output(outputs[0])
			logger.info(f"One MIDI output found - using '{outputs[0]}'")
			return outputs[0], port

		print("\nAvailable MIDI output devices:\n")
		for i, name in enumerate(outputs, 1):
			print(f"  {i}. {name}")
		print()

		while True:
			try:
				choice = int(input(f"Select a device (1-{len(outputs)}): "))
				if 1 <= choice <= len(outputs):
					break
			except (ValueError, EOFError):
				pass
			print(f"Enter a number between 1 and {len(outputs)}.")

		selected = outputs[choice - 1]
		port = mido.open_output(selected)
		logger.info(f"Opened MIDI output: {selected}")
		return selected, port

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None


def pitch_to_midi_note (pitch: str, octave: int = polyphactory.constants.DEFAULT_OCTAVE) -> int:

	"""MIDI note number for a vertex pitch (bare names sit in ``octave``)."""

	pc, explicit_octave = polyphactory.scales.parse_pitch(pitch)
	note = polyphactory.voices.pitch_to_midi(pc, explicit_octave if explicit_octave is not None else octave)

	return max(0, min(127, note))


def volume_to_velocity (volume: float) -> int:

	return max(1, min(127, int(round(volume * 127))))


def polygon_channel (polygon_index: int) -> int:

	"""One MIDI channel per ring, wrapping after 16."""

	return polygon_index % 16


@dataclasses.dataclass(frozen=True)
class NoteEvent:

	"""One note a session would play, in seconds from the start of playback."""

	time: float
	polygon_id: int
	polygon_index: int
	channel: int
	vertex: int
	pitch: str
	midi_note: int
	duration: float


def note_events (
	polygons: typing.Sequence[Polygon],
	rpm: float,
	revolutions: int = 1,
	duration: float = polyphactory.constants.DEFAULT_NOTE_DURATION
) -> typing.List[NoteEvent]:

	"""List the notes playback from angle 0 would trigger over ``revolutions`` turns.

	Events are ordered by time, then polygon-list order, then vertex index,
	which is the order the scheduler submits simultaneous triggers in.

	Raises:
		ValueError: If ``rpm`` cannot drive the playhead.
	"""

	spr = polyphactory.scheduler.seconds_per_revolution(rpm)

	if spr is None:
		raise ValueError(f"RPM must be a positive finite number, got {rpm!r}")

	events: typing.List[NoteEvent] = []

	for revolution in range(revolutions):
		for index, polygon in enumerate(polygons):

			if not polygon.active:
				continue

			for vertex, pitch in enumerate(polygon.notes):
				if pitch is None:
					continue

				events.append(NoteEvent(
					time = (revolution + vertex / polygon.sides) * spr,
					polygon_id = polygon.id,
					polygon_index = index,
					channel = polygon_channel(index),
					vertex = vertex,
					pitch = pitch,
					midi_note = pitch_to_midi_note(pitch),
					duration = duration
				))

	events.sort(key=lambda e: (e.time, e.polygon_index, e.vertex))
	return events


class MidiMirror:

	"""Echoes triggers to a MIDI output as note on/off pairs."""

	def __init__ (self, port: typing.Any) -> None:

		self.port = port
		self.active_notes: typing.Set[typing.Tuple[int, int]] = set()
		self._pending_offs: typing.List[typing.Tuple[float, int, int]] = []
		self._off_times: typing.Dict[typing.Tuple[int, int], float] = {}


	def note_on (self, trigger: polyphactory.scheduler.Trigger, duration: float, volume: float) -> None:

		"""Send a note for ``trigger`` and schedule its note-off ``duration`` seconds later."""

		try:
			note = pitch_to_midi_note(trigger.pitch)
		except ValueError as e:
			logger.warning(f"Not mirroring trigger: {e}")
			return

		channel = polygon_channel(trigger.polygon_index)
		key = (channel, note)

		if key in self.active_notes:
			self._send(mido.Message('note_off', channel=channel, note=note, velocity=0))

		self._send(mido.Message('note_on', channel=channel, note=note, velocity=volume_to_velocity(volume)))
		self.active_notes.add(key)

		off_time = trigger.time + duration
		self._off_times[key] = off_time
		heapq.heappush(self._pending_offs, (off_time, channel, note))


	def process (self, now: float) -> None:

		"""Send every note-off that is due."""

		while self._pending_offs and self._pending_offs[0][0] <= now:
			off_time, channel, note = heapq.heappop(self._pending_offs)
			key = (channel, note)

			# A retrigger moved this note's off time; the newer entry will handle it.
			if self._off_times.get(key) != off_time:
				continue

			self._send(mido.Message('note_off', channel=channel, note=note, velocity=0))
			self.active_notes.discard(key)
			del self._off_times[key]


	def panic (self) -> None:

		"""Release every sounding note."""

		for channel, note in list(self.active_notes):
			self._send(mido.Message('note_off', channel=channel, note=note, velocity=0))

		self.active_notes.clear()
		self._pending_offs = []
		self._off_times = {}


	def close (self) -> None:

		self.panic()

		try:
			self.port.close()
		except Exception as e:
			logger.warning(f"Failed to close MIDI output: {e}")


	def _send (self, message: mido.Message) -> None:

		try:
			self.port.send(message)
		except Exception:
			logger.exception("MIDI send failed (device may be disconnected)")


class TriggerRecorder:

	"""Collects triggered notes and writes them to a Standard MIDI File.

	Times are seconds from the start of the recording. The file uses a fixed
	tempo so that seconds map directly onto ticks.
	"""

	def __init__ (
		self,
		filename: typing.Optional[str] = None,
		tempo_bpm: float = polyphactory.constants.RECORD_TEMPO_BPM,
		ticks_per_beat: int = polyphactory.constants.RECORD_TICKS_PER_BEAT
	) -> None:

		self.filename = filename
		self.tempo = mido.bpm2tempo(tempo_bpm)
		self.ticks_per_beat = ticks_per_beat
		self.recorded_events: typing.List[typing.Tuple[float, mido.Message]] = []


	def record (self, seconds: float, message: mido.Message) -> None:

		self.recorded_events.append((max(0.0, seconds), message))


	def record_note (self, seconds: float, trigger: polyphactory.scheduler.Trigger, duration: float, volume: float) -> None:

		"""Record a note-on at ``seconds`` and its note-off ``duration`` later."""

		try:
			note = pitch_to_midi_note(trigger.pitch)
		except ValueError as e:
			logger.warning(f"Not recording trigger: {e}")
			return

		channel = polygon_channel(trigger.polygon_index)
		self.record(seconds, mido.Message('note_on', channel=channel, note=note, velocity=volume_to_velocity(volume)))
		self.record(seconds + duration, mido.Message('note_off', channel=channel, note=note, velocity=0))


	def to_midi_file (self) -> mido.MidiFile:

		mid = mido.MidiFile(type=1)
		mid.ticks_per_beat = self.ticks_per_beat
		track = mido.MidiTrack()
		mid.tracks.append(track)

		track.append(mido.MetaMessage('set_tempo', tempo=self.tempo, time=0))

		# note_off sorts before note_on at the same instant so retriggers are not cut.
		ordered = sorted(self.recorded_events, key=lambda item: (item[0], item[1].type != 'note_off'))
		last_tick = 0

		for seconds, message in ordered:
			tick = int(round(mido.second2tick(seconds, self.ticks_per_beat, self.tempo)))
			track.append(message.copy(time=max(0, tick - last_tick)))
			last_tick = max(last_tick, tick)

		return mid


	def save (self) -> typing.Optional[str]:

		"""Write the recording. Returns the filename, or ``None`` if nothing was saved."""

		if not self.recorded_events:
			return None

		filename = self.filename or datetime.datetime.now().strftime("session_%Y%m%d_%H%M%S.mid")

		logger.info(f"Saving MIDI recording ({len(self.recorded_events)} events) to {filename}...")

		try:
			self.to_midi_file().save(filename)
		except Exception as e:
			logger.error(f"Failed to save MIDI recording: {e}")
			return None

		logger.info(f"Saved {filename}")
		return filename
