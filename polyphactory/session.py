"""The session: owner of the shared instrument state.

A :class:`Session` holds the polygons, the playhead and the scale
assignment, and wires the rotational scheduler to the voice engine. Every
edit a user interface (or the OSC surface) makes goes through a session
method, so the scheduler stays the single writer of the playhead while it
plays and user moves are always tagged as manual jumps.

Minimal example:

	```python
	import polyphactory

	session = polyphactory.Session(rpm=30, scale="Minor", root="A")
	square = session.add_polygon()
	session.set_note(square.id, 0, "A")
	session.set_note(square.id, 2, "E")
	session.play()
	session.start()   # runs the frame loop until Ctrl+C
	```
"""

import asyncio
import logging
import signal
import time
import typing

import polyphactory.audio
import polyphactory.constants
import polyphactory.errors
import polyphactory.event_emitter
import polyphactory.midi
import polyphactory.polygon
import polyphactory.scales
import polyphactory.scheduler
import polyphactory.voices

from polyphactory.polygon import Polygon
from polyphactory.synth_settings import SynthSettings

if typing.TYPE_CHECKING:
	from polyphactory.osc import OscServer


logger = logging.getLogger(__name__)


def default_polygons () -> typing.List[Polygon]:

	"""The starting instrument: one triangle playing a C major triad."""

	return [Polygon(id=polyphactory.polygon.next_polygon_id(), sides=3, notes=["C", "E", "G"])]


class Session:

	"""Polygons, playhead, scale and sound for one running instrument.

	Events (``session.events``):
		``"trigger"`` (:class:`~polyphactory.scheduler.Trigger`, voice id or ``None``): a vertex sounded.
		``"scale"`` (scale name, root): the scale assignment changed.

	Parameters:
		rpm: Initial playhead speed.
		scale: Scale name (see :data:`polyphactory.scales.SCALE_INTERVALS`).
		root: Root note name.
		polygons: Starting polygons (default: a C-E-G triangle).
		master_volume: Output level, 0..1.
		frame_rate: Frames per second of the host loop.
		note_duration: Seconds each triggered note lasts.
		trigger_volume: Peak level of triggered notes, 0..1.
		spacing: Distance between polygon rings.
		clock: Monotonic seconds source shared by the scheduler and the audio context.
		context: Audio context to play through (default: a new running one on ``clock``).
	"""

	def __init__ (
		self,
		rpm: float = polyphactory.constants.DEFAULT_RPM,
		scale: str = polyphactory.scales.DEFAULT_SCALE,
		root: str = "C",
		polygons: typing.Optional[typing.Iterable[Polygon]] = None,
		master_volume: float = polyphactory.constants.DEFAULT_MASTER_VOLUME,
		frame_rate: int = polyphactory.constants.DEFAULT_FRAME_RATE,
		note_duration: float = polyphactory.constants.DEFAULT_NOTE_DURATION,
		trigger_volume: float = polyphactory.constants.DEFAULT_TRIGGER_VOLUME,
		spacing: float = polyphactory.constants.DEFAULT_SPACING,
		clock: typing.Callable[[], float] = time.perf_counter,
		context: typing.Optional[polyphactory.audio.ScheduledAudioContext] = None
	) -> None:

		if frame_rate <= 0:
			raise ValueError("frame_rate must be positive")

		polyphactory.scales.note_name_to_pc(root)

		self._clock = clock
		self._start_clock = clock()
		self.frame_rate = frame_rate
		self.note_duration = note_duration
		self.trigger_volume = trigger_volume
		self.spacing = max(polyphactory.constants.MIN_SPACING, min(polyphactory.constants.MAX_SPACING, spacing))

		self.scale_name = scale
		self.root = root
		polygons = list(polygons) if polygons is not None else default_polygons()
		ids = [polygon.id for polygon in polygons]

		if len(set(ids)) != len(ids):
			raise polyphactory.errors.ConfigurationError(f"Polygon ids must be unique, got {ids}")

		# Starting notes follow the same rule as a later scale change.
		self.polygons: typing.List[Polygon] = polyphactory.scales.remap_all_polygons(polygons, scale, root)

		self.playhead = polyphactory.scheduler.Playhead()
		self.scheduler = polyphactory.scheduler.RotationalScheduler(self.playhead, clock=clock)
		self.scheduler.set_rpm(rpm)

		self.context = context if context is not None else polyphactory.audio.ScheduledAudioContext(clock=clock)
		self.engine = polyphactory.voices.VoiceEngine(self.context, master_volume=master_volume)

		self.events = polyphactory.event_emitter.EventEmitter()
		self.scheduler.events.on("trigger", self._on_trigger)

		self.running = False
		self._osc_settings: typing.Optional[typing.Dict[str, typing.Any]] = None
		self._osc_server: typing.Optional["OscServer"] = None
		self._midi_device: typing.Optional[str] = None
		self._midi_requested = False
		self._midi_mirror: typing.Optional[polyphactory.midi.MidiMirror] = None
		self._recorder: typing.Optional[polyphactory.midi.TriggerRecorder] = None


	# Polygons

	def get_polygon (self, polygon_id: int) -> Polygon:

		"""Return the polygon with ``polygon_id``. Raises ``KeyError`` if there is none."""

		for polygon in self.polygons:
			if polygon.id == polygon_id:
				return polygon

		raise KeyError(f"No polygon with id {polygon_id}")


	def add_polygon (self) -> Polygon:

		"""Append the next ring: one more side than the last, empty, default sound."""

		polygon = polyphactory.polygon.make_polygon(len(self.polygons), self.spacing)
		self.polygons.append(polygon)

		logger.info(f"Added {polygon.sides}-sided polygon {polygon.id}")
		return polygon


	def remove_polygon (self, polygon_id: int) -> bool:

		before = len(self.polygons)
		self.polygons = [polygon for polygon in self.polygons if polygon.id != polygon_id]

		if len(self.polygons) == before:
			return False

		polyphactory.polygon.relayout(self.polygons, self.spacing)
		logger.info(f"Removed polygon {polygon_id}")
		return True


	def set_sides (self, polygon_id: int, sides: int) -> bool:

		"""Resize a polygon. Side counts outside 3-12 are ignored."""

		if not polyphactory.constants.MIN_SIDES <= sides <= polyphactory.constants.MAX_SIDES:
			logger.warning(f"Ignoring side count {sides} for polygon {polygon_id}")
			return False

		self.get_polygon(polygon_id).resize(sides)
		logger.info(f"Updated polygon {polygon_id} to {sides}-gon")
		return True


	def set_spacing (self, spacing: float) -> None:

		self.spacing = max(polyphactory.constants.MIN_SPACING, min(polyphactory.constants.MAX_SPACING, spacing))
		polyphactory.polygon.relayout(self.polygons, self.spacing)


	def set_active (self, polygon_id: int, active: bool) -> None:

		self.get_polygon(polygon_id).active = active


	def set_synth_settings (self, polygon_id: int, settings: typing.Union[SynthSettings, typing.Mapping[str, typing.Any]]) -> bool:

		"""Replace a polygon's sound. Malformed mappings are rejected with a warning."""

		if not isinstance(settings, SynthSettings):
			try:
				settings = SynthSettings.from_dict(settings)
			except polyphactory.errors.ConfigurationError as e:
				logger.warning(f"Keeping previous synth settings for polygon {polygon_id}: {e}")
				return False

		self.get_polygon(polygon_id).synth = settings
		return True


	# Notes

	def set_note (self, polygon_id: int, vertex: int, pitch: typing.Optional[str]) -> bool:

		"""Assign a vertex pitch. Unknown pitch names are rejected with a warning."""

		try:
			self.get_polygon(polygon_id).set_note(vertex, pitch)
		except polyphactory.errors.ConfigurationError as e:
			logger.warning(f"Ignoring note edit: {e}")
			return False

		return True


	def cycle_note (self, polygon_id: int, vertex: int) -> str:

		"""Advance a vertex to the next note of the current scale and preview it.

		An empty vertex (or one holding an off-scale pitch) gets the root. The
		playhead jumps to just before the vertex so the edit is heard in context.
		"""

		polygon = self.get_polygon(polygon_id)
		pitch_set = polyphactory.scales.scale_notes(self.scale_name, self.root)
		degree = self._scale_degree(polygon.notes[vertex])
		next_pitch = pitch_set[(degree + 1) % len(pitch_set)] if degree is not None else pitch_set[0]

		polygon.set_note(vertex, next_pitch)
		self._jump_to_vertex(polygon, vertex)

		if self.context.state == polyphactory.audio.SUSPENDED:
			self.context.resume()

		self.engine.play_voice(next_pitch, self.note_duration, self.trigger_volume, polygon.synth)

		logger.info(f"Cycled polygon {polygon_id} vertex {vertex} to {next_pitch}")
		return next_pitch


	def delete_note (self, polygon_id: int, vertex: int) -> None:

		"""Clear a vertex and jump the playhead to just before it."""

		polygon = self.get_polygon(polygon_id)
		polygon.clear_note(vertex)
		self._jump_to_vertex(polygon, vertex)


	def note_color (self, pitch: typing.Optional[str], fallback: str = polyphactory.constants.POLYGON_COLORS[0]) -> str:

		return polyphactory.scales.degree_color(pitch, self.scale_name, self.root, fallback)


	# Scale

	def set_scale (self, scale_name: str) -> None:

		"""Select a scale and move every stored pitch into it."""

		if scale_name not in polyphactory.scales.SCALE_INTERVALS:
			logger.warning(f"Unknown scale {scale_name!r}; notes follow the {polyphactory.scales.DEFAULT_SCALE} pattern")

		self.scale_name = scale_name
		self._apply_scale()


	def set_root (self, root: str) -> bool:

		"""Select a root note and move every stored pitch into the new key."""

		try:
			polyphactory.scales.note_name_to_pc(root)
		except polyphactory.errors.ConfigurationError as e:
			logger.warning(f"Keeping root {self.root}: {e}")
			return False

		self.root = root
		self._apply_scale()
		return True


	def _apply_scale (self) -> None:

		self.polygons = polyphactory.scales.remap_all_polygons(self.polygons, self.scale_name, self.root)
		logger.info(f"Scale set to {self.root} {self.scale_name}")
		self.events.emit_sync("scale", self.scale_name, self.root)


	def _scale_degree (self, pitch: typing.Optional[str]) -> typing.Optional[int]:

		if pitch is None:
			return None

		return polyphactory.scales.scale_degree(pitch, self.scale_name, self.root)


	# Transport

	def play (self) -> None:

		"""Start the playhead. A suspended audio context is resumed first."""

		try:
			self.context.resume()
		except polyphactory.errors.ResourceError as e:
			logger.warning(f"Playing without sound: {e}")

		self.scheduler.set_playing(True)


	def pause (self) -> None:

		"""Stop the playhead. Notes already sounding ring out."""

		self.scheduler.set_playing(False)


	def toggle_play (self) -> bool:

		if self.playhead.playing:
			self.pause()
		else:
			self.play()

		return self.playhead.playing


	def reset (self) -> None:

		"""Pause and return the playhead to 0°."""

		self.scheduler.set_playing(False)
		self.scheduler.set_angle(0.0, manual=False)


	def set_rpm (self, rpm: float) -> bool:

		return self.scheduler.set_rpm(rpm)


	def set_angle (self, angle: float) -> None:

		"""Move the playhead as a user would (a manual jump)."""

		self.scheduler.set_angle(angle, manual=True)


	def stop_all (self) -> None:

		"""Silence every sounding voice (and mirrored MIDI note) now."""

		self.engine.stop_all_voices()

		if self._midi_mirror is not None:
			self._midi_mirror.panic()


	def set_master_volume (self, volume: float) -> None:

		self.engine.set_master_volume(volume)


	def note_events (self, revolutions: int = 1) -> typing.List[polyphactory.midi.NoteEvent]:

		"""The notes the current polygons play over ``revolutions`` turns from 0°."""

		return polyphactory.midi.note_events(self.polygons, self.playhead.rpm, revolutions, self.note_duration)


	# Frame loop

	def tick (self, now: typing.Optional[float] = None) -> typing.List[polyphactory.scheduler.Trigger]:

		"""Run one frame: advance the playhead, sound crossings, release finished voices."""

		now = self._clock() if now is None else now
		triggers = self.scheduler.tick(self.polygons, now)

		self.engine.collect()

		if self._midi_mirror is not None:
			self._midi_mirror.process(now)

		return triggers


	def _on_trigger (self, trigger: polyphactory.scheduler.Trigger) -> None:

		voice_id = self.engine.play_voice(trigger.pitch, self.note_duration, self.trigger_volume, trigger.settings)

		if self._midi_mirror is not None:
			self._midi_mirror.note_on(trigger, self.note_duration, self.trigger_volume)

		if self._recorder is not None:
			self._recorder.record_note(trigger.time - self._start_clock, trigger, self.note_duration, self.trigger_volume)

		logger.debug(f"Trigger {trigger.pitch} polygon {trigger.polygon_id} vertex {trigger.vertex}")
		self.events.emit_sync("trigger", trigger, voice_id)


	def _jump_to_vertex (self, polygon: Polygon, vertex: int) -> None:

		target = polyphactory.scheduler.normalize_angle(polygon.vertex_angle(vertex) - polyphactory.constants.JUMP_LEAD_DEGREES)
		self.scheduler.set_angle(target, manual=True)


	# Collaborators

	def osc (
		self,
		receive_port: int = polyphactory.constants.DEFAULT_OSC_RECEIVE_PORT,
		send_port: int = polyphactory.constants.DEFAULT_OSC_SEND_PORT,
		send_host: str = polyphactory.constants.DEFAULT_OSC_SEND_HOST
	) -> None:

		"""Enable the OSC control surface when the session starts."""

		self._osc_settings = {"receive_port": receive_port, "send_port": send_port, "send_host": send_host}


	def midi_output (self, device_name: typing.Optional[str] = None) -> None:

		"""Mirror triggers to a MIDI output when the session starts."""

		self._midi_requested = True
		self._midi_device = device_name


	def record (self, filename: typing.Optional[str] = None) -> None:

		"""Record triggers and save them as a MIDI file when the session stops."""

		self._recorder = polyphactory.midi.TriggerRecorder(filename)


	def start (self) -> None:

		"""Run the frame loop until interrupted (Ctrl+C)."""

		try:
			asyncio.run(self._run())
		except KeyboardInterrupt:
			pass


	async def run (self, frames: typing.Optional[int] = None) -> None:

		"""Call :meth:`tick` at the frame rate until stopped (or for ``frames`` frames)."""

		interval = 1.0 / self.frame_rate
		next_frame = time.perf_counter()
		count = 0
		self.running = True

		while self.running and (frames is None or count < frames):

			self.tick()
			count += 1

			next_frame += interval
			delay = next_frame - time.perf_counter()

			if delay < -interval:
				# Fell behind (host stalled); skip ahead rather than bursting frames.
				next_frame = time.perf_counter()
				delay = 0.0

			await asyncio.sleep(max(0.0, delay))

		self.running = False


	def stop (self) -> None:

		"""Ask the frame loop to exit after the current frame."""

		self.running = False


	async def _run (self) -> None:

		loop = asyncio.get_running_loop()

		for sig in (signal.SIGINT, signal.SIGTERM):
			loop.add_signal_handler(sig, self.stop)

		if self._osc_settings is not None:
			from polyphactory.osc import OscServer
			self._osc_server = OscServer(self, **self._osc_settings)
			await self._osc_server.start()

		if self._midi_requested:
			_, port = polyphactory.midi.select_output_device(self._midi_device)
			if port is not None:
				self._midi_mirror = polyphactory.midi.MidiMirror(port)

		logger.info("Session running. Press Ctrl+C to stop.")

		try:
			await self.run()

		finally:
			for sig in (signal.SIGINT, signal.SIGTERM):
				loop.remove_signal_handler(sig)

			self.stop_all()

			if self._midi_mirror is not None:
				self._midi_mirror.close()
				self._midi_mirror = None

			if self._recorder is not None:
				self._recorder.save()

			if self._osc_server is not None:
				await self._osc_server.stop()
				self._osc_server = None

			logger.info("Session stopped")
