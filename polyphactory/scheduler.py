"""The rotational scheduler: playhead motion and vertex triggers.

The playhead angle is a function of time and RPM. Each frame the scheduler
samples the clock, advances the angle, and fires a trigger for every vertex
whose angle lies in the arc swept since the previous frame. Arcs are
half-open, ``(previous, current]``, so consecutive frames partition the
circle and each vertex is crossed exactly once per revolution whatever the
frame timing. The only closed arc is the first one after the playhead is
placed (at start-up, on reset, or after a manual jump), so a vertex sitting
exactly under it still sounds. Resuming from a pause continues the open arc.

Modes:

	STOPPED ──set_playing(True)──► PLAYING ──set_playing(False)──► STOPPED
	   │                             │
	   └──set_angle(manual=True)──►  MANUAL_JUMP  ──(cooldown)──► PLAYING or STOPPED

During a manual jump the angle stays where it was put and nothing fires.
When the cooldown expires the playhead resumes from the jumped-to angle if
playback is on, otherwise it stops there.

Changing RPM re-anchors the phase at the current angle, so the playhead
never jumps and already-crossed vertices are not crossed again.
"""

import dataclasses
import enum
import logging
import math
import time
import typing

import polyphactory.constants
import polyphactory.event_emitter

from polyphactory.polygon import Polygon
from polyphactory.synth_settings import SynthSettings


logger = logging.getLogger(__name__)


class PlayheadMode (enum.Enum):

	STOPPED = "stopped"
	PLAYING = "playing"
	MANUAL_JUMP = "manual_jump"


@dataclasses.dataclass
class Playhead:

	"""The shared playhead: angle in degrees [0, 360), play flag, and speed."""

	angle: float = 0.0
	playing: bool = False
	rpm: float = polyphactory.constants.DEFAULT_RPM


@dataclasses.dataclass(frozen=True)
class Trigger:

	"""A vertex crossing that should sound."""

	polygon_id: int
	polygon_index: int
	vertex: int
	pitch: str
	time: float
	angle: float
	settings: SynthSettings


def normalize_angle (angle: float) -> float:

	"""Wrap an angle into [0, 360)."""

	wrapped = angle % 360.0

	# -1e-17 % 360.0 rounds to 360.0
	return 0.0 if wrapped >= 360.0 else wrapped


def seconds_per_revolution (rpm: float) -> typing.Optional[float]:

	"""Seconds per revolution, or ``None`` when ``rpm`` cannot drive the playhead."""

	if not isinstance(rpm, (int, float)) or isinstance(rpm, bool) or not math.isfinite(rpm) or rpm <= 0:
		return None

	return 60.0 / rpm


def crossed_vertices (start: float, sweep: float, sides: int, include_start: bool = False) -> typing.List[int]:

	"""Vertices of an ``sides``-gon whose angle lies in the arc swept from ``start``.

	The arc runs forward ``sweep`` degrees from ``start`` (wrapping through 0)
	and excludes its start point unless ``include_start`` is set. A sweep of
	360 degrees or more crosses each vertex once. Vertices are returned in
	index order.

	Example:
		```python
		crossed_vertices(350.0, 20.0, 4)  # → [0]        (350° → 10°, across 0°)
		crossed_vertices(80.0, 100.0, 4)  # → [1, 2]     (90° and 180°)
		crossed_vertices(90.0, 1.0, 4)    # → []         (90° is the start point)
		```
	"""

	if sweep <= 0 and not include_start:
		return []

	step = 360.0 / sides
	crossed: typing.List[int] = []

	for vertex in range(sides):
		offset = (vertex * step - start) % 360.0
		if offset >= 360.0:
			offset = 0.0

		if offset == 0.0:
			if include_start or sweep >= 360.0:
				crossed.append(vertex)
		elif offset <= sweep:
			crossed.append(vertex)

	return crossed


def min_trigger_interval (seconds_per_rev: float, polygon_count: int) -> float:

	"""Shortest gap allowed between two triggers of the same vertex and pitch.

	A fixed fraction of a revolution per competing polygon, capped at half a
	revolution: it shrinks as RPM rises or polygons are removed, and always
	stays below the one-revolution gap between legitimate repeats.
	"""

	fraction = min(
		polyphactory.constants.TRIGGER_GUARD_MAX_FRACTION,
		polyphactory.constants.TRIGGER_GUARD_FRACTION * max(1, polygon_count)
	)

	return seconds_per_rev * fraction


class RotationalScheduler:

	"""Advances the playhead and emits ``"trigger"`` events for vertex crossings.

	Events:
		``"trigger"`` (:class:`Trigger`): a vertex with a pitch was crossed. Listeners run
			in polygon-list order, and in vertex-index order within a polygon.
		``"angle"`` (float): the angle published at the end of a playing frame.
		``"mode"`` (:class:`PlayheadMode`): the mode changed.

	Parameters:
		playhead: The shared playhead; the scheduler is its only writer during playback.
		clock: Monotonic seconds source.
		jump_cooldown: Seconds a manual jump holds the playhead still.
	"""

	def __init__ (
		self,
		playhead: typing.Optional[Playhead] = None,
		clock: typing.Callable[[], float] = time.perf_counter,
		jump_cooldown: float = polyphactory.constants.MANUAL_JUMP_COOLDOWN
	) -> None:

		self.playhead = playhead if playhead is not None else Playhead()
		self.events = polyphactory.event_emitter.EventEmitter()
		self._clock = clock
		self._jump_cooldown = jump_cooldown

		self._mode = PlayheadMode.PLAYING if self.playhead.playing else PlayheadMode.STOPPED
		self._jump_until = 0.0

		now = clock()
		self._anchor_time = now
		self._anchor_angle = self.playhead.angle
		self._anchor_rpm = self.playhead.rpm
		self._last_angle = self.playhead.angle
		self._last_tick_time = now
		self._include_start = True
		self._rpm_warning_logged = False

		# Degrees travelled since playback began; repeat suppression is measured in travel, not wall time.
		self._travel = 0.0
		self._last_trigger: typing.Dict[typing.Tuple[int, int, str], float] = {}


	@property
	def mode (self) -> PlayheadMode:

		return self._mode


	def set_rpm (self, rpm: float) -> bool:

		"""Change the speed, keeping the current angle. Returns False if ``rpm`` was rejected.

		Non-finite or non-positive values are ignored with a warning. Other values
		are clamped to the supported range.
		"""

		if seconds_per_revolution(rpm) is None:
			logger.warning(f"Ignoring invalid RPM {rpm!r}")
			return False

		rpm = max(polyphactory.constants.MIN_RPM, min(float(rpm), polyphactory.constants.MAX_RPM))

		if self._mode == PlayheadMode.PLAYING:
			self._rebase(self._clock())

		self.playhead.rpm = rpm
		self._anchor_rpm = rpm
		self._rpm_warning_logged = False

		logger.info(f"RPM set to {rpm:g}")
		return True


	def set_playing (self, playing: bool) -> None:

		"""Start or pause playback. Pausing freezes the angle; sounding voices are left alone."""

		now = self._clock()
		self.playhead.playing = playing

		if self._mode == PlayheadMode.MANUAL_JUMP:
			return

		if playing and self._mode == PlayheadMode.STOPPED:
			self._resume(now)
			self._set_mode(PlayheadMode.PLAYING)

		elif not playing and self._mode == PlayheadMode.PLAYING:
			self._set_mode(PlayheadMode.STOPPED)


	def set_angle (self, angle: float, manual: bool = False) -> None:

		"""Move the playhead.

		A ``manual`` move is a user edit: the playhead holds at ``angle`` for the
		jump cooldown before playback (if on) continues from there. A non-manual
		move repositions the playhead immediately, e.g. on reset.
		"""

		if not isinstance(angle, (int, float)) or not math.isfinite(angle):
			logger.warning(f"Ignoring invalid angle {angle!r}")
			return

		now = self._clock()
		angle = normalize_angle(angle)
		self.playhead.angle = angle

		if manual:
			self._jump_until = now + self._jump_cooldown
			self._last_angle = angle
			self._include_start = True
			self._set_mode(PlayheadMode.MANUAL_JUMP)
			logger.debug(f"Manual jump to {angle:.1f}°")
			return

		self._restart_from(now, angle)

		if self._mode == PlayheadMode.MANUAL_JUMP:
			self._set_mode(PlayheadMode.PLAYING if self.playhead.playing else PlayheadMode.STOPPED)


	def tick (self, polygons: typing.Sequence[Polygon], now: typing.Optional[float] = None) -> typing.List[Trigger]:

		"""Advance one frame and return the triggers it produced."""

		now = self._clock() if now is None else now

		if self._mode == PlayheadMode.MANUAL_JUMP:

			if now < self._jump_until:
				return []

			if self.playhead.playing:
				self._restart_from(now, self.playhead.angle)
				self._set_mode(PlayheadMode.PLAYING)
			else:
				self._set_mode(PlayheadMode.STOPPED)
				return []

		if self._mode != PlayheadMode.PLAYING:
			return []

		spr = seconds_per_revolution(self.playhead.rpm)

		if spr is None:
			if not self._rpm_warning_logged:
				logger.warning(f"RPM {self.playhead.rpm!r} cannot drive the playhead; holding at {self._last_angle:.1f}°")
				self._rpm_warning_logged = True
			self._anchor_time = now
			self._anchor_angle = self._last_angle
			self._last_tick_time = now
			return []

		if self.playhead.rpm != self._anchor_rpm:
			# Speed changed behind our back (direct playhead write): continue from the last frame.
			self._anchor_time = self._last_tick_time
			self._anchor_angle = self._last_angle
			self._anchor_rpm = self.playhead.rpm

		frame_time = max(0.0, now - self._last_tick_time)
		elapsed = max(0.0, now - self._anchor_time)
		progress = (elapsed % spr) / spr
		angle = normalize_angle(self._anchor_angle + progress * 360.0)

		sweep = (angle - self._last_angle) % 360.0
		if frame_time >= spr:
			sweep = 360.0

		self._travel += sweep
		triggers = self._detect(polygons, self._last_angle, sweep, spr, now)

		self._include_start = False
		self._last_angle = angle
		self._last_tick_time = now
		self.playhead.angle = angle

		self.events.emit_sync("angle", angle)

		return triggers


	def _detect (self, polygons: typing.Sequence[Polygon], start: float, sweep: float, spr: float, now: float) -> typing.List[Trigger]:

		active_count = sum(1 for polygon in polygons if polygon.active)
		guard_degrees = 360.0 * min_trigger_interval(spr, active_count) / spr
		triggers: typing.List[Trigger] = []

		for index, polygon in enumerate(polygons):

			if not polygon.active:
				continue

			for vertex in crossed_vertices(start, sweep, polygon.sides, self._include_start):

				pitch = polygon.notes[vertex]
				if pitch is None:
					continue

				key = (polygon.id, vertex, pitch)
				last = self._last_trigger.get(key)

				if last is not None and self._travel - last < guard_degrees:
					logger.debug(f"Suppressed repeat of {pitch} on polygon {polygon.id} vertex {vertex}")
					continue

				trigger = Trigger(
					polygon_id = polygon.id,
					polygon_index = index,
					vertex = vertex,
					pitch = pitch,
					time = now,
					angle = polygon.vertex_angle(vertex),
					settings = polygon.synth
				)

				self.events.emit_sync("trigger", trigger)
				self._last_trigger[key] = self._travel
				triggers.append(trigger)

		return triggers


	def _rebase (self, now: float) -> None:

		"""Re-anchor the phase at the angle the playhead has at ``now``."""

		spr = seconds_per_revolution(self._anchor_rpm)

		if spr is None:
			angle = self._last_angle
		else:
			progress = (max(0.0, now - self._anchor_time) % spr) / spr
			angle = normalize_angle(self._anchor_angle + progress * 360.0)

		self._anchor_time = now
		self._anchor_angle = angle


	def _resume (self, now: float) -> None:

		"""Continue from where a pause froze the playhead.

		The trigger history and the arc start are kept, so a vertex that fired
		just before the pause does not fire again on resume.
		"""

		self._anchor_time = now
		self._anchor_angle = self._last_angle
		self._anchor_rpm = self.playhead.rpm
		self._last_tick_time = now


	def _restart_from (self, now: float, angle: float) -> None:

		self._anchor_time = now
		self._anchor_angle = angle
		self._anchor_rpm = self.playhead.rpm
		self._last_angle = angle
		self._last_tick_time = now
		self._include_start = True
		self._last_trigger.clear()


	def _set_mode (self, mode: PlayheadMode) -> None:

		if mode == self._mode:
			return

		logger.info(f"Playhead {self._mode.value} → {mode.value}")
		self._mode = mode
		self.events.emit_sync("mode", mode)
