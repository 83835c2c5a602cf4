"""Polygons: the vertices the playhead sweeps past.

Vertex ``i`` of an ``N``-sided polygon sits at ``i * 360 / N`` degrees, with
vertex 0 at angle 0. Each vertex holds an optional pitch; ``notes`` always has
exactly ``sides`` entries.
"""

import dataclasses
import logging
import typing

import polyphactory.constants
import polyphactory.errors
import polyphactory.scales

from polyphactory.synth_settings import SynthSettings


logger = logging.getLogger(__name__)

_next_id = 1


def next_polygon_id () -> int:

	"""Return a polygon id not yet used in this process."""

	global _next_id

	polygon_id = _next_id
	_next_id += 1

	return polygon_id


def reserve_polygon_id (polygon_id: int) -> None:

	"""Make sure :func:`next_polygon_id` never hands out ``polygon_id`` again."""

	global _next_id

	_next_id = max(_next_id, polygon_id + 1)


@dataclasses.dataclass
class Polygon:

	"""One ring of the instrument.

	Parameters:
		id: Stable identifier for the polygon's lifetime.
		sides: Vertex count, 3-12.
		radius: Display radius; no effect on timing or sound.
		color: Display colour, also the fallback colour for off-scale pitches.
		active: Inactive polygons never trigger.
		notes: One optional pitch per vertex, in angular order.
		synth: How this polygon's voices sound.
	"""

	id: int
	sides: int
	radius: float = polyphactory.constants.BASE_RADIUS
	color: str = polyphactory.constants.POLYGON_COLORS[0]
	active: bool = True
	notes: typing.List[typing.Optional[str]] = dataclasses.field(default_factory=list)
	synth: SynthSettings = dataclasses.field(default_factory=SynthSettings)


	def __post_init__ (self) -> None:

		if not polyphactory.constants.MIN_SIDES <= self.sides <= polyphactory.constants.MAX_SIDES:
			raise polyphactory.errors.ConfigurationError(
				f"Polygon sides must be {polyphactory.constants.MIN_SIDES}-{polyphactory.constants.MAX_SIDES}, got {self.sides}"
			)

		for note in self.notes:
			if note is not None:
				polyphactory.scales.parse_pitch(note)

		self.notes = _fit(list(self.notes), self.sides)

		# Explicit ids (loaded or hand-built) must not be reissued.
		reserve_polygon_id(self.id)


	def vertex_angle (self, vertex: int) -> float:

		"""Angle of a vertex in degrees, in [0, 360)."""

		return (vertex % self.sides) * 360.0 / self.sides


	def resize (self, sides: int) -> None:

		"""Change the side count, keeping existing notes by index.

		Values outside 3-12 are clamped. New vertices start empty.
		"""

		sides = max(polyphactory.constants.MIN_SIDES, min(polyphactory.constants.MAX_SIDES, int(sides)))
		self.notes = _fit(self.notes, sides)
		self.sides = sides


	def set_note (self, vertex: int, pitch: typing.Optional[str]) -> None:

		"""Assign (or with ``None``, clear) the pitch of a vertex.

		Raises:
			IndexError: If the vertex does not exist.
			ConfigurationError: If the pitch name is not recognised.
		"""

		self._check_vertex(vertex)

		if pitch is not None:
			polyphactory.scales.parse_pitch(pitch)

		self.notes[vertex] = pitch


	def clear_note (self, vertex: int) -> None:

		self.set_note(vertex, None)


	def with_notes (self, notes: typing.Sequence[typing.Optional[str]]) -> "Polygon":

		"""Return a copy with a different note list (fitted to the side count)."""

		return dataclasses.replace(self, notes=_fit(list(notes), self.sides))


	def to_dict (self) -> typing.Dict[str, typing.Any]:

		"""Exchange shape read by exporters and written to config files."""

		return {
			"id": self.id,
			"sides": self.sides,
			"radius": self.radius,
			"color": self.color,
			"active": self.active,
			"notes": list(self.notes),
			"synth_settings": self.synth.to_dict(),
		}


	@classmethod
	def from_dict (cls, data: typing.Mapping[str, typing.Any]) -> "Polygon":

		"""Build a polygon from its exchange shape. A missing id gets a fresh one."""

		if "sides" not in data:
			raise polyphactory.errors.ConfigurationError("Polygon record needs 'sides'")

		return cls(
			id = int(data["id"]) if data.get("id") is not None else next_polygon_id(),
			sides = int(data["sides"]),
			radius = float(data.get("radius", polyphactory.constants.BASE_RADIUS)),
			color = str(data.get("color", polyphactory.constants.POLYGON_COLORS[0])),
			active = bool(data.get("active", True)),
			notes = list(data.get("notes") or []),
			synth = SynthSettings.from_dict(data.get("synth_settings"))
		)


	def _check_vertex (self, vertex: int) -> None:

		if not 0 <= vertex < self.sides:
			raise IndexError(f"Polygon {self.id} has no vertex {vertex} (sides={self.sides})")


def _fit (notes: typing.List[typing.Optional[str]], sides: int) -> typing.List[typing.Optional[str]]:

	"""Truncate or pad ``notes`` with empty slots to exactly ``sides`` entries."""

	return notes[:sides] + [None] * (sides - len(notes))


def polygon_radius (index: int, spacing: float) -> float:

	return polyphactory.constants.BASE_RADIUS + index * spacing


def make_polygon (index: int, spacing: float = polyphactory.constants.DEFAULT_SPACING) -> Polygon:

	"""Create the polygon added at position ``index`` in the list.

	The first polygon is a triangle, the next a square, and so on (capped at
	12 sides). Radius grows with ``spacing``, colours cycle through a palette,
	and every vertex starts empty.
	"""

	sides = min(index + polyphactory.constants.MIN_SIDES, polyphactory.constants.MAX_SIDES)
	colors = polyphactory.constants.POLYGON_COLORS

	return Polygon(
		id = next_polygon_id(),
		sides = sides,
		radius = polygon_radius(index, spacing),
		color = colors[index % len(colors)],
	)


def relayout (polygons: typing.Sequence[Polygon], spacing: float) -> None:

	"""Recompute every radius for a new ring spacing."""

	for index, polygon in enumerate(polygons):
		polygon.radius = polygon_radius(index, spacing)
