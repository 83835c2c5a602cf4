import pytest

import polyphactory.constants
import polyphactory.errors
import polyphactory.polygon
import polyphactory.synth_settings


def test_notes_are_fitted_to_side_count () -> None:

	"""Short note lists are padded with empty vertices and long ones truncated."""

	short = polyphactory.polygon.Polygon(id=1, sides=4, notes=["C"])
	long = polyphactory.polygon.Polygon(id=2, sides=3, notes=["C", "D", "E", "F"])

	assert short.notes == ["C", None, None, None]
	assert long.notes == ["C", "D", "E"]


def test_too_few_sides_is_rejected () -> None:

	"""A polygon needs at least three sides."""

	with pytest.raises(polyphactory.errors.ConfigurationError):
		polyphactory.polygon.Polygon(id=1, sides=2)


def test_unknown_pitch_is_rejected () -> None:

	"""Construction validates every stored pitch."""

	with pytest.raises(polyphactory.errors.ConfigurationError):
		polyphactory.polygon.Polygon(id=1, sides=3, notes=["C", "X", None])


def test_vertex_angles () -> None:

	"""Vertex i of an N-gon sits at i * 360 / N degrees."""

	pentagon = polyphactory.polygon.Polygon(id=1, sides=5)

	assert [pentagon.vertex_angle(i) for i in range(5)] == [0.0, 72.0, 144.0, 216.0, 288.0]


def test_resize_preserves_notes_by_index () -> None:

	"""Growing keeps existing notes and adds empty vertices; shrinking drops the tail."""

	polygon = polyphactory.polygon.Polygon(id=1, sides=4, notes=["C", "D", "E", "F"])

	polygon.resize(6)
	assert polygon.notes == ["C", "D", "E", "F", None, None]

	polygon.resize(3)
	assert polygon.sides == 3
	assert polygon.notes == ["C", "D", "E"]


def test_resize_clamps () -> None:

	"""Side counts outside 3-12 are clamped."""

	polygon = polyphactory.polygon.Polygon(id=1, sides=4)

	polygon.resize(40)
	assert polygon.sides == polyphactory.constants.MAX_SIDES
	assert len(polygon.notes) == polyphactory.constants.MAX_SIDES

	polygon.resize(1)
	assert polygon.sides == polyphactory.constants.MIN_SIDES


def test_set_and_clear_note () -> None:

	"""Notes can be assigned and cleared; bad vertices and pitches raise."""

	polygon = polyphactory.polygon.Polygon(id=1, sides=3)

	polygon.set_note(1, "G#")
	assert polygon.notes == [None, "G#", None]

	polygon.clear_note(1)
	assert polygon.notes == [None, None, None]

	with pytest.raises(IndexError):
		polygon.set_note(3, "C")

	with pytest.raises(polyphactory.errors.ConfigurationError):
		polygon.set_note(0, "Q")


def test_exchange_shape_round_trip () -> None:

	"""to_dict output rebuilds an equal polygon."""

	settings = polyphactory.synth_settings.PRESETS["FM Bass"]
	polygon = polyphactory.polygon.Polygon(id=7, sides=5, radius=140, color="#ff00ff", active=False, notes=["C", None, "E"], synth=settings)

	data = polygon.to_dict()

	assert data["notes"] == ["C", None, "E", None, None]
	assert data["synth_settings"]["method"] == "fm"
	assert polyphactory.polygon.Polygon.from_dict(data) == polygon


def test_from_dict_requires_sides () -> None:

	"""A record without a side count is rejected."""

	with pytest.raises(polyphactory.errors.ConfigurationError):
		polyphactory.polygon.Polygon.from_dict({"notes": ["C"]})


def test_from_dict_assigns_fresh_id () -> None:

	"""Records without an id get a new unique one."""

	a = polyphactory.polygon.Polygon.from_dict({"sides": 3})
	b = polyphactory.polygon.Polygon.from_dict({"sides": 3})

	assert a.id != b.id


def test_loaded_ids_are_never_reissued () -> None:

	"""Fresh ids skip past any id a loaded polygon already carries."""

	loaded = polyphactory.polygon.Polygon.from_dict({"id": 9000, "sides": 4})

	assert polyphactory.polygon.next_polygon_id() > loaded.id
	assert polyphactory.polygon.make_polygon(0).id > loaded.id


def test_make_polygon_grows_with_index () -> None:

	"""Each new ring has one more side and a larger radius, capped at twelve sides."""

	first = polyphactory.polygon.make_polygon(0)
	third = polyphactory.polygon.make_polygon(2, spacing=50)
	last = polyphactory.polygon.make_polygon(20)

	assert first.sides == 3
	assert first.radius == polyphactory.constants.BASE_RADIUS
	assert third.sides == 5
	assert third.radius == polyphactory.constants.BASE_RADIUS + 100
	assert third.notes == [None] * 5
	assert last.sides == polyphactory.constants.MAX_SIDES


def test_relayout_recomputes_radii () -> None:

	"""Changing spacing moves every ring."""

	polygons = [polyphactory.polygon.make_polygon(i) for i in range(3)]

	polyphactory.polygon.relayout(polygons, 20)

	assert [p.radius for p in polygons] == [60, 80, 100]
