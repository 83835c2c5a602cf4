"""Scale definitions, pitch-class helpers and scale-change remapping.

Pitches are stored on polygon vertices as note names (``"C"``, ``"F#"``,
``"Bb"``), optionally followed by an octave (``"A4"``). Scale membership is
decided by pitch class, so ``"Db"`` and ``"C#"`` are the same member.

Module-level constants:
- `NOTE_NAME_TO_PC`: Maps note names to pitch classes (0-11)
- `PC_TO_NOTE_NAME`: Maps pitch classes to sharp-spelled note names
- `SCALE_INTERVALS`: Maps scale names to semitone offsets from the root
- `DEGREE_COLORS`: One colour per scale degree, root first
"""

import logging
import re
import typing

import polyphactory.errors

if typing.TYPE_CHECKING:
	from polyphactory.polygon import Polygon


logger = logging.getLogger(__name__)


NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
}

PC_TO_NOTE_NAME: typing.List[str] = [
	"C",
	"C#",
	"D",
	"D#",
	"E",
	"F",
	"F#",
	"G",
	"G#",
	"A",
	"A#",
	"B",
]

SCALE_INTERVALS: typing.Dict[str, typing.List[int]] = {
	"Major": [0, 2, 4, 5, 7, 9, 11],
	"Minor": [0, 2, 3, 5, 7, 8, 10],
	"Pentatonic": [0, 2, 4, 7, 9],
	"Dorian": [0, 2, 3, 5, 7, 9, 10],
	"Mixolydian": [0, 2, 4, 5, 7, 9, 10],
	"Phrygian": [0, 1, 3, 5, 7, 8, 10],
	"Lydian": [0, 2, 4, 6, 7, 9, 11],
	"Locrian": [0, 1, 3, 5, 6, 8, 10],
	"Harmonic Minor": [0, 2, 3, 5, 7, 8, 11],
	"Minor Pentatonic": [0, 3, 5, 7, 10],
	"Blues": [0, 3, 5, 6, 7, 10],
}

DEFAULT_SCALE: str = "Major"

DEGREE_COLORS: typing.List[str] = [
	"#ff0000",  # root
	"#ff4000",
	"#ff8000",
	"#ffbf00",
	"#ffff00",
	"#bfff00",
	"#80ff00",
	"#40ff00",
	"#00ff40",
	"#00ff80",
	"#00ffbf",
	"#00ffff",
]

EMPTY_COLOR: str = "transparent"

_PITCH_PATTERN = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)?$")


def parse_pitch (pitch: str) -> typing.Tuple[int, typing.Optional[int]]:

	"""Split a pitch such as ``"F#"`` or ``"Bb3"`` into (pitch class, octave).

	The octave is ``None`` when the name carries none.

	Raises:
		ConfigurationError: If the name is not a recognised pitch.
	"""

	match = _PITCH_PATTERN.match(pitch.strip()) if isinstance(pitch, str) else None

	if match is None:
		raise polyphactory.errors.ConfigurationError(f"Unknown pitch name: {pitch!r}. Expected e.g. 'C', 'F#', 'Bb4'.")

	letter, accidental, octave = match.groups()
	pc = NOTE_NAME_TO_PC[letter.upper() + accidental]

	return pc, int(octave) if octave is not None else None


def note_name_to_pc (name: str) -> int:

	"""Return the pitch class (0-11) of a note name, ignoring any octave.

	Example:
		```python
		note_name_to_pc("C")    # → 0
		note_name_to_pc("Bb")   # → 10
		note_name_to_pc("F#5")  # → 6
		```
	"""

	pc, _ = parse_pitch(name)
	return pc


def register_scale (name: str, intervals: typing.Sequence[int]) -> None:

	"""Add (or replace) a named scale.

	Parameters:
		name: Name used with :func:`scale_notes`.
		intervals: Semitone offsets from the root. Must start at 0 and stay within 0-11.

	Raises:
		ConfigurationError: If the interval list is malformed.
	"""

	offsets = list(intervals)

	if not offsets or offsets[0] != 0:
		raise polyphactory.errors.ConfigurationError(f"Scale {name!r} must start with interval 0")

	if any(not 0 <= offset <= 11 for offset in offsets) or len(set(offsets)) != len(offsets):
		raise polyphactory.errors.ConfigurationError(f"Scale {name!r} intervals must be distinct values in 0-11")

	SCALE_INTERVALS[name] = offsets


def scale_intervals (scale_name: str) -> typing.List[int]:

	"""Return the interval pattern for a scale.

	Unknown names fall back to the default (major) pattern rather than
	failing, so a stale or misspelled scale name still yields a playable set.
	"""

	if scale_name not in SCALE_INTERVALS:
		logger.debug(f"Unknown scale {scale_name!r}, using {DEFAULT_SCALE}")
		return list(SCALE_INTERVALS[DEFAULT_SCALE])

	return list(SCALE_INTERVALS[scale_name])


def scale_pitch_classes (scale_name: str, root: typing.Union[str, int]) -> typing.List[int]:

	"""Return the ordered pitch classes of a scale built on a root.

	Example:
		```python
		scale_pitch_classes("Major", "D")  # → [2, 4, 6, 7, 9, 11, 1]
		```
	"""

	root_pc = root % 12 if isinstance(root, int) else note_name_to_pc(root)

	return [(root_pc + interval) % 12 for interval in scale_intervals(scale_name)]


def scale_notes (scale_name: str, root: typing.Union[str, int]) -> typing.List[str]:

	"""Return the ordered note names of a scale, starting from the root.

	Parameters:
		scale_name: A key of :data:`SCALE_INTERVALS`. Unknown names use the major pattern.
		root: Root note name (``"C"``, ``"F#"``, ``"Bb"``) or pitch class.

	Returns:
		Sharp-spelled note names, one per scale degree (7 for diatonic scales, 5 for pentatonic).

	Example:
		```python
		scale_notes("Major", "C")  # → ["C", "D", "E", "F", "G", "A", "B"]
		scale_notes("Major", "D")  # → ["D", "E", "F#", "G", "A", "B", "C#"]
		```
	"""

	return [PC_TO_NOTE_NAME[pc] for pc in scale_pitch_classes(scale_name, root)]


def remap_pitch (pitch: typing.Optional[str], pitch_set: typing.Sequence[str]) -> typing.Optional[str]:

	"""Move a pitch into a pitch set with as little change as possible.

	A pitch whose class is already in the set is returned unchanged. Otherwise
	the member with the smallest absolute distance in the C..B ordering wins;
	on a tie the member that comes first in ``pitch_set`` is kept. Empty
	vertices (``None``) stay empty.

	Example:
		```python
		remap_pitch("C#", ["C", "D", "E"])  # → "C"  (tie, C comes first)
		remap_pitch("C#", ["D", "C", "E"])  # → "D"
		remap_pitch(None, ["C"])             # → None
		```
	"""

	if pitch is None:
		return None

	if not pitch_set:
		return pitch

	current = note_name_to_pc(pitch)
	candidates = [note_name_to_pc(member) for member in pitch_set]

	if current in candidates:
		return pitch

	best_index = 0
	best_distance = abs(current - candidates[0])

	for index, candidate in enumerate(candidates):
		distance = abs(current - candidate)
		if distance < best_distance:
			best_distance = distance
			best_index = index

	return pitch_set[best_index]


def remap_all_polygons (polygons: typing.Sequence["Polygon"], scale_name: str, root: typing.Union[str, int]) -> typing.List["Polygon"]:

	"""Return copies of ``polygons`` whose vertex pitches all lie in the new scale.

	Each vertex is remapped independently with :func:`remap_pitch`. The input
	polygons are not modified. Applying the same scale and root twice gives the
	same result as applying it once.
	"""

	pitch_set = scale_notes(scale_name, root)

	return [polygon.with_notes([remap_pitch(note, pitch_set) for note in polygon.notes]) for polygon in polygons]


def scale_degree (pitch: str, scale_name: str, root: typing.Union[str, int]) -> typing.Optional[int]:

	"""Return the zero-based degree of ``pitch`` within the scale, or ``None`` if it is outside."""

	pcs = scale_pitch_classes(scale_name, root)
	pc = note_name_to_pc(pitch)

	return pcs.index(pc) if pc in pcs else None


def degree_color (pitch: typing.Optional[str], scale_name: str, root: typing.Union[str, int], fallback: str) -> str:

	"""Colour a pitch by its scale degree.

	Empty vertices are transparent. Pitches outside the scale (or unparseable
	ones) get ``fallback``.
	"""

	if pitch is None:
		return EMPTY_COLOR

	try:
		degree = scale_degree(pitch, scale_name, root)
	except polyphactory.errors.ConfigurationError:
		return fallback

	if degree is None or degree >= len(DEGREE_COLORS):
		return fallback

	return DEGREE_COLORS[degree]
