"""Shared defaults for the playhead, polygons and voices."""

import typing


# Playhead
DEFAULT_RPM: float = 15
MIN_RPM: float = 1
MAX_RPM: float = 300
DEFAULT_FRAME_RATE: int = 60

# Manual jumps park the playhead slightly before the edited vertex and hold it there briefly.
MANUAL_JUMP_COOLDOWN: float = 0.5
JUMP_LEAD_DEGREES: float = 5.0

# Repeat suppression, as fractions of one revolution.
TRIGGER_GUARD_FRACTION: float = 0.05
TRIGGER_GUARD_MAX_FRACTION: float = 0.5

# Polygons
MIN_SIDES: int = 3
MAX_SIDES: int = 12
BASE_RADIUS: float = 60
DEFAULT_SPACING: float = 40
MIN_SPACING: float = 20
MAX_SPACING: float = 100

POLYGON_COLORS: typing.List[str] = ["#00ff00", "#ff00ff", "#ffff00", "#00ffff", "#ff6600"]

# Tuning
REFERENCE_FREQUENCY: float = 440.0
REFERENCE_MIDI_NOTE: int = 69  # A4
DEFAULT_OCTAVE: int = 4

# Voices
DEFAULT_NOTE_DURATION: float = 1.0
DEFAULT_TRIGGER_VOLUME: float = 0.5
DEFAULT_MASTER_VOLUME: float = 0.5

# Sources keep running this long past the release tail so no ramp is cut short.
SOURCE_STOP_MARGIN: float = 0.02

# OSC
DEFAULT_OSC_RECEIVE_PORT: int = 9000
DEFAULT_OSC_SEND_PORT: int = 9001
DEFAULT_OSC_SEND_HOST: str = "127.0.0.1"

# MIDI recording
RECORD_TICKS_PER_BEAT: int = 480
RECORD_TEMPO_BPM: float = 120
