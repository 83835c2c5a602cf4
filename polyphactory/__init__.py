"""
Polyphactory - a polyrhythmic instrument built from rotating polygons.

Nested regular polygons share a centre. A playhead sweeps around them at a
set speed, and every time it passes a vertex that holds a pitch, a note
sounds. A triangle inside a square inside a pentagon gives three
interlocking pulses per revolution: 3 against 4 against 5.

What it does:

- **Exact crossings.** Each frame the playhead sweeps an arc, and every
  vertex inside that arc fires once. Dropped frames, RPM changes and
  wrap-around at 0° never skip or double a note.
- **Scale-aware notes.** Vertices hold note names. Changing the scale or
  root moves every stored pitch to the nearest member of the new scale,
  leaving in-scale notes where they are.
- **Per-polygon sound.** Each polygon has its own synth settings:
  subtractive, additive, FM, wavetable or granular, with an ADSR
  envelope, filter, pan and LFO.
- **Bounded voices.** Every note owns its signal chain for a fixed
  lifetime and is reclaimed when its release tail has passed.

Integration:

- **OSC** control and state broadcast (``session.osc()``).
- **MIDI** mirroring of triggers to an output port (``session.midi_output()``)
  and recording to a Standard MIDI File (``session.record()``).

Minimal example:

	```python
	import polyphactory

	session = polyphactory.Session(rpm=20, scale="Dorian", root="D")
	session.add_polygon()          # a square around the default triangle
	session.cycle_note(session.polygons[1].id, 0)
	session.play()
	session.start()
	```

Package-level exports: ``Session``, ``Polygon``, ``SynthSettings``, ``register_scale``.
"""

import polyphactory.polygon
import polyphactory.scales
import polyphactory.session
import polyphactory.synth_settings


Session = polyphactory.session.Session
Polygon = polyphactory.polygon.Polygon
SynthSettings = polyphactory.synth_settings.SynthSettings
register_scale = polyphactory.scales.register_scale
