import mido

import polyphactory
import polyphactory.midi

# Print the note list a session would play over two revolutions, without playing it.
session = polyphactory.Session(rpm=30, scale="Pentatonic", root="C")

square = session.add_polygon()
session.set_note(square.id, 0, "C")
session.set_note(square.id, 1, "D")
session.set_note(square.id, 3, "A")

for event in session.note_events(revolutions=2):
	print(f"{event.time:6.3f}s  polygon {event.polygon_id} vertex {event.vertex}  {event.pitch:<3} (MIDI {event.midi_note})")

recorder = polyphactory.midi.TriggerRecorder("export.mid")

for event in session.note_events(revolutions=2):
	recorder.record(event.time, mido.Message('note_on', channel=event.channel, note=event.midi_note, velocity=64))
	recorder.record(event.time + event.duration, mido.Message('note_off', channel=event.channel, note=event.midi_note, velocity=0))

recorder.save()
