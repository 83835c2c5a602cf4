import logging

import polyphactory
import polyphactory.synth_settings

logging.basicConfig(level=logging.INFO)

# One ring per preset, each holding the root on every vertex.
session = polyphactory.Session(rpm=12, scale="Dorian", root="D", polygons=[])

for name, settings in polyphactory.synth_settings.PRESETS.items():

	polygon = session.add_polygon()
	session.set_synth_settings(polygon.id, settings)

	for vertex in range(0, polygon.sides, 2):
		session.set_note(polygon.id, vertex, "D")

	logging.info(f"{polygon.sides}-gon plays the {name} preset")

session.osc()
session.record("presets.mid")

session.play()
session.start()
