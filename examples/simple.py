import logging

import polyphactory
import polyphactory.synth_settings

logging.basicConfig(level=logging.INFO)

# 3 against 4 against 5, in A minor.
session = polyphactory.Session(rpm=24, scale="Minor", root="A")

square = session.add_polygon()
pentagon = session.add_polygon()

session.set_note(square.id, 0, "A")
session.set_note(square.id, 2, "E")

session.set_note(pentagon.id, 1, "C")
session.set_note(pentagon.id, 3, "G")

session.set_synth_settings(pentagon.id, polyphactory.synth_settings.PRESETS["Bell"])

session.play()
session.start()
