import logging

import pytest

import polyphactory.audio
import polyphactory.constants
import polyphactory.errors
import polyphactory.voice_graph
import polyphactory.voices

from polyphactory.synth_settings import Envelope, SynthSettings


@pytest.fixture
def context (clock) -> polyphactory.audio.ScheduledAudioContext:

	return polyphactory.audio.ScheduledAudioContext(clock=clock)


@pytest.fixture
def engine (context) -> polyphactory.voices.VoiceEngine:

	return polyphactory.voices.VoiceEngine(context)


def test_pitch_to_frequency () -> None:

	"""Bare note names sit in octave 4, tuned to A4 = 440 Hz."""

	assert polyphactory.voices.pitch_to_frequency("A") == pytest.approx(440.0)
	assert polyphactory.voices.pitch_to_frequency("C") == pytest.approx(261.6256, abs=0.001)
	assert polyphactory.voices.pitch_to_frequency("A5") == pytest.approx(880.0)
	assert polyphactory.voices.pitch_to_frequency("Bb") == pytest.approx(polyphactory.voices.pitch_to_frequency("A#"))

	with pytest.raises(polyphactory.errors.ConfigurationError):
		polyphactory.voices.pitch_to_frequency("Z")


def test_plan_envelope_full_adsr () -> None:

	"""Attack and decay run from the start; the release ramp ends at start + duration."""

	plan = polyphactory.voices.plan_envelope(1.0, 1.0, Envelope(0.01, 0.1, 0.8, 0.3), 0.5)

	assert not plan.compressed
	assert plan.attack_end == pytest.approx(1.01)
	assert plan.decay_end == pytest.approx(1.11)
	assert plan.release_start == pytest.approx(1.7)
	assert plan.end == pytest.approx(2.0)
	assert plan.sustain_level == pytest.approx(0.4)


def test_plan_envelope_compresses_short_notes () -> None:

	"""When attack and decay do not fit, the note starts at peak and fades to silence."""

	plan = polyphactory.voices.plan_envelope(0.0, 0.1, Envelope(0.05, 0.05, 0.5, 0.3), 0.6)

	assert plan.compressed
	assert plan.points() == [(0.0, "set", 0.6), (0.1, "ramp", 0.0)]


def test_plan_envelope_shortens_long_release () -> None:

	"""A release longer than the time left after decay starts where decay ends."""

	plan = polyphactory.voices.plan_envelope(0.0, 0.5, Envelope(0.1, 0.1, 0.5, 1.0), 1.0)

	assert plan.release_start == pytest.approx(plan.decay_end)
	times = [point[0] for point in plan.points()]
	assert times == sorted(times)


def test_play_voice_writes_envelope_and_lifetime (engine, context, clock) -> None:

	"""A played voice follows its envelope and its sources stop after the release tail."""

	clock.now = 2.0
	settings = SynthSettings.from_dict({"envelope": {"attack": 0.01, "decay": 0.1, "sustain": 0.8, "release": 0.3}})

	voice_id = engine.play_voice("A", duration=1.0, volume=0.5, settings=settings)

	assert voice_id is not None
	assert voice_id.startswith("A_")

	voice = engine.voices[voice_id]
	gain = voice.graph.amp.gain

	assert voice.frequency == pytest.approx(440.0)
	assert gain.value_at(2.0) == 0.0
	assert gain.value_at(2.01) == pytest.approx(0.5)
	assert gain.value_at(2.5) == pytest.approx(0.4)
	assert gain.value_at(3.0) == 0.0

	for source in voice.graph.sources:
		assert source.start_time == pytest.approx(2.0)
		assert source.stop_time == pytest.approx(3.0 + 0.3 + polyphactory.constants.SOURCE_STOP_MARGIN)


def test_play_voice_connects_to_master (engine, context) -> None:

	"""Voices feed a master gain set to the engine's volume."""

	engine.set_master_volume(0.7)
	voice_id = engine.play_voice("C")

	voice = engine.voices[voice_id]
	(master,) = voice.graph.output.outputs

	assert master.gain.value == pytest.approx(0.7)
	assert master.outputs == [context.destination]


def test_voice_ids_are_unique (engine) -> None:

	"""Concurrent voices of the same pitch get distinct ids."""

	first = engine.play_voice("E")
	second = engine.play_voice("E")

	assert first != second
	assert engine.live_voice_count == 2


def test_play_voice_skips_unplayable_notes (engine, context, caplog: pytest.LogCaptureFixture) -> None:

	"""Disabled sounds, unknown pitches, empty durations and a stopped context play nothing."""

	assert engine.play_voice("C", settings=SynthSettings(enabled=False)) is None

	with caplog.at_level(logging.WARNING):
		assert engine.play_voice("H") is None
		assert engine.play_voice("C", duration=0) is None

		context.suspend()
		assert engine.play_voice("C") is None

	assert engine.live_voice_count == 0
	assert "suspended" in caplog.text


def test_play_voice_survives_graph_failure (engine, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:

	"""A failure while building the graph is logged and the note is skipped."""

	def failing_build (*args, **kwargs):
		raise polyphactory.errors.ResourceError("no more nodes")

	monkeypatch.setattr(polyphactory.voice_graph, "build_voice_graph", failing_build)

	with caplog.at_level(logging.ERROR):
		assert engine.play_voice("C") is None

	assert "Failed to build voice" in caplog.text
	assert engine.live_voice_count == 0


def test_collect_releases_expired_voices (engine, clock) -> None:

	"""Voices are reclaimed once their sources have stopped, not before."""

	engine.play_voice("C", duration=1.0, settings=SynthSettings.from_dict({"envelope": {"release": 0.5}}))
	engine.play_voice("G", duration=2.0, settings=SynthSettings.from_dict({"envelope": {"release": 0.5}}))

	clock.now = 1.4
	assert engine.collect() == 0

	clock.now = 1.6
	assert engine.collect() == 1
	assert engine.live_voice_count == 1

	clock.now = 10.0
	assert engine.collect() == 1
	assert engine.live_voice_count == 0


def test_release_is_idempotent (engine) -> None:

	"""Releasing a voice twice only releases it once."""

	voice_id = engine.play_voice("C")

	assert engine._release(voice_id) is True
	assert engine._release(voice_id) is False
	assert engine.collect(1000.0) == 0


def test_stop_all_voices_tolerates_finished_sources (engine, clock) -> None:

	"""Stopping everything works even when some sources already ended on their own."""

	engine.play_voice("C", duration=0.1, settings=SynthSettings.from_dict({"envelope": {"attack": 0, "decay": 0, "release": 0}}))
	engine.play_voice("E", duration=5.0)

	clock.now = 1.0
	engine.stop_all_voices()

	assert engine.live_voice_count == 0
	assert engine.collect(1000.0) == 0


def test_stop_all_voices_on_empty_engine (engine, caplog: pytest.LogCaptureFixture) -> None:

	"""With nothing sounding, stopping everything does nothing and stays quiet."""

	with caplog.at_level(logging.INFO):
		engine.stop_all_voices()
		engine.stop_all_voices()

	assert engine.live_voice_count == 0
	assert engine.voices == {}
	assert "Stopped" not in caplog.text


def test_stop_all_voices_cuts_sources_now (engine, clock) -> None:

	"""Sources of sounding voices stop at the current time."""

	voice_id = engine.play_voice("C", duration=5.0)
	sources = engine.voices[voice_id].graph.sources

	clock.now = 1.0
	engine.stop_all_voices()

	assert all(source.stop_time == pytest.approx(1.0) for source in sources)


def test_master_volume_is_clamped (engine) -> None:

	"""Master volume stays within 0..1."""

	engine.set_master_volume(1.5)
	assert engine.master_volume == 1.0

	engine.set_master_volume(-1)
	assert engine.master_volume == 0.0
