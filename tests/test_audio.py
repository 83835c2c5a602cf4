import pytest

import polyphactory.audio
import polyphactory.errors


@pytest.fixture
def context (clock) -> polyphactory.audio.ScheduledAudioContext:

	"""A running context on the fake clock."""

	return polyphactory.audio.ScheduledAudioContext(clock=clock)


def test_current_time_follows_clock (clock) -> None:

	"""Context time is measured from the clock reading at construction."""

	clock.now = 10.0
	context = polyphactory.audio.ScheduledAudioContext(clock=clock)

	assert context.current_time == 0.0

	clock.advance(1.5)
	assert context.current_time == pytest.approx(1.5)


def test_param_value_at_follows_automation () -> None:

	"""A ramp interpolates from the previous event to its own time and value."""

	param = polyphactory.audio.AudioParam("gain", 1.0)
	param.set_value_at_time(0.0, 1.0)
	param.linear_ramp_to_value_at_time(0.8, 2.0)
	param.set_value_at_time(0.8, 3.0)
	param.linear_ramp_to_value_at_time(0.0, 4.0)

	assert param.value_at(0.5) == 1.0
	assert param.value_at(1.0) == 0.0
	assert param.value_at(1.5) == pytest.approx(0.4)
	assert param.value_at(2.5) == pytest.approx(0.8)
	assert param.value_at(3.5) == pytest.approx(0.4)
	assert param.value_at(5.0) == 0.0


def test_param_rejects_out_of_order_events () -> None:

	"""Automation must be written in time order."""

	param = polyphactory.audio.AudioParam("gain", 1.0)
	param.set_value_at_time(0.0, 2.0)

	with pytest.raises(ValueError):
		param.linear_ramp_to_value_at_time(1.0, 1.0)

	with pytest.raises(ValueError):
		param.set_value_at_time(float("nan"), 3.0)


def test_cancel_scheduled_values () -> None:

	"""Cancelling drops events at or after the given time."""

	param = polyphactory.audio.AudioParam("gain", 1.0)
	param.set_value_at_time(0.0, 1.0)
	param.linear_ramp_to_value_at_time(1.0, 2.0)

	param.cancel_scheduled_values(2.0)

	assert param.events == [(1.0, "set", 0.0)]


def test_param_values_are_clamped () -> None:

	"""Values outside a parameter's range are clamped."""

	param = polyphactory.audio.AudioParam("pan", 0.0, -1.0, 1.0)
	param.value = 3.0

	assert param.value == 1.0


def test_source_start_and_stop (context, clock) -> None:

	"""Sources sound between their start and stop times."""

	osc = context.create_oscillator()
	osc.start(0.5)
	osc.stop(1.5)

	assert not osc.is_sounding(0.4)
	assert osc.is_sounding(0.5)
	assert osc.is_sounding(1.0)
	assert not osc.is_sounding(1.5)


def test_stopping_an_ended_source_raises (context, clock) -> None:

	"""Stopping a source that never started or already ended is an invalid state."""

	osc = context.create_oscillator()

	with pytest.raises(polyphactory.audio.InvalidStateError):
		osc.stop()

	osc.start(0.0)
	osc.stop(1.0)
	clock.advance(2.0)

	with pytest.raises(polyphactory.audio.InvalidStateError):
		osc.stop()


def test_source_starts_once (context) -> None:

	"""A source cannot be started twice."""

	osc = context.create_oscillator()
	osc.start()

	with pytest.raises(polyphactory.audio.InvalidStateError):
		osc.start()


def test_oscillator_types (context) -> None:

	"""Custom waveforms are set through a periodic wave, not the type property."""

	osc = context.create_oscillator()
	osc.type = "sawtooth"
	assert osc.type == "sawtooth"

	with pytest.raises(ValueError):
		osc.type = "custom"

	osc.set_periodic_wave([0.0, 1.0, 0.0, -1.0])
	assert osc.type == "custom"
	assert osc.wavetable == (0.0, 1.0, 0.0, -1.0)


def test_filter_type_is_validated (context) -> None:

	"""Only the four supported filter responses are accepted."""

	node = context.create_biquad_filter()
	node.type = "notch"

	with pytest.raises(ValueError):
		node.type = "comb"


def test_connect_to_param_and_disconnect (context) -> None:

	"""Connecting into a parameter registers a modulating input; disconnect removes it."""

	carrier = context.create_oscillator()
	depth = context.create_gain()

	depth.connect(carrier.frequency)
	assert carrier.frequency.inputs == [depth]

	depth.disconnect()
	assert carrier.frequency.inputs == []
	assert depth.outputs == []


def test_context_lifecycle (clock) -> None:

	"""Suspended contexts resume; closed contexts refuse to resume or create nodes."""

	context = polyphactory.audio.ScheduledAudioContext(clock=clock, state=polyphactory.audio.SUSPENDED)

	context.resume()
	assert context.state == polyphactory.audio.RUNNING

	context.suspend()
	assert context.state == polyphactory.audio.SUSPENDED

	context.close()

	with pytest.raises(polyphactory.errors.ResourceError):
		context.resume()

	with pytest.raises(polyphactory.errors.ResourceError):
		context.create_gain()


def test_nodes_created_counter (context) -> None:

	"""The context counts the nodes it creates."""

	context.create_gain()
	context.create_stereo_panner()

	assert context.nodes_created == 2
