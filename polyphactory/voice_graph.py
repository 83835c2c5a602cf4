"""Signal chains for the synthesis methods.

Each :class:`~polyphactory.synth_settings.SynthMethod` has one builder that
wires sources into an amplitude stage. :func:`build_voice_graph` adds the
shared tail (optional filter, amplitude gain, panner) and the optional LFO,
so supporting a new method means registering one more builder here.

Chain shape:

	sources ──► [method-specific stages] ──► [filter] ──► amp ──► panner ──► (master)
"""

import dataclasses
import logging
import typing

import polyphactory.audio
import polyphactory.synth_settings

from polyphactory.audio import AudioNode, GainNode, OscillatorNode, ScheduledAudioContext
from polyphactory.synth_settings import SynthMethod, SynthSettings


logger = logging.getLogger(__name__)


# Called with (start_time, end_time) once the voice's lifetime is known.
Automation = typing.Callable[[float, float], None]


@dataclasses.dataclass
class VoiceGraph:

	"""The nodes of one voice.

	``amp`` is the stage the amplitude envelope is written to; ``output`` is the
	last stage, to be connected to the master bus.
	"""

	sources: typing.List[OscillatorNode]
	amp: GainNode
	output: AudioNode
	nodes: typing.List[AudioNode]
	automations: typing.List[Automation] = dataclasses.field(default_factory=list)


	def schedule (self, start_time: float, end_time: float) -> None:

		"""Apply method-specific parameter automation for the voice's lifetime."""

		for automation in self.automations:
			automation(start_time, end_time)


	def disconnect (self) -> None:

		"""Detach every node so nothing keeps the graph alive."""

		for node in self.nodes:
			node.disconnect()


class _GraphBuilder:

	"""Creates nodes through the context and remembers them for cleanup."""

	def __init__ (self, context: ScheduledAudioContext) -> None:

		self.context = context
		self.nodes: typing.List[AudioNode] = []
		self.sources: typing.List[OscillatorNode] = []
		self.automations: typing.List[Automation] = []


	def oscillator (self, wave_shape: str, frequency: float) -> OscillatorNode:

		node = self.context.create_oscillator()
		node.type = wave_shape
		node.frequency.value = frequency
		self.nodes.append(node)
		self.sources.append(node)
		return node


	def gain (self, value: float) -> GainNode:

		node = self.context.create_gain()
		node.gain.value = value
		self.nodes.append(node)
		return node


	def filter (self, settings: polyphactory.synth_settings.FilterSettings) -> polyphactory.audio.BiquadFilterNode:

		node = self.context.create_biquad_filter()
		node.type = settings.type
		node.frequency.value = settings.frequency
		node.Q.value = settings.q
		self.nodes.append(node)
		return node


	def panner (self, pan: float) -> polyphactory.audio.StereoPannerNode:

		node = self.context.create_stereo_panner()
		node.pan.value = pan
		self.nodes.append(node)
		return node


# A builder wires its sources into ``into`` (the first shared stage) and returns nothing.
MethodBuilder = typing.Callable[[_GraphBuilder, SynthSettings, float, AudioNode], None]


def _build_subtractive (builder: _GraphBuilder, settings: SynthSettings, frequency: float, into: AudioNode) -> None:

	builder.oscillator(settings.wave_shape, frequency).connect(into)


def _build_additive (builder: _GraphBuilder, settings: SynthSettings, frequency: float, into: AudioNode) -> None:

	params = settings.additive
	partials = list(zip(params.harmonics, params.amplitudes)) or [(1.0, 1.0)]
	total = sum(abs(amplitude) for _, amplitude in partials) or 1.0
	mixer = builder.gain(1.0)

	for harmonic, amplitude in partials:
		partial = builder.oscillator("sine", frequency * harmonic)
		partial.connect(builder.gain(amplitude / total)).connect(mixer)

	mixer.connect(into)


def _build_fm (builder: _GraphBuilder, settings: SynthSettings, frequency: float, into: AudioNode) -> None:

	params = settings.fm
	carrier = builder.oscillator("sine", frequency)
	modulator_frequency = frequency * params.modulator_ratio
	modulator = builder.oscillator(params.modulator_type, modulator_frequency)

	# Peak frequency deviation is index × modulator frequency.
	depth = builder.gain(params.modulation_index * modulator_frequency)
	modulator.connect(depth).connect(carrier.frequency)
	carrier.connect(into)


def _build_wavetable (builder: _GraphBuilder, settings: SynthSettings, frequency: float, into: AudioNode) -> None:

	oscillator = builder.oscillator("sine", frequency)
	oscillator.set_periodic_wave(settings.wavetable.table)
	oscillator.connect(into)


def _build_granular (builder: _GraphBuilder, settings: SynthSettings, frequency: float, into: AudioNode) -> None:

	params = settings.granular
	oscillator = builder.oscillator(settings.wave_shape, frequency * params.grain_pitch)
	window = builder.gain(0.0)
	oscillator.connect(window).connect(into)

	def schedule_grains (start_time: float, end_time: float) -> None:

		period = params.grain_size + params.grain_spacing
		grain_start = start_time

		while grain_start + params.grain_size <= end_time:
			_schedule_grain(window.gain, params.grain_envelope, grain_start, params.grain_size)
			grain_start += period

	builder.automations.append(schedule_grains)


def _schedule_grain (param: polyphactory.audio.AudioParam, shape: str, start: float, size: float) -> None:

	"""Write one grain window to ``param``. Windows never overlap, so events stay in order."""

	if shape == "rect":
		param.set_value_at_time(1.0, start)
		param.set_value_at_time(0.0, start + size)

	elif shape == "gaussian":
		param.set_value_at_time(0.0, start)
		param.linear_ramp_to_value_at_time(1.0, start + size * 0.1)
		param.linear_ramp_to_value_at_time(0.1, start + size * 0.9)
		param.linear_ramp_to_value_at_time(0.0, start + size)

	else:
		param.set_value_at_time(0.0, start)
		param.linear_ramp_to_value_at_time(1.0, start + size * 0.5)
		param.linear_ramp_to_value_at_time(0.0, start + size)


METHOD_BUILDERS: typing.Dict[SynthMethod, MethodBuilder] = {
	SynthMethod.SUBTRACTIVE: _build_subtractive,
	SynthMethod.ADDITIVE: _build_additive,
	SynthMethod.FM: _build_fm,
	SynthMethod.WAVETABLE: _build_wavetable,
	SynthMethod.GRANULAR: _build_granular,
}


def build_voice_graph (context: ScheduledAudioContext, settings: SynthSettings, frequency: float) -> VoiceGraph:

	"""Build the node chain for one voice at ``frequency`` Hz.

	The amplitude stage starts silent; the caller writes the envelope and
	starts the sources. Subtractive voices always include the filter; other
	methods include it only when ``settings.filter.enabled`` is set.

	If construction fails part-way, every node created so far is disconnected
	before the error propagates.
	"""

	builder = _GraphBuilder(context)

	try:
		amp = builder.gain(0.0)
		panner = builder.panner(settings.pan)
		amp.connect(panner)

		use_filter = settings.method == SynthMethod.SUBTRACTIVE or settings.filter.enabled
		filter_node = builder.filter(settings.filter) if use_filter else None
		first_stage: AudioNode = filter_node if filter_node is not None else amp

		if filter_node is not None:
			filter_node.connect(amp)

		METHOD_BUILDERS[settings.method](builder, settings, frequency, first_stage)

		if settings.lfo.enabled:
			_attach_lfo(builder, settings, amp, filter_node)

	except Exception:
		for node in builder.nodes:
			node.disconnect()
		raise

	return VoiceGraph(
		sources = builder.sources,
		amp = amp,
		output = panner,
		nodes = builder.nodes,
		automations = builder.automations
	)


def _attach_lfo (
	builder: _GraphBuilder,
	settings: SynthSettings,
	amp: GainNode,
	filter_node: typing.Optional[polyphactory.audio.BiquadFilterNode]
) -> None:

	"""Route a low-frequency oscillator into the configured target parameter."""

	lfo = settings.lfo
	# Noise has no periodic counterpart here; a square wave is the closest stepped shape.
	shape = "square" if lfo.wave_shape == "noise" else lfo.wave_shape

	if lfo.target == "filter":
		if filter_node is None:
			logger.debug("LFO targets the filter but the voice has none; skipping")
			return
		targets = [filter_node.frequency]
		depth = settings.filter.frequency * lfo.depth

	elif lfo.target == "pitch":
		# Every voice source moves together so partials and FM ratios stay in tune.
		targets = [source.detune for source in builder.sources]
		depth = 100.0 * lfo.depth  # cents

	else:
		targets = [amp.gain]
		depth = lfo.depth

	lfo_gain = builder.gain(depth)
	builder.oscillator(shape, lfo.rate).connect(lfo_gain)

	for target in targets:
		lfo_gain.connect(target)
