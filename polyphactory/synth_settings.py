"""Per-polygon synthesis settings.

A polygon's sound is described by a single frozen :class:`SynthSettings`
record. Every default is resolved once, when the record is built with
:meth:`SynthSettings.from_dict`, so voices never have to fill gaps
themselves. Reverb, delay, distortion and LFO values are carried for the
audio subsystem as given.

Exchange shape (all sections and keys optional):

	```python
	{
		"enabled": True,
		"method": "subtractive",
		"wave_shape": "sine",
		"pan": 0.0,
		"envelope": {"attack": 0.01, "decay": 0.1, "sustain": 0.8, "release": 0.3},
		"filter": {"enabled": False, "type": "lowpass", "frequency": 1000, "q": 1},
		"effects": {"reverb": {...}, "delay": {...}, "distortion": {...}},
		"lfo": {"enabled": False, "wave_shape": "sine", "rate": 1, "depth": 0.5, "target": "filter"},
		"additive": {"harmonics": [1, 2, 3], "amplitudes": [1, 0.5, 0.25]},
		"fm": {"modulator_ratio": 1, "modulation_index": 5, "modulator_type": "sine"},
		"wavetable": {"shape": "sine"} or {"table": [...]},
		"granular": {"grain_size": 0.05, "grain_spacing": 0.02, "grain_pitch": 1, "grain_envelope": "hann"},
	}
	```
"""

import dataclasses
import enum
import logging
import math
import typing

import polyphactory.errors


logger = logging.getLogger(__name__)


WAVE_SHAPES: typing.Tuple[str, ...] = ("sine", "square", "sawtooth", "triangle")
FILTER_TYPES: typing.Tuple[str, ...] = ("lowpass", "highpass", "bandpass", "notch")
LFO_SHAPES: typing.Tuple[str, ...] = WAVE_SHAPES + ("noise",)
LFO_TARGETS: typing.Tuple[str, ...] = ("filter", "pitch", "volume")
GRAIN_ENVELOPES: typing.Tuple[str, ...] = ("gaussian", "hann", "rect")

WAVETABLE_LENGTH: int = 64


class SynthMethod (enum.Enum):

	"""The ways a voice can produce its signal."""

	SUBTRACTIVE = "subtractive"
	ADDITIVE = "additive"
	FM = "fm"
	WAVETABLE = "wavetable"
	GRANULAR = "granular"


@dataclasses.dataclass(frozen=True)
class Envelope:

	"""Attack, decay and release in seconds; sustain as a fraction of peak."""

	attack: float = 0.01
	decay: float = 0.1
	sustain: float = 0.8
	release: float = 0.3


@dataclasses.dataclass(frozen=True)
class FilterSettings:

	enabled: bool = False
	type: str = "lowpass"
	frequency: float = 1000.0
	q: float = 1.0


@dataclasses.dataclass(frozen=True)
class ReverbSettings:

	enabled: bool = False
	mix: float = 0.3
	decay: float = 2.0


@dataclasses.dataclass(frozen=True)
class DelaySettings:

	enabled: bool = False
	mix: float = 0.3
	time: float = 0.3
	feedback: float = 0.4


@dataclasses.dataclass(frozen=True)
class DistortionSettings:

	enabled: bool = False
	mix: float = 0.3
	amount: float = 20.0


@dataclasses.dataclass(frozen=True)
class EffectSettings:

	reverb: ReverbSettings = dataclasses.field(default_factory=ReverbSettings)
	delay: DelaySettings = dataclasses.field(default_factory=DelaySettings)
	distortion: DistortionSettings = dataclasses.field(default_factory=DistortionSettings)


@dataclasses.dataclass(frozen=True)
class LfoSettings:

	enabled: bool = False
	wave_shape: str = "sine"
	rate: float = 1.0
	depth: float = 0.5
	target: str = "filter"


@dataclasses.dataclass(frozen=True)
class AdditiveParams:

	"""Partials as multiples of the fundamental, with one amplitude each."""

	harmonics: typing.Tuple[float, ...] = (1, 2, 3, 4, 5, 6, 7, 8)
	amplitudes: typing.Tuple[float, ...] = (1, 0.8, 0.6, 0.4, 0.3, 0.2, 0.1, 0.05)


@dataclasses.dataclass(frozen=True)
class FmParams:

	"""The modulator runs at ``modulator_ratio`` times the carrier frequency."""

	modulator_ratio: float = 1.0
	modulation_index: float = 5.0
	modulator_type: str = "sine"


@dataclasses.dataclass(frozen=True)
class WavetableParams:

	table: typing.Tuple[float, ...] = ()


@dataclasses.dataclass(frozen=True)
class GranularParams:

	grain_size: float = 0.05
	grain_spacing: float = 0.02
	grain_pitch: float = 1.0
	grain_envelope: str = "hann"


@dataclasses.dataclass(frozen=True)
class SynthSettings:

	"""Everything a voice needs to know about how a polygon sounds.

	Instances are immutable; a voice keeps the record it was started with even
	if the polygon's settings are replaced while it rings.
	"""

	enabled: bool = True
	method: SynthMethod = SynthMethod.SUBTRACTIVE
	wave_shape: str = "sine"
	pan: float = 0.0
	envelope: Envelope = dataclasses.field(default_factory=Envelope)
	filter: FilterSettings = dataclasses.field(default_factory=FilterSettings)
	effects: EffectSettings = dataclasses.field(default_factory=EffectSettings)
	lfo: LfoSettings = dataclasses.field(default_factory=LfoSettings)
	additive: AdditiveParams = dataclasses.field(default_factory=AdditiveParams)
	fm: FmParams = dataclasses.field(default_factory=FmParams)
	wavetable: WavetableParams = dataclasses.field(default_factory=lambda: WavetableParams(generate_wavetable("sine")))
	granular: GranularParams = dataclasses.field(default_factory=GranularParams)


	@classmethod
	def from_dict (cls, data: typing.Optional[typing.Mapping[str, typing.Any]]) -> "SynthSettings":

		"""Build settings from a (possibly partial) nested mapping.

		Missing keys take their defaults. Out-of-range numbers are clamped and
		unknown names fall back to the default with a warning.

		Raises:
			ConfigurationError: If ``data`` or one of its sections is not a mapping,
				or a numeric field holds something that is not a number.
		"""

		if data is None:
			return cls()

		_require_mapping(data, "synth settings")

		envelope_data = _section(data, "envelope")
		filter_data = _section(data, "filter")
		effects_data = _section(data, "effects")
		lfo_data = _section(data, "lfo")
		additive_data = _section(data, "additive")
		fm_data = _section(data, "fm")
		wavetable_data = _section(data, "wavetable")
		granular_data = _section(data, "granular")

		reverb_data = _section(effects_data, "reverb")
		delay_data = _section(effects_data, "delay")
		distortion_data = _section(effects_data, "distortion")

		envelope = Envelope(
			attack = _number(envelope_data, "attack", Envelope.attack, 0.0, 10.0),
			decay = _number(envelope_data, "decay", Envelope.decay, 0.0, 10.0),
			sustain = _number(envelope_data, "sustain", Envelope.sustain, 0.0, 1.0),
			release = _number(envelope_data, "release", Envelope.release, 0.0, 10.0)
		)

		filter_settings = FilterSettings(
			enabled = bool(filter_data.get("enabled", FilterSettings.enabled)),
			type = _choice(filter_data, "type", FilterSettings.type, FILTER_TYPES),
			frequency = _number(filter_data, "frequency", FilterSettings.frequency, 20.0, 20000.0),
			q = _number(filter_data, "q", FilterSettings.q, 0.1, 20.0)
		)

		effects = EffectSettings(
			reverb = ReverbSettings(
				enabled = bool(reverb_data.get("enabled", False)),
				mix = _number(reverb_data, "mix", ReverbSettings.mix, 0.0, 1.0),
				decay = _number(reverb_data, "decay", ReverbSettings.decay, 0.1, 10.0)
			),
			delay = DelaySettings(
				enabled = bool(delay_data.get("enabled", False)),
				mix = _number(delay_data, "mix", DelaySettings.mix, 0.0, 1.0),
				time = _number(delay_data, "time", DelaySettings.time, 0.0, 2.0),
				feedback = _number(delay_data, "feedback", DelaySettings.feedback, 0.0, 0.9)
			),
			distortion = DistortionSettings(
				enabled = bool(distortion_data.get("enabled", False)),
				mix = _number(distortion_data, "mix", DistortionSettings.mix, 0.0, 1.0),
				amount = _number(distortion_data, "amount", DistortionSettings.amount, 0.0, 100.0)
			)
		)

		lfo = LfoSettings(
			enabled = bool(lfo_data.get("enabled", LfoSettings.enabled)),
			wave_shape = _choice(lfo_data, "wave_shape", LfoSettings.wave_shape, LFO_SHAPES),
			rate = _number(lfo_data, "rate", LfoSettings.rate, 0.1, 20.0),
			depth = _number(lfo_data, "depth", LfoSettings.depth, 0.0, 1.0),
			target = _choice(lfo_data, "target", LfoSettings.target, LFO_TARGETS)
		)

		harmonics = _numbers(additive_data, "harmonics", AdditiveParams.harmonics)
		amplitudes = _numbers(additive_data, "amplitudes", AdditiveParams.amplitudes)

		if len(amplitudes) < len(harmonics):
			amplitudes = amplitudes + (0.0,) * (len(harmonics) - len(amplitudes))

		fm = FmParams(
			modulator_ratio = _number(fm_data, "modulator_ratio", FmParams.modulator_ratio, 0.01, 32.0),
			modulation_index = _number(fm_data, "modulation_index", FmParams.modulation_index, 0.0, 100.0),
			modulator_type = _choice(fm_data, "modulator_type", FmParams.modulator_type, WAVE_SHAPES)
		)

		if "table" in wavetable_data:
			table = _numbers(wavetable_data, "table", ())
		else:
			table = generate_wavetable(_choice(wavetable_data, "shape", "sine", WAVE_SHAPES))

		if len(table) < 2:
			logger.warning("Wavetable needs at least two samples, using a sine table")
			table = generate_wavetable("sine")

		granular = GranularParams(
			grain_size = _number(granular_data, "grain_size", GranularParams.grain_size, 0.001, 1.0),
			grain_spacing = _number(granular_data, "grain_spacing", GranularParams.grain_spacing, 0.0, 1.0),
			grain_pitch = _number(granular_data, "grain_pitch", GranularParams.grain_pitch, 0.1, 4.0),
			grain_envelope = _choice(granular_data, "grain_envelope", GranularParams.grain_envelope, GRAIN_ENVELOPES)
		)

		method_name = data.get("method", SynthMethod.SUBTRACTIVE.value)

		try:
			method = SynthMethod(method_name)
		except ValueError:
			logger.warning(f"Unknown synthesis method {method_name!r}, using subtractive")
			method = SynthMethod.SUBTRACTIVE

		return cls(
			enabled = bool(data.get("enabled", True)),
			method = method,
			wave_shape = _choice(data, "wave_shape", "sine", WAVE_SHAPES),
			pan = _number(data, "pan", 0.0, -1.0, 1.0),
			envelope = envelope,
			filter = filter_settings,
			effects = effects,
			lfo = lfo,
			additive = AdditiveParams(harmonics=harmonics, amplitudes=amplitudes[:len(harmonics)]),
			fm = fm,
			wavetable = WavetableParams(table=table),
			granular = granular
		)


	def to_dict (self) -> typing.Dict[str, typing.Any]:

		"""Return the exchange shape accepted by :meth:`from_dict`."""

		data = dataclasses.asdict(self)
		data["method"] = self.method.value
		data["additive"] = {key: list(value) for key, value in data["additive"].items()}
		data["wavetable"] = {"table": list(self.wavetable.table)}

		return data


	def replace (self, **changes: typing.Any) -> "SynthSettings":

		"""Return a copy with some top-level fields changed."""

		return dataclasses.replace(self, **changes)


def generate_wavetable (shape: str, length: int = WAVETABLE_LENGTH) -> typing.Tuple[float, ...]:

	"""Return one cycle of a basic waveform as ``length`` samples in [-1, 1]."""

	generators: typing.Dict[str, typing.Callable[[float], float]] = {
		"sine": lambda t: math.sin(2 * math.pi * t),
		"square": lambda t: 1.0 if t < 0.5 else -1.0,
		"sawtooth": lambda t: 2 * t - 1,
		"triangle": lambda t: 4 * t - 1 if t < 0.5 else 3 - 4 * t,
	}

	if shape not in generators:
		raise polyphactory.errors.ConfigurationError(f"Unknown wavetable shape: {shape!r}")

	generator = generators[shape]

	return tuple(generator(i / length) for i in range(length))


def _require_mapping (value: typing.Any, label: str) -> None:

	if not isinstance(value, typing.Mapping):
		raise polyphactory.errors.ConfigurationError(f"Expected a mapping for {label}, got {type(value).__name__}")


def _section (data: typing.Mapping[str, typing.Any], key: str) -> typing.Mapping[str, typing.Any]:

	value = data.get(key)

	if value is None:
		return {}

	_require_mapping(value, key)
	return typing.cast(typing.Mapping[str, typing.Any], value)


def _number (data: typing.Mapping[str, typing.Any], key: str, default: float, low: float, high: float) -> float:

	"""Read a finite number, clamped into [low, high]."""

	value = data.get(key, default)

	if isinstance(value, bool):
		raise polyphactory.errors.ConfigurationError(f"{key} must be a number, got {value!r}")

	try:
		number = float(value)
	except (TypeError, ValueError):
		raise polyphactory.errors.ConfigurationError(f"{key} must be a number, got {value!r}") from None

	if not math.isfinite(number):
		logger.warning(f"{key}={value!r} is not finite, using {default}")
		return float(default)

	return max(low, min(high, number))


def _numbers (data: typing.Mapping[str, typing.Any], key: str, default: typing.Tuple[float, ...]) -> typing.Tuple[float, ...]:

	values = data.get(key, default)

	try:
		return tuple(float(v) for v in values)
	except (TypeError, ValueError):
		raise polyphactory.errors.ConfigurationError(f"{key} must be a list of numbers, got {values!r}") from None


def _choice (data: typing.Mapping[str, typing.Any], key: str, default: str, options: typing.Sequence[str]) -> str:

	value = data.get(key, default)

	if value not in options:
		logger.warning(f"Unknown {key} {value!r}, using {default!r}")
		return default

	return typing.cast(str, value)


PRESETS: typing.Dict[str, SynthSettings] = {
	"Bell": SynthSettings.from_dict({
		"method": "additive",
		"additive": {
			"harmonics": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10],
			"amplitudes": [1, 0.5, 0.25, 0.125, 0.0625, 0.03125, 0.015625, 0.0078125, 0.00390625, 0.001953125],
		},
		"envelope": {"attack": 0.005, "decay": 0.4, "sustain": 0.3, "release": 0.8},
	}),
	"String": SynthSettings.from_dict({
		"method": "additive",
		"envelope": {"attack": 0.15, "decay": 0.2, "sustain": 0.8, "release": 0.5},
	}),
	"Bass": SynthSettings.from_dict({
		"method": "subtractive",
		"wave_shape": "sawtooth",
		"filter": {"enabled": True, "type": "lowpass", "frequency": 800, "q": 2},
		"envelope": {"attack": 0.1, "decay": 0.3, "sustain": 0.5, "release": 0.2},
	}),
	"Lead": SynthSettings.from_dict({
		"method": "subtractive",
		"wave_shape": "square",
		"filter": {"enabled": True, "type": "lowpass", "frequency": 2000, "q": 1},
		"envelope": {"attack": 0.05, "decay": 0.2, "sustain": 0.8, "release": 0.1},
	}),
	"FM Bell": SynthSettings.from_dict({
		"method": "fm",
		"fm": {"modulator_ratio": 1, "modulation_index": 5, "modulator_type": "sine"},
		"envelope": {"attack": 0.005, "decay": 0.5, "sustain": 0.2, "release": 0.8},
	}),
	"FM Bass": SynthSettings.from_dict({
		"method": "fm",
		"fm": {"modulator_ratio": 0.5, "modulation_index": 3, "modulator_type": "sine"},
	}),
}
