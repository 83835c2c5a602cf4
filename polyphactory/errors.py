class PolyphactoryError (Exception):

	"""Base class for errors raised by polyphactory."""


class ConfigurationError (PolyphactoryError, ValueError):

	"""An RPM, pitch name, scale, or synth setting could not be used."""


class ResourceError (PolyphactoryError, RuntimeError):

	"""The audio subsystem is unavailable or not running."""
