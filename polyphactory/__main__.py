import logging
import os
import sys

import yaml

import polyphactory.constants
import polyphactory.errors
import polyphactory.polygon
import polyphactory.scales
import polyphactory.session


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_config (config_path: str = 'config.yaml') -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def build_session (config: dict) -> polyphactory.session.Session:

	"""
	Create a session from a loaded configuration mapping.

	Unknown keys are ignored. A malformed polygon record raises ``ConfigurationError``.
	"""

	playhead = config.get('playhead') or {}
	scale = config.get('scale') or {}
	audio = config.get('audio') or {}

	polygons = None

	if config.get('polygons'):
		polygons = [polyphactory.polygon.Polygon.from_dict(record) for record in config['polygons']]

	session = polyphactory.session.Session(
		rpm = playhead.get('rpm', polyphactory.constants.DEFAULT_RPM),
		frame_rate = playhead.get('frame_rate', polyphactory.constants.DEFAULT_FRAME_RATE),
		scale = scale.get('name', polyphactory.scales.DEFAULT_SCALE),
		root = scale.get('root', 'C'),
		master_volume = audio.get('master_volume', polyphactory.constants.DEFAULT_MASTER_VOLUME),
		polygons = polygons
	)

	osc = config.get('osc')
	if osc is not None:
		session.osc(
			receive_port = osc.get('receive_port', polyphactory.constants.DEFAULT_OSC_RECEIVE_PORT),
			send_port = osc.get('send_port', polyphactory.constants.DEFAULT_OSC_SEND_PORT),
			send_host = osc.get('send_host', polyphactory.constants.DEFAULT_OSC_SEND_HOST)
		)

	midi = config.get('midi')
	if midi is not None:
		if 'device_name' in midi:
			session.midi_output(midi['device_name'])
		if 'record_filename' in midi:
			session.record(midi['record_filename'])

	return session


def main () -> None:

	"""
	Main entry point for the polyphactory application.
	"""

	logger.info("Polyphactory starting...")

	config_path = sys.argv[1] if len(sys.argv) > 1 else 'config.yaml'
	config = load_config(config_path)

	try:
		session = build_session(config)
	except polyphactory.errors.ConfigurationError as e:
		logger.error(f"Invalid configuration in {config_path}: {e}")
		sys.exit(1)

	session.play()
	session.start()


if __name__ == "__main__":
	main()
