"""OSC integration for realtime control and state broadcasting.

Enable the OSC server by calling ``session.osc()`` before ``session.start()``.
The server listens on a UDP port (default 9000) for incoming control messages
and sends state updates to a target host/port (default 127.0.0.1:9001).

Built-in Receive Handlers
─────────────────────────
- ``/rpm <float>``: Set playhead speed
- ``/play``, ``/pause``: Start or stop the playhead
- ``/reset``: Pause and return to 0°
- ``/angle <float>``: Move the playhead (a manual jump)
- ``/stop_all``: Silence every voice
- ``/scale <string>``: Select a scale (remaps every note)
- ``/root <string>``: Select a root note (remaps every note)
- ``/volume <float>``: Set master volume

Built-in Send Events
────────────────────
- ``/angle <float>``: On each playing frame
- ``/trigger <int> <int> <string>``: On each vertex trigger (polygon id, vertex, pitch)
- ``/scale <string> <string>``: On scale change (scale name, root)
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import polyphactory.constants
import polyphactory.scheduler

if typing.TYPE_CHECKING:
	from polyphactory.session import Session


logger = logging.getLogger(__name__)


class OscServer:

	"""Async OSC server/client for bi-directional communication."""

	def __init__ (
		self,
		session: "Session",
		receive_port: int = polyphactory.constants.DEFAULT_OSC_RECEIVE_PORT,
		send_port: int = polyphactory.constants.DEFAULT_OSC_SEND_PORT,
		send_host: str = polyphactory.constants.DEFAULT_OSC_SEND_HOST
	) -> None:

		self._session = session
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[typing.Any] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()
		self._last_angle: typing.Optional[float] = None
		self._broadcasting = False

		self._dispatcher.map("/rpm", self._handle_rpm)
		self._dispatcher.map("/play", self._handle_play)
		self._dispatcher.map("/pause", self._handle_pause)
		self._dispatcher.map("/reset", self._handle_reset)
		self._dispatcher.map("/angle", self._handle_angle)
		self._dispatcher.map("/stop_all", self._handle_stop_all)
		self._dispatcher.map("/scale", self._handle_scale)
		self._dispatcher.map("/root", self._handle_root)
		self._dispatcher.map("/volume", self._handle_volume)


	async def start (self) -> None:

		"""Start the OSC server and client, and begin broadcasting session events."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		self._session.scheduler.events.on("angle", self._send_angle)
		self._session.events.on("trigger", self._send_trigger)
		self._session.events.on("scale", self._send_scale)
		self._broadcasting = True

		logger.info(f"OSC listening on :{self._receive_port}, sending to {self._send_host}:{self._send_port}")


	async def stop (self) -> None:

		"""Stop the OSC server and stop broadcasting."""

		if self._broadcasting:
			self._session.scheduler.events.off("angle", self._send_angle)
			self._session.events.off("trigger", self._send_trigger)
			self._session.events.off("scale", self._send_scale)
			self._broadcasting = False

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC server stopped")


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def map (self, address: str, handler: typing.Callable) -> None:

		"""Register a custom OSC handler."""

		self._dispatcher.map(address, handler)


	# Broadcasts

	def _send_angle (self, angle: float) -> None:
		if angle == self._last_angle:
			return
		self._last_angle = angle
		self.send("/angle", float(angle))

	def _send_trigger (self, trigger: polyphactory.scheduler.Trigger, voice_id: typing.Optional[str]) -> None:
		self.send("/trigger", trigger.polygon_id, trigger.vertex, trigger.pitch)

	def _send_scale (self, scale_name: str, root: str) -> None:
		self.send("/scale", scale_name, root)


	# Handlers

	def _handle_rpm (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			rpm = float(args[0])
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC RPM argument: {args[0]}")
			return
		self._session.set_rpm(rpm)

	def _handle_play (self, address: str, *args: typing.Any) -> None:
		self._session.play()

	def _handle_pause (self, address: str, *args: typing.Any) -> None:
		self._session.pause()

	def _handle_reset (self, address: str, *args: typing.Any) -> None:
		self._session.reset()

	def _handle_angle (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			angle = float(args[0])
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC angle argument: {args[0]}")
			return
		self._session.set_angle(angle)

	def _handle_stop_all (self, address: str, *args: typing.Any) -> None:
		self._session.stop_all()

	def _handle_scale (self, address: str, *args: typing.Any) -> None:
		if args:
			self._session.set_scale(str(args[0]))

	def _handle_root (self, address: str, *args: typing.Any) -> None:
		if args:
			self._session.set_root(str(args[0]))

	def _handle_volume (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			volume = float(args[0])
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC volume argument: {args[0]}")
			return
		self._session.set_master_volume(volume)
