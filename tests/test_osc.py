import asyncio
import logging
import typing

import pytest

import pythonosc.udp_client

import polyphactory.osc
import polyphactory.session

from polyphactory.scheduler import PlayheadMode


@pytest.fixture
def session () -> polyphactory.session.Session:

	"""Create a session for testing."""

	return polyphactory.session.Session(rpm=30)


async def _start_server (session: polyphactory.session.Session) -> typing.Tuple[polyphactory.osc.OscServer, pythonosc.udp_client.SimpleUDPClient]:

	"""Start a server on a free port and return it with a client aimed at it."""

	server = polyphactory.osc.OscServer(session, receive_port=0, send_port=0)
	await server.start()

	port = server._transport.get_extra_info("sockname")[1]
	client = pythonosc.udp_client.SimpleUDPClient("127.0.0.1", port)

	return server, client


@pytest.mark.asyncio
async def test_osc_rpm_handler (session: polyphactory.session.Session) -> None:

	"""Sending /rpm should update the playhead speed."""

	server, client = await _start_server(session)

	client.send_message("/rpm", 45.0)
	await asyncio.sleep(0.1)

	assert session.playhead.rpm == pytest.approx(45.0)

	await server.stop()


@pytest.mark.asyncio
async def test_osc_invalid_rpm_is_ignored (session: polyphactory.session.Session, caplog: pytest.LogCaptureFixture) -> None:

	"""Unusable /rpm arguments are logged and the speed is kept."""

	server, client = await _start_server(session)

	with caplog.at_level(logging.WARNING):
		client.send_message("/rpm", "fast")
		client.send_message("/rpm", -3.0)
		await asyncio.sleep(0.1)

	assert session.playhead.rpm == 30
	assert "Invalid OSC RPM argument" in caplog.text

	await server.stop()


@pytest.mark.asyncio
async def test_osc_transport_handlers (session: polyphactory.session.Session) -> None:

	"""/play, /pause and /reset drive the playhead."""

	server, client = await _start_server(session)

	client.send_message("/play", [])
	await asyncio.sleep(0.1)
	assert session.playhead.playing is True

	client.send_message("/pause", [])
	await asyncio.sleep(0.1)
	assert session.playhead.playing is False

	session.set_angle(120.0)
	client.send_message("/reset", [])
	await asyncio.sleep(0.1)
	assert session.playhead.angle == 0.0
	assert session.scheduler.mode == PlayheadMode.STOPPED

	await server.stop()


@pytest.mark.asyncio
async def test_osc_angle_handler (session: polyphactory.session.Session) -> None:

	"""/angle moves the playhead as a manual jump."""

	server, client = await _start_server(session)

	client.send_message("/angle", 270.0)
	await asyncio.sleep(0.1)

	assert session.playhead.angle == pytest.approx(270.0)
	assert session.scheduler.mode == PlayheadMode.MANUAL_JUMP

	await server.stop()


@pytest.mark.asyncio
async def test_osc_scale_root_and_volume_handlers (session: polyphactory.session.Session) -> None:

	"""/scale, /root and /volume update the session."""

	server, client = await _start_server(session)

	client.send_message("/scale", "Minor")
	client.send_message("/root", "A")
	client.send_message("/volume", 0.2)
	await asyncio.sleep(0.1)

	assert session.scale_name == "Minor"
	assert session.root == "A"
	assert session.engine.master_volume == pytest.approx(0.2)

	await server.stop()


@pytest.mark.asyncio
async def test_osc_stop_all_handler (session: polyphactory.session.Session) -> None:

	"""/stop_all silences every voice."""

	server, client = await _start_server(session)

	session.engine.play_voice("C")
	client.send_message("/stop_all", [])
	await asyncio.sleep(0.1)

	assert session.engine.live_voice_count == 0

	await server.stop()


@pytest.mark.asyncio
async def test_osc_broadcasts_triggers_and_angle (session: polyphactory.session.Session) -> None:

	"""Triggers and angle changes are sent out; an unchanged angle is not resent."""

	server, _ = await _start_server(session)

	sent: list = []
	server.send = lambda address, *args: sent.append((address, args))  # type: ignore[method-assign]

	session.play()
	session.tick()

	triangle = session.polygons[0]

	assert ("/trigger", (triangle.id, 0, "C")) in sent
	assert sent[-1][0] == "/angle"

	count = len(sent)
	session.scheduler.events.emit_sync("angle", sent[-1][1][0])
	assert len(sent) == count

	session.set_scale("Dorian")
	assert sent[-1] == ("/scale", ("Dorian", "C"))

	await server.stop()


@pytest.mark.asyncio
async def test_osc_stop_detaches_broadcasts (session: polyphactory.session.Session) -> None:

	"""After stop, session events are no longer forwarded."""

	server, _ = await _start_server(session)

	sent: list = []
	server.send = lambda address, *args: sent.append((address, args))  # type: ignore[method-assign]

	await server.stop()

	session.play()
	session.tick()

	assert sent == []
