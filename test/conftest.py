import asyncio
import inspect
from collections import defaultdict

import pytest
from aiortc import AudioStreamTrack, RTCConfiguration, RTCSessionDescription, VideoStreamTrack

from peercall.signaling import CandidatePayload, InMemoryRelay
from peercall.webrtc import ConnectionConfig, MediaDeviceConfig, MediaSourceManager, SessionController, SessionObserver


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ------------------------------------------------------------
# RTCPeerConnection stand-in
# ------------------------------------------------------------


class FakeSender:
    def __init__(self, track):
        self.track = track
        self.replaced = []

    def replaceTrack(self, track):
        self.track = track
        self.replaced.append(track)


class FakeTransceiver:
    def __init__(self, kind, direction="sendrecv", sender=None):
        self.kind = kind
        self.direction = direction
        self.sender = sender


class FakePeerConnection:
    """Mimics the parts of aiortc.RTCPeerConnection the transport session uses."""

    rollback_supported = False

    def __init__(self, configuration=None):
        self.configuration = configuration
        self._handlers = defaultdict(list)
        self.signalingState = "stable"
        self.connectionState = "new"
        self.iceConnectionState = "new"
        self.localDescription = None
        self.remoteDescription = None
        self.senders = []
        self.transceivers = []
        self.added_candidates = []
        self.failing_candidates = set()
        self.remote_descriptions = []
        self.restart_ice_calls = 0
        self.offers_created = 0
        self.stats = {}
        self.stats_error = None
        self.stats_delay = 0.0
        self.closed = False

    # events
    def on(self, event, handler=None):
        def register(f):
            self._handlers[event].append(f)
            return f

        if handler is not None:
            return register(handler)
        return register

    def remove_listener(self, event, handler):
        self._handlers[event].remove(handler)

    def listener_count(self):
        return sum(len(handlers) for handlers in self._handlers.values())

    async def fire(self, event, *args):
        for handler in list(self._handlers[event]):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    async def set_connection_state(self, state):
        self.connectionState = state
        await self.fire("connectionstatechange")

    async def set_ice_state(self, state):
        self.iceConnectionState = state
        await self.fire("iceconnectionstatechange")

    # tracks
    def addTrack(self, track):
        sender = FakeSender(track)
        self.senders.append(sender)
        self.transceivers.append(FakeTransceiver(track.kind, sender=sender))
        return sender

    def addTransceiver(self, kind, direction="sendrecv"):
        transceiver = FakeTransceiver(kind, direction=direction)
        self.transceivers.append(transceiver)
        return transceiver

    def getSenders(self):
        return list(self.senders)

    def getTransceivers(self):
        return list(self.transceivers)

    # sdp
    def restartIce(self):
        self.restart_ice_calls += 1

    async def createOffer(self):
        self.offers_created += 1
        return RTCSessionDescription(sdp=f"offer-{id(self)}-{self.offers_created}", type="offer")

    async def createAnswer(self):
        if self.signalingState != "have-remote-offer":
            raise RuntimeError(f"cannot answer in {self.signalingState}")
        return RTCSessionDescription(sdp=f"answer-{id(self)}", type="answer")

    async def setLocalDescription(self, description):
        if description.type == "rollback":
            # aiortc accepts the description and leaves the state untouched
            if self.rollback_supported:
                self.signalingState = "stable"
            return
        if description.type == "offer":
            if self.signalingState not in ("stable", "have-local-offer"):
                raise RuntimeError(f"cannot set local offer in {self.signalingState}")
            self.signalingState = "have-local-offer"
        else:
            if self.signalingState != "have-remote-offer":
                raise RuntimeError(f"cannot set local answer in {self.signalingState}")
            self.signalingState = "stable"
        self.localDescription = description

    async def setRemoteDescription(self, description):
        if description.sdp == "bad":
            raise ValueError("malformed sdp")
        if description.type == "offer":
            if self.signalingState == "have-local-offer":
                raise RuntimeError("remote offer while local offer pending")
            self.signalingState = "have-remote-offer"
        else:
            if self.signalingState != "have-local-offer":
                raise RuntimeError(f"unexpected answer in {self.signalingState}")
            self.signalingState = "stable"
        self.remoteDescription = description
        self.remote_descriptions.append(description)

    # ice
    async def addIceCandidate(self, candidate):
        if self.remoteDescription is None:
            raise RuntimeError("no remote description")
        if candidate.foundation in self.failing_candidates:
            raise ValueError(f"bad candidate {candidate.foundation}")
        self.added_candidates.append(candidate)

    async def getStats(self):
        if self.stats_delay:
            await asyncio.sleep(self.stats_delay)
        if self.stats_error is not None:
            raise self.stats_error
        return self.stats

    async def close(self):
        self.closed = True
        self.connectionState = "closed"


class RollbackPeerConnection(FakePeerConnection):
    """Browser-style connection that honours rollback."""

    rollback_supported = True


def make_candidate(index, typ="host"):
    return CandidatePayload(
        candidate=f"candidate:{index} 1 udp 2130706431 10.0.0.{index % 250 + 1} {50000 + index} typ {typ}",
        sdp_mid="0",
        sdp_mline_index=0,
    )


# ------------------------------------------------------------
# Capture devices
# ------------------------------------------------------------


class FakePlayer:
    """MediaPlayer stand-in producing aiortc's synthetic tracks."""

    def __init__(self, device, format=None, options=None):
        self.device = device
        self.format = format
        self.options = options
        self.audio = AudioStreamTrack() if device == "fake-mic" else None
        self.video = VideoStreamTrack() if device != "fake-mic" else None


class RecordingPlayerFactory:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def __call__(self, device, format=None, options=None):
        self.calls.append((device, format, options))
        if self.error is not None:
            raise self.error
        return FakePlayer(device, format=format, options=options)


@pytest.fixture
def devices():
    return MediaDeviceConfig(
        CAMERA_DEVICE="fake-camera",
        CAMERA_FORMAT="fake",
        MICROPHONE_DEVICE="fake-mic",
        MICROPHONE_FORMAT="fake",
        SCREEN_DEVICE="fake-screen",
        SCREEN_FORMAT="fake",
    )


@pytest.fixture
def fast_config():
    return ConnectionConfig(OFFER_DELAY=0.0, STATS_INTERVAL=0.05, REMOTE_IDENTITY_SECONDS=0.05)


# ------------------------------------------------------------
# Controllers
# ------------------------------------------------------------


class RecordingObserver(SessionObserver):
    def __init__(self):
        self.states = []
        self.errors = []
        self.samples = []
        self.remote_streams = []
        self.identity = []
        self.remote_media = []
        self.local_streams = []
        self.cleared = 0

    def on_state_change(self, state):
        self.states.append(state)

    def on_remote_stream(self, stream):
        self.remote_streams.append(stream)

    def on_quality_sample(self, sample):
        self.samples.append(sample)

    def on_error(self, kind, message):
        self.errors.append((kind, message))

    def on_error_cleared(self):
        self.cleared += 1

    def on_remote_identity(self, visible):
        self.identity.append(visible)

    def on_remote_media_state(self, state):
        self.remote_media.append(state)

    def on_local_stream(self, tracks):
        self.local_streams.append(tracks)


@pytest.fixture
def relay():
    return InMemoryRelay()


@pytest.fixture
def make_controller(devices, fast_config):
    def make(room_id, channel, devices_override=None, player_factory=None, config=None):
        media = MediaSourceManager(
            devices=devices_override or devices,
            player_factory=player_factory or RecordingPlayerFactory(),
        )
        controller = SessionController(
            room_id,
            channel,
            media=media,
            observer=RecordingObserver(),
            configuration=RTCConfiguration(iceServers=[]),
            peer_connection_factory=FakePeerConnection,
            config=config or fast_config,
        )
        return controller

    return make


async def settle(relay, *controllers, rounds=8):
    """Lets relay inboxes, offer timers and controller queues run until quiet."""
    for _ in range(rounds):
        await relay.drain()
        for controller in controllers:
            await controller.wait_idle()
        await asyncio.sleep(0.005)
