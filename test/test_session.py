import asyncio
import logging

import pytest
from aiortc import AudioStreamTrack, VideoStreamTrack

from peercall.errors import ErrorKind
from peercall.shared import NetworkQuality
from peercall.signaling import IceCandidateMessage, Offer
from peercall.webrtc import CallRole, ConnectionState, FrameMeterTrack, MediaDeviceConfig
from peercall.webrtc.transport import payload_to_candidate

from conftest import RecordingPlayerFactory, make_candidate, settle


def _sent(controller, event):
    return [envelope for envelope in controller.channel.sent if envelope["type"] == event]


def _from_peer(message, peer_id):
    envelope = message.to_wire("room")
    envelope["data"]["userId"] = peer_id
    return envelope


async def _call_pair(relay, make_controller):
    alice = make_controller("room", relay.create_channel("alice"))
    bob = make_controller("room", relay.create_channel("bob"))
    assert await alice.start()
    assert await bob.start()
    await settle(relay, alice, bob)
    return alice, bob


async def _connect(relay, *controllers):
    for controller in controllers:
        await controller.transport.pc.set_connection_state("connected")
    await settle(relay, *controllers)


async def _end(*controllers):
    for controller in controllers:
        await controller.end_call()


@pytest.mark.anyio
async def test_exactly_one_side_offers(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)

    offers = _sent(alice, "offer") + _sent(bob, "offer")
    assert len(offers) == 1
    assert len(_sent(alice, "offer")) == 1
    assert alice.session.call_role is CallRole.CALLER
    assert bob.session.call_role is CallRole.ANSWEREE
    assert alice.transport.signaling_state == "stable"
    assert bob.transport.signaling_state == "stable"

    await _end(alice, bob)


@pytest.mark.anyio
@pytest.mark.parametrize("count", [0, 1, 10])
async def test_negotiation_converges_with_interleaved_candidates(relay, make_controller, count):
    alice = make_controller("room", relay.create_channel("alice"))
    bob = make_controller("room", relay.create_channel("bob"))
    assert await alice.start()

    early = count // 2
    for index in range(early):
        alice.channel.deliver(_from_peer(IceCandidateMessage(candidate=make_candidate(index)), "bob"))
    await settle(relay, alice)
    assert len(alice.pending_candidates) == early

    assert await bob.start()
    await settle(relay, alice, bob)
    for index in range(early, count):
        await bob.transport.pc.fire("icecandidate", payload_to_candidate(make_candidate(index)))
    await settle(relay, alice, bob)
    await _connect(relay, alice, bob)

    assert alice.connection_state is ConnectionState.CONNECTED
    assert bob.connection_state is ConnectionState.CONNECTED
    assert alice.pending_candidates == []
    assert bob.pending_candidates == []
    assert sorted(int(c.foundation) for c in alice.transport.pc.added_candidates) == list(range(count))

    await _end(alice, bob)


@pytest.mark.anyio
async def test_connected_clears_error_and_shows_remote_identity(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)

    await _connect(relay, alice)
    assert alice.observer.states[-1] is ConnectionState.CONNECTED
    assert alice.observer.cleared == 1
    assert alice.observer.identity[:1] == [True]

    await asyncio.sleep(0.1)
    assert alice.observer.identity == [True, False]

    await _end(alice, bob)


@pytest.mark.anyio
async def test_local_candidates_are_trickled_to_peer(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)

    await alice.transport.pc.fire("icecandidate", payload_to_candidate(make_candidate(3, typ="srflx")))
    await alice.transport.pc.fire("icecandidate", None)
    await settle(relay, alice, bob)

    sent = _sent(alice, "ice-candidate")
    assert len(sent) == 1
    assert sent[0]["data"]["candidate"]["sdpMid"] == "0"
    assert [c.foundation for c in bob.transport.pc.added_candidates] == ["3"]

    await _end(alice, bob)


@pytest.mark.anyio
async def test_ice_failure_restarts_once_per_episode(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    await _connect(relay, alice, bob)
    pc = alice.transport.pc

    await pc.set_ice_state("failed")
    await pc.set_ice_state("failed")
    await settle(relay, alice, bob)

    assert pc.restart_ice_calls == 1
    assert len(_sent(alice, "offer")) == 2
    assert len(_sent(bob, "answer")) == 2
    assert alice.coordinator.offer_outstanding is False

    await pc.set_ice_state("connected")
    await pc.set_ice_state("failed")
    await settle(relay, alice, bob)

    assert pc.restart_ice_calls == 2

    await _end(alice, bob)


@pytest.mark.anyio
async def test_transport_failure_is_reported_but_keeps_call(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    await _connect(relay, alice)

    await alice.transport.pc.set_connection_state("failed")
    await settle(relay, alice, bob)

    assert alice.connection_state is ConnectionState.FAILED
    assert alice.observer.errors == [(ErrorKind.NEGOTIATION, "Connection failed. Please try again.")]
    assert alice.closed is False
    assert alice.sampler.running is False

    await _end(alice, bob)


@pytest.mark.anyio
async def test_negotiation_error_leaves_session_failed(relay, make_controller):
    controller = make_controller("room", relay.create_channel("bob"))
    assert await controller.start()

    controller.channel.deliver(_from_peer(Offer(sdp="bad"), "alice"))
    await settle(relay, controller)

    assert controller.observer.errors == [(ErrorKind.NEGOTIATION, "Failed to connect")]
    assert controller.connection_state is ConnectionState.FAILED
    assert controller.closed is False

    await controller.end_call()


@pytest.mark.anyio
async def test_transport_closed_ends_call(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    await _connect(relay, alice)
    pc = alice.transport.pc

    await pc.set_connection_state("closed")
    await alice.wait_idle()
    await asyncio.sleep(0.02)

    assert alice.closed is True
    assert alice.connection_state is ConnectionState.CLOSED
    assert alice.media.camera_track is None
    assert pc.closed is True
    assert len(_sent(alice, "leave-room")) == 1

    await _end(bob)


@pytest.mark.anyio
async def test_media_failure_aborts_start(relay, make_controller):
    controller = make_controller(
        "room",
        relay.create_channel("alice"),
        player_factory=RecordingPlayerFactory(error=PermissionError("denied")),
    )

    assert await controller.start() is False

    assert controller.observer.errors == [(ErrorKind.MEDIA, "Cannot access camera/microphone: denied")]
    assert controller.closed is True
    assert controller.channel.sent == []
    assert relay.room_members("room") == ()
    assert any(entry.level == "ERROR" for entry in controller.debug_log.entries())
    assert controller.debug_log not in logging.getLogger("peercall").handlers


@pytest.mark.anyio
async def test_toggles_notify_peer_with_both_flags(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)

    assert await alice.toggle_audio() is False
    assert await alice.toggle_video() is False
    assert await alice.set_video_enabled(False) is False
    await settle(relay, alice, bob)

    changes = [envelope["data"] for envelope in _sent(alice, "media-state-change")]
    assert changes == [
        {"roomId": "room", "audio": False, "video": True},
        {"roomId": "room", "audio": False, "video": False},
    ]
    assert alice.media.audio_track.enabled is False
    assert bob.session.remote_media.audio_enabled is False
    assert bob.session.remote_media.video_enabled is False
    assert bob.observer.identity[0] is True

    await _end(alice, bob)


@pytest.mark.anyio
async def test_screen_share_restores_camera_track_and_state(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    camera = alice.media.camera_track
    sender = alice.transport.video_sender()
    await alice.set_video_enabled(False)

    assert await alice.toggle_screen_share() is True
    screen = alice.media.video_track
    assert screen is not camera
    assert sender.track is screen
    assert alice.session.is_screen_sharing is True

    # video toggle is ignored while sharing
    assert await alice.toggle_video() is False
    assert camera.enabled is False

    assert await alice.toggle_screen_share() is False
    await settle(relay, alice, bob)

    assert alice.media.video_track is camera
    assert sender.track is camera
    assert camera.enabled is False
    assert screen.readyState == "ended"
    assert [e["data"]["isSharing"] for e in _sent(alice, "screen-share-change")] == [True, False]
    assert bob.session.remote_media.is_screen_sharing is False
    assert len(_sent(alice, "offer")) == 1

    await _end(alice, bob)


@pytest.mark.anyio
async def test_screen_capture_ending_reverts_to_camera(relay, make_controller):
    controller = make_controller("room", relay.create_channel("alice"))
    assert await controller.start()
    camera = controller.media.camera_track
    assert await controller.toggle_screen_share() is True

    controller.media.video_track.source.stop()
    await controller.wait_idle()

    assert controller.session.is_screen_sharing is False
    assert controller.media.video_track is camera
    assert controller.transport.video_sender().track is camera

    await controller.end_call()


@pytest.mark.anyio
async def test_screen_share_failure_keeps_camera(relay, make_controller):
    no_screen = MediaDeviceConfig(
        CAMERA_DEVICE="fake-camera",
        CAMERA_FORMAT="fake",
        MICROPHONE_DEVICE="fake-mic",
        MICROPHONE_FORMAT="fake",
        SCREEN_DEVICE=None,
        SCREEN_FORMAT=None,
    )
    controller = make_controller("room", relay.create_channel("alice"), devices_override=no_screen)
    assert await controller.start()
    camera = controller.media.camera_track

    assert await controller.toggle_screen_share() is False

    assert controller.observer.errors == [
        (ErrorKind.SCREEN_SHARE, "Screen sharing is not supported on this platform.")
    ]
    assert controller.transport.video_sender().track is camera
    assert controller.closed is False

    await controller.end_call()


@pytest.mark.anyio
async def test_screen_share_without_video_sender_renegotiates(relay, make_controller):
    controller = make_controller("room", relay.create_channel("alice"))
    assert await controller.start()
    pc = controller.transport.pc
    pc.senders = [sender for sender in pc.senders if sender.track.kind != "video"]

    assert await controller.toggle_screen_share() is True

    assert pc.senders[-1].track is controller.media.video_track
    assert len(_sent(controller, "offer")) == 1

    await controller.end_call()


@pytest.mark.anyio
async def test_remote_track_is_exposed_as_stream(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    track = VideoStreamTrack()

    await bob.transport.pc.fire("track", track)
    await bob.transport.pc.fire("track", track)
    await bob.wait_idle()

    stream = bob.observer.remote_streams[-1]
    assert stream is bob.session.remote_stream
    assert isinstance(stream.track("video"), FrameMeterTrack)
    assert stream.track("video").source is track
    assert len(stream.tracks) == 1
    assert stream.peer_id == "alice"

    await _end(alice, bob)


@pytest.mark.anyio
async def test_new_remote_track_of_same_kind_replaces_previous(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    first, second = AudioStreamTrack(), AudioStreamTrack()

    await bob.transport.pc.fire("track", first)
    await bob.transport.pc.fire("track", second)
    await bob.wait_idle()

    assert bob.session.remote_stream.tracks == [second]

    await _end(alice, bob)


@pytest.mark.anyio
async def test_quality_sample_takes_video_fields_from_received_frames(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    # aiortc reports inbound-rtp without frame size or rate
    bob.transport.pc.stats = {
        "CP": {"type": "candidate-pair", "state": "succeeded", "currentRoundTripTime": 0.2},
        "IN": {"type": "inbound-rtp", "kind": "video"},
    }
    await bob.transport.pc.fire("track", VideoStreamTrack())
    await bob.wait_idle()
    video = bob.session.remote_stream.track("video")
    for _ in range(3):
        await video.recv()

    await _connect(relay, bob)
    await asyncio.sleep(0.17)

    sample = bob.observer.samples[-1]
    assert sample.quality is NetworkQuality.GOOD
    assert (sample.frame_width, sample.frame_height) == (640, 480)
    assert sample.frames_per_second == pytest.approx(30, rel=0.5)

    await _end(alice, bob)


@pytest.mark.anyio
async def test_quality_samples_stop_after_end_call(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    alice.transport.pc.stats = {
        "CP": {"type": "candidate-pair", "state": "succeeded", "currentRoundTripTime": 0.1},
    }
    await _connect(relay, alice)

    await asyncio.sleep(0.17)
    assert alice.observer.samples
    assert alice.observer.samples[-1].quality is NetworkQuality.EXCELLENT

    alice.transport.pc.stats_delay = 0.03
    await asyncio.sleep(0.06)
    await alice.end_call()
    count = len(alice.observer.samples)
    await asyncio.sleep(0.15)

    assert len(alice.observer.samples) == count
    assert alice.sampler.running is False

    await _end(bob)


@pytest.mark.anyio
async def test_peer_leaving_resets_transport_for_next_participant(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)
    await _connect(relay, alice, bob)
    old_pc = alice.transport.pc

    await bob.end_call()
    await settle(relay, alice)

    assert alice.session.remote_stream is None
    assert alice.observer.remote_streams[-1] is None
    assert alice.connection_state is ConnectionState.NEW
    assert alice.session.call_role is CallRole.UNDETERMINED
    assert old_pc.closed is True
    assert alice.transport.pc is not old_pc
    assert len(alice.transport.pc.senders) == 2

    carol = make_controller("room", relay.create_channel("carol"))
    assert await carol.start()
    await settle(relay, alice, carol)

    assert len(_sent(alice, "offer")) == 2
    assert alice.transport.signaling_state == "stable"
    assert carol.session.call_role is CallRole.ANSWEREE

    await _end(alice, carol)


@pytest.mark.anyio
async def test_end_call_is_idempotent_and_commands_become_noops(relay, make_controller):
    alice, bob = await _call_pair(relay, make_controller)

    await alice.end_call()
    await alice.end_call()

    assert len(_sent(alice, "leave-room")) == 1
    assert await alice.toggle_audio() is False
    assert await alice.toggle_screen_share() is False
    assert alice.transport.pc.closed is True
    assert alice.media.local_tracks.all() == []

    await _end(bob)
