import asyncio
import datetime as dt

import pytest

from motion_helpers import GRAVITY, STEP, T0, moving, still
from stopsense.adapters.simulated import ScriptedSpeechService
from stopsense.config import AppConfig
from stopsense.core.events import EventSource
from stopsense.errors import RouteUnavailable, SessionAlreadyRunning
from stopsense.session import SessionController

LINE = "bts_silom"
ORIGIN = "silom_siam"
DESTINATION = "silom_surasak"


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> dt.datetime:
        return self.now


class _FakeMotionSource:
    def __init__(self, clock: _Clock, fail_unsubscribe: bool = False) -> None:
        self._clock = clock
        self._callback = None
        self.unsubscribe_calls = 0
        self._fail_unsubscribe = fail_unsubscribe

    def subscribe(self, callback) -> None:
        self._callback = callback

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self._callback = None
        if self._fail_unsubscribe:
            raise RuntimeError("sensor gone")

    @property
    def subscribed(self) -> bool:
        return self._callback is not None

    def emit_sample(self, sample) -> None:
        self._clock.now += STEP
        assert self._callback is not None
        self._callback(sample)

    def emit_magnitudes(self, values) -> None:
        for value in values:
            self.emit_sample({"x": 0.0, "y": 0.0, "z": value})


class _FakeAudioSource:
    def __init__(self) -> None:
        self.opened = False
        self.closed = False
        self.level = None

    def open(self) -> None:
        self.opened = True

    def read_band_energy(self, low_hz: float, high_hz: float):
        return self.level

    def close(self) -> None:
        self.closed = True


class _Permissions:
    def __init__(self, motion: bool = True, microphone: bool = True) -> None:
        self._motion = motion
        self._microphone = microphone

    def request_motion(self) -> bool:
        return self._motion

    def request_microphone(self) -> bool:
        if isinstance(self._microphone, Exception):
            raise self._microphone
        return self._microphone


class _WakeLock:
    def __init__(self, grant: bool = True) -> None:
        self.grant = grant
        self.acquired = 0
        self.released = 0

    def acquire(self) -> bool:
        self.acquired += 1
        return self.grant

    def release(self) -> None:
        self.released += 1


def _config() -> AppConfig:
    return AppConfig(audio_poll_interval_s=10.0)


def _controller(**kwargs) -> SessionController:
    kwargs.setdefault("config", _config())
    return SessionController(**kwargs)


def test_motion_pipeline_assigns_stop_to_route_station() -> None:
    clock = _Clock()
    source = _FakeMotionSource(clock)
    controller = _controller(motion_source=source, clock=clock)

    async def scenario() -> None:
        route = await controller.start(LINE, ORIGIN, DESTINATION)
        assert route.origin.name == "Siam"
        source.emit_magnitudes(moving(80))
        source.emit_magnitudes(still(400))
        source.emit_magnitudes(moving(80))

    asyncio.run(scenario())

    stops = controller.stops()
    assert len(stops) == 1
    assert stops[0].station.name == "Ratchadamri"
    assert stops[0].source is EventSource.MOTION

    snapshot = controller.snapshot()
    assert snapshot.running is True
    assert snapshot.stops_detected == 1
    assert snapshot.expected_stops == 5
    assert snapshot.next_station == "Sala Daeng"
    assert snapshot.motion_state == "moving"
    assert snapshot.direction == "Bang Wa"

    details = [event.detail for event in controller.event_log.snapshot()]
    assert details[0] == "session_started"
    assert "stop #1: Ratchadamri" in details

    rows = controller.route_view()
    assert rows[0]["origin"] is True
    assert rows[1]["detected_at"] is not None
    assert rows[2]["next"] is True


def test_ignored_stop_is_logged_not_emitted() -> None:
    clock = _Clock()
    source = _FakeMotionSource(clock)
    controller = _controller(motion_source=source, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        source.emit_magnitudes(moving(80))
        source.emit_magnitudes(still(100))
        source.emit_magnitudes(moving(80))

    asyncio.run(scenario())

    assert controller.stops() == []
    assert controller.snapshot().ignored_stops == 1
    assert "stop_ignored" in [event.detail for event in controller.event_log.snapshot()]


def test_malformed_samples_are_dropped() -> None:
    clock = _Clock()
    source = _FakeMotionSource(clock)
    controller = _controller(motion_source=source, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        source.emit_sample({"x": None, "y": 0.0, "z": GRAVITY})
        source.emit_sample({"x": 0.0, "z": GRAVITY})
        source.emit_sample({"x": "abc", "y": 0.0, "z": GRAVITY})

    asyncio.run(scenario())

    assert controller.motion_adapter.dropped_samples == 3
    assert controller.classifier.sample_count == 0


def test_invalid_route_and_double_start_raise() -> None:
    clock = _Clock()
    controller = _controller(motion_source=_FakeMotionSource(clock), clock=clock)

    async def scenario() -> None:
        with pytest.raises(RouteUnavailable):
            await controller.start(LINE, ORIGIN, ORIGIN)
        await controller.start(LINE, ORIGIN, DESTINATION)
        with pytest.raises(SessionAlreadyRunning):
            await controller.start(LINE, ORIGIN, DESTINATION)
        await controller.stop()

    asyncio.run(scenario())


def test_motion_permission_denied_skips_only_motion() -> None:
    clock = _Clock()
    motion = _FakeMotionSource(clock)
    audio = _FakeAudioSource()
    controller = _controller(
        motion_source=motion,
        audio_source=audio,
        permissions=_Permissions(motion=False),
        clock=clock,
    )

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        assert controller.motion_adapter is None
        assert controller.audio_adapter is not None
        assert audio.opened
        await controller.stop()

    asyncio.run(scenario())

    assert not motion.subscribed
    assert "permission_denied:motion" in controller.snapshot().conditions
    assert audio.closed


def test_microphone_permission_error_counts_as_denial() -> None:
    clock = _Clock()
    audio = _FakeAudioSource()
    controller = _controller(
        audio_source=audio,
        permissions=_Permissions(microphone=RuntimeError("prompt dismissed")),
        clock=clock,
    )

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)

    asyncio.run(scenario())

    assert controller.audio_adapter is None
    assert not audio.opened
    assert controller.snapshot().conditions == ["permission_denied:microphone"]


def test_unsupported_speech_is_a_condition() -> None:
    clock = _Clock()
    motion = _FakeMotionSource(clock)
    controller = _controller(
        motion_source=motion,
        speech_service=ScriptedSpeechService(supported=False),
        clock=clock,
    )

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)

    asyncio.run(scenario())

    assert controller.speech_adapter is None
    assert motion.subscribed
    assert "speech_unsupported" in controller.snapshot().conditions


def test_speech_matches_and_restarts_until_stopped() -> None:
    clock = _Clock()
    service = ScriptedSpeechService()
    controller = _controller(speech_service=service, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        service.emit_result("Next station Sala Daeng", final=False)
        service.emit_result("Next station Sala Daeng", final=True)
        service.emit_error("no-speech")
        assert service.start_calls == 2
        service.emit_end()
        assert service.start_calls == 3
        service.emit_error("network")
        await controller.stop()
        service.emit_end()

    asyncio.run(scenario())

    assert service.start_calls == 3
    assert service.stop_calls == 1
    assert [match.station.name for match in controller.speech_matches()] == ["Sala Daeng"]
    details = [event.detail for event in controller.event_log.snapshot()]
    assert "announcement: Sala Daeng" in details
    assert "speech_error" in details


def test_stale_speech_callbacks_do_not_restart() -> None:
    clock = _Clock()
    service = ScriptedSpeechService()
    controller = _controller(speech_service=service, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        service.emit_error("no-speech")
        stale_end = service._on_end
        service.emit_end()
        assert service.start_calls == 3
        # 上一轮识别的回调晚到
        service._on_end = stale_end
        service.emit_end()
        assert service.start_calls == 3
        await controller.stop()

    asyncio.run(scenario())

    assert service.start_calls == 3
    assert controller.speech_adapter is None


def test_stop_releases_everything_even_when_one_release_fails() -> None:
    clock = _Clock()
    motion = _FakeMotionSource(clock, fail_unsubscribe=True)
    audio = _FakeAudioSource()
    wake_lock = _WakeLock()
    controller = _controller(motion_source=motion, audio_source=audio, wake_lock=wake_lock, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        await controller.stop()
        await controller.stop()

    asyncio.run(scenario())

    assert motion.unsubscribe_calls == 1
    assert audio.closed
    assert wake_lock.released == 1
    assert controller.running is False
    details = [event.detail for event in controller.event_log.snapshot()]
    assert details.count("session_stopped") == 1


def test_wake_lock_reacquired_when_visible_again() -> None:
    clock = _Clock()
    wake_lock = _WakeLock()
    controller = _controller(motion_source=_FakeMotionSource(clock), wake_lock=wake_lock, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        await controller.on_visibility_change(False)
        await controller.on_visibility_change(True)

    asyncio.run(scenario())

    assert wake_lock.acquired == 2


def test_wake_lock_failure_is_not_fatal() -> None:
    clock = _Clock()
    motion = _FakeMotionSource(clock)
    controller = _controller(motion_source=motion, wake_lock=_WakeLock(grant=False), clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)

    asyncio.run(scenario())

    assert controller.running
    assert motion.subscribed
    assert controller.snapshot().conditions == ["wake_lock_unavailable"]


def test_chime_pipeline_records_events() -> None:
    clock = _Clock()
    audio = _FakeAudioSource()
    controller = _controller(audio_source=audio, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        adapter = controller.audio_adapter
        audio.level = -20.0
        for _ in range(40):
            clock.now += dt.timedelta(milliseconds=20)
            adapter.poll_once()
        await controller.stop()

    asyncio.run(scenario())

    assert len(controller.chimes()) == 1
    assert controller.snapshot().chime_count == 1
    assert "chime" in [event.detail for event in controller.event_log.snapshot()]


def test_restart_after_stop_starts_clean_session() -> None:
    clock = _Clock()
    source = _FakeMotionSource(clock)
    controller = _controller(motion_source=source, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        source.emit_magnitudes(moving(80))
        source.emit_magnitudes(still(400))
        await controller.stop()
        await controller.start(LINE, DESTINATION, ORIGIN)

    asyncio.run(scenario())

    snapshot = controller.snapshot()
    assert snapshot.stops_detected == 0
    assert snapshot.route[0] == "Surasak"
    assert snapshot.direction == "National Stadium"
    assert snapshot.motion_state == "idle"


class _FailingAudioSource(_FakeAudioSource):
    def read_band_energy(self, low_hz: float, high_hz: float):
        raise OSError("microphone unplugged")


def test_audio_failures_do_not_evict_confirmed_stops() -> None:
    clock = _Clock()
    source = _FakeMotionSource(clock)
    controller = _controller(motion_source=source, audio_source=_FailingAudioSource(), clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        source.emit_magnitudes(moving(80))
        source.emit_magnitudes(still(400))
        assert len(controller.stops()) == 1
        for _ in range(2100):
            clock.now += dt.timedelta(milliseconds=16)
            controller.audio_adapter.poll_once()
        await controller.stop()

    asyncio.run(scenario())

    details = [event.detail for event in controller.event_log.snapshot()]
    assert details[0] == "session_started"
    assert any(detail.startswith("stop #") for detail in details)
    assert details.count("audio_read_failed") == 1


def test_speech_language_is_passed_to_service() -> None:
    service = ScriptedSpeechService()
    controller = _controller(config=AppConfig(audio_poll_interval_s=10.0, speech_language="en-US"), speech_service=service)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        service.emit_end()
        await controller.stop()

    asyncio.run(scenario())

    assert service.start_calls == 2
    assert service.language == "en-US"


def test_fatal_speech_error_stops_restarting() -> None:
    service = ScriptedSpeechService()
    controller = _controller(speech_service=service, clock=_Clock())

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        service.emit_error("not-allowed")
        service.emit_end()
        service.emit_error("no-speech")
        assert controller.speech_adapter.listening is False
        await controller.stop()

    asyncio.run(scenario())

    assert service.start_calls == 1
    errors = [event for event in controller.event_log.snapshot() if event.detail == "speech_error"]
    assert [event.data["error"] for event in errors] == ["not-allowed"]


def test_aborted_speech_waits_for_end_before_restarting() -> None:
    service = ScriptedSpeechService()
    controller = _controller(speech_service=service, clock=_Clock())

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        service.emit_error("aborted")
        assert service.start_calls == 1
        assert controller.speech_adapter.listening is True
        service.emit_end()
        assert service.start_calls == 2

    asyncio.run(scenario())

    details = [event.detail for event in controller.event_log.snapshot()]
    assert "speech_error" not in details


def test_stop_clears_active_chime() -> None:
    clock = _Clock()
    audio = _FakeAudioSource()
    controller = _controller(audio_source=audio, clock=clock)

    async def scenario() -> None:
        await controller.start(LINE, ORIGIN, DESTINATION)
        audio.level = -20.0
        for _ in range(5):
            clock.now += dt.timedelta(milliseconds=20)
            controller.audio_adapter.poll_once()
        assert controller.snapshot().chime_active is True
        await controller.stop()

    asyncio.run(scenario())

    snapshot = controller.snapshot()
    assert snapshot.running is False
    assert snapshot.chime_active is False
    assert snapshot.chime_count == 0
