"""会话控制：生命周期、资源申请与释放、事件日志汇总。"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional, Union

from stopsense.adapters.audio import AudioChimeAdapter, AudioSource
from stopsense.adapters.base import Clock
from stopsense.adapters.motion import MotionSensorAdapter, MotionSource
from stopsense.adapters.permissions import AllowAllPermissions, PermissionProvider, ensure_permission
from stopsense.adapters.speech import SpeechAdapter, SpeechService
from stopsense.adapters.wake_lock import WakeLock, WakeLockGuard
from stopsense.config import AppConfig
from stopsense.core.chime_detector import AudioChimeDetector
from stopsense.core.events import (
    ChimeEvent,
    ConfirmedStopEvent,
    DetectionEvent,
    EventSource,
    SpeechMatch,
    utcnow,
)
from stopsense.core.motion_classifier import MotionClassifier, MotionUpdate
from stopsense.core.route import Route, RouteMatcher, build_route, format_clock
from stopsense.core.signal_window import EventLog
from stopsense.core.speech_matcher import SpeechAnnouncementMatcher
from stopsense.data.lines import StationCatalog
from stopsense.errors import PermissionDenied, RouteUnavailable, SessionAlreadyRunning, SpeechUnsupported

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    """供展示层读取的会话快照。"""

    running: bool
    line_id: Optional[str]
    origin_id: Optional[str]
    destination_id: Optional[str]
    direction: Optional[str]
    route: List[str]
    motion_state: str
    variance: Optional[float]
    sample_rate: float
    stops_detected: int
    ignored_stops: int
    expected_stops: int
    next_station: Optional[str]
    chime_active: bool
    chime_count: int
    matched_stations: List[str]
    event_count: int
    conditions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class SessionController:
    """一次行程的检测会话。

    三条管线（运动、提示音、语音）相互独立，各自向同一个只追加的
    事件日志写入；任一管线权限不足或不可用时只跳过该管线。
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        catalog: Optional[StationCatalog] = None,
        motion_source: Optional[MotionSource] = None,
        audio_source: Optional[AudioSource] = None,
        speech_service: Optional[SpeechService] = None,
        permissions: Optional[PermissionProvider] = None,
        wake_lock: Optional[WakeLock] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config or AppConfig.load()
        self._catalog = catalog or StationCatalog.default()
        self._motion_source = motion_source
        self._audio_source = audio_source
        self._speech_service = speech_service
        self._permissions: PermissionProvider = permissions or AllowAllPermissions()
        self._wake_lock = WakeLockGuard(wake_lock)
        self._clock: Clock = clock or utcnow

        self._log = EventLog()
        self._classifier = MotionClassifier(self._config)
        self._chime_detector = AudioChimeDetector(self._config)
        self._matcher = SpeechAnnouncementMatcher(min_word_length=self._config.speech_min_word_length)
        self._route = Route(line_id="")
        self._route_matcher = RouteMatcher(self._route)

        self._motion_adapter: Optional[MotionSensorAdapter] = None
        self._audio_adapter: Optional[AudioChimeAdapter] = None
        self._speech_adapter: Optional[SpeechAdapter] = None

        self._stops: List[ConfirmedStopEvent] = []
        self._chimes: List[ChimeEvent] = []
        self._speech_matches: List[SpeechMatch] = []
        self._conditions: List[str] = []
        self._running = False
        self._lock = threading.RLock()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def route(self) -> Route:
        return self._route

    @property
    def event_log(self) -> EventLog:
        return self._log

    @property
    def classifier(self) -> MotionClassifier:
        return self._classifier

    @property
    def chime_detector(self) -> AudioChimeDetector:
        return self._chime_detector

    @property
    def motion_adapter(self) -> Optional[MotionSensorAdapter]:
        return self._motion_adapter

    @property
    def audio_adapter(self) -> Optional[AudioChimeAdapter]:
        return self._audio_adapter

    @property
    def speech_adapter(self) -> Optional[SpeechAdapter]:
        return self._speech_adapter

    def stops(self) -> List[ConfirmedStopEvent]:
        with self._lock:
            return list(self._stops)

    def speech_matches(self) -> List[SpeechMatch]:
        with self._lock:
            return list(self._speech_matches)

    def chimes(self) -> List[ChimeEvent]:
        with self._lock:
            return list(self._chimes)

    async def start(self, line_id: str, origin_id: str, destination_id: str) -> Route:
        """开始行程：构建路线、重置状态并逐条启动检测管线。"""

        if self._running:
            raise SessionAlreadyRunning("请先停止当前会话")

        route = build_route(self._catalog, line_id, origin_id, destination_id)
        if not route:
            raise RouteUnavailable(f"无法在 {line_id} 上从 {origin_id} 前往 {destination_id}")

        self.reset()
        with self._lock:
            self._route = route
            self._route_matcher = RouteMatcher(route)
        self._matcher.set_stations(route.stations[1:])
        self._running = True
        self._record(
            EventSource.SYSTEM,
            "session_started",
            {
                "line": line_id,
                "origin": origin_id,
                "destination": destination_id,
                "direction": route.direction.label if route.direction else None,
            },
        )
        logger.info(
            "行程开始: %s %s -> %s，共 %s 站",
            line_id,
            route.origin.name if route.origin else origin_id,
            route.destination.name if route.destination else destination_id,
            len(route),
        )

        try:
            await self._start_motion()
            await self._start_audio()
            await self._start_speech()
            self._acquire_wake_lock()
        except BaseException:
            await self.stop()
            raise
        return route

    async def stop(self) -> None:
        """结束行程并释放全部资源，可重复调用；单项释放失败不影响其余项。"""

        was_running = self._running
        self._running = False

        motion, self._motion_adapter = self._motion_adapter, None
        audio, self._audio_adapter = self._audio_adapter, None
        speech, self._speech_adapter = self._speech_adapter, None

        if speech is not None:
            self._release("语音识别", speech.stop)
        if motion is not None:
            self._release("加速度订阅", motion.stop)
        if audio is not None:
            try:
                await audio.aclose()
            except Exception:
                logger.warning("释放麦克风失败", exc_info=True)
        self._release("屏幕常亮", self._wake_lock.release)
        self._classifier.halt()
        self._chime_detector.deactivate()

        if was_running:
            self._record(EventSource.SYSTEM, "session_stopped", {"stops": len(self._stops)})
            logger.info("行程结束，共确认 %s 次停站", len(self._stops))

    def reset(self) -> None:
        """清空分类器、计数与事件日志，不触碰已申请的资源。"""

        with self._lock:
            self._classifier.reset()
            self._chime_detector.reset()
            self._matcher.reset()
            self._stops.clear()
            self._chimes.clear()
            self._speech_matches.clear()
            self._conditions.clear()
            self._log.clear()

    async def on_visibility_change(self, visible: bool) -> None:
        """应用失去前台时系统会回收常亮锁，回到前台后重新申请。"""

        if not visible:
            self._wake_lock.mark_revoked()
            return
        if self._running:
            self._acquire_wake_lock()

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            route = self._route
            gate = self._classifier.gate
            next_station = self._route_matcher.next_station(gate.confirmed_count)
            detector_state = self._chime_detector.state
            return SessionSnapshot(
                running=self._running,
                line_id=route.line_id or None,
                origin_id=route.origin.id if route.origin else None,
                destination_id=route.destination.id if route.destination else None,
                direction=route.direction.label if route.direction else None,
                route=[station.name for station in route.stations],
                motion_state=self._classifier.state.value,
                variance=self._classifier.variance,
                sample_rate=self._motion_adapter.sample_rate if self._motion_adapter else 0.0,
                stops_detected=len(self._stops),
                ignored_stops=gate.ignored_count,
                expected_stops=self._route_matcher.expected_stops,
                next_station=next_station.name if next_station else None,
                chime_active=detector_state.active,
                chime_count=len(self._chimes),
                matched_stations=[match.station.name for match in self._speech_matches],
                event_count=self._log.total(),
                conditions=list(self._conditions),
            )

    def route_view(self) -> List[Dict[str, object]]:
        """路线上每个站点的展示状态：起点、已检测时间、下一站标记。"""

        with self._lock:
            detected = {stop.ordinal + 1: stop for stop in self._stops}
            count = len(self._stops)
            rows: List[Dict[str, object]] = []
            for index, station in enumerate(self._route.stations):
                stop = detected.get(index)
                rows.append(
                    {
                        "index": index,
                        "id": station.id,
                        "name": station.name,
                        "origin": index == 0,
                        "detected_at": format_clock(stop.started_at) if stop else None,
                        "next": index > 0 and stop is None and index == count + 1,
                    }
                )
            return rows

    def handle_motion_update(self, update: MotionUpdate) -> List[ConfirmedStopEvent]:
        """将运动状态机的门控判定标注站点并写入日志。"""

        confirmed: List[ConfirmedStopEvent] = []
        for decision in update.decisions:
            if not decision.confirmed:
                self._record(
                    EventSource.MOTION,
                    "stop_ignored",
                    {"reason": decision.reason, "duration_s": round(decision.duration.total_seconds(), 2)},
                )
                continue
            with self._lock:
                event = self._route_matcher.to_event(decision)
                self._stops.append(event)
            confirmed.append(event)
            self._record(
                EventSource.MOTION,
                f"stop #{event.ordinal + 1}: {event.label}",
                {
                    "ordinal": event.ordinal,
                    "station_id": event.station.id if event.station else None,
                    "arrived": format_clock(event.started_at),
                    "duration_s": round(decision.duration.total_seconds(), 2),
                },
            )
        return confirmed

    def _handle_chime(self, event: ChimeEvent) -> None:
        with self._lock:
            self._chimes.append(event)

    def _handle_speech_match(self, match: SpeechMatch) -> None:
        with self._lock:
            self._speech_matches.append(match)

    async def _start_motion(self) -> None:
        if not self._config.motion_enabled or self._motion_source is None:
            return
        try:
            self._require_permission(self._permissions.request_motion, "motion")
        except PermissionDenied as exc:
            self._condition("permission_denied", exc.resource)
            return
        adapter = MotionSensorAdapter(
            self._motion_source,
            self._classifier,
            on_update=self.handle_motion_update,
            sink=self._append,
            clock=self._clock,
        )
        self._motion_adapter = adapter
        await adapter.start()

    async def _start_audio(self) -> None:
        if not self._config.audio_enabled or self._audio_source is None:
            return
        try:
            self._require_permission(self._permissions.request_microphone, "microphone")
        except PermissionDenied as exc:
            self._condition("permission_denied", exc.resource)
            return
        adapter = AudioChimeAdapter(
            self._audio_source,
            self._chime_detector,
            low_hz=self._config.chime_band_low_hz,
            high_hz=self._config.chime_band_high_hz,
            poll_interval=self._config.audio_poll_interval_s,
            on_chime=self._handle_chime,
            sink=self._append,
            clock=self._clock,
        )
        self._audio_adapter = adapter
        await adapter.start()

    async def _start_speech(self) -> None:
        if not self._config.speech_enabled or self._speech_service is None:
            return
        adapter = SpeechAdapter(
            self._speech_service,
            self._matcher,
            on_match=self._handle_speech_match,
            language=self._config.speech_language,
            sink=self._append,
            clock=self._clock,
        )
        try:
            await adapter.start()
        except SpeechUnsupported:
            self._condition("speech_unsupported")
            return
        self._speech_adapter = adapter

    def _acquire_wake_lock(self) -> None:
        if not self._config.wake_lock_enabled or not self._wake_lock.available:
            return
        if not self._wake_lock.acquire():
            self._condition("wake_lock_unavailable")

    def _require_permission(self, request: Callable[[], bool], resource: str) -> None:
        if not ensure_permission(request, resource):
            raise PermissionDenied(resource)

    def _condition(self, name: str, resource: Optional[str] = None) -> None:
        label = f"{name}:{resource}" if resource else name
        with self._lock:
            if label not in self._conditions:
                self._conditions.append(label)
        self._record(EventSource.SYSTEM, name, {"resource": resource})
        logger.warning("会话状态条件: %s", label)

    def _release(self, name: str, release: Callable[[], None]) -> None:
        try:
            release()
        except Exception:
            logger.warning("释放%s失败", name, exc_info=True)

    def _record(
        self,
        source: EventSource,
        detail: str,
        data: Optional[Dict[str, Union[float, int, str, None]]] = None,
    ) -> None:
        self._append(DetectionEvent(time=self._clock(), source=source, detail=detail, data=data or {}))

    def _append(self, event: DetectionEvent) -> None:
        self._log.append(event)


def describe_event(event: DetectionEvent) -> str:
    return f"{format_clock(event.time)} [{event.source.value}] {event.detail}"
