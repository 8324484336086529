"""语音识别适配器：自动重启并把识别文本交给站名匹配器。"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from stopsense.adapters.base import Clock, EventSink, SensorAdapter
from stopsense.core.events import EventSource, SpeechMatch
from stopsense.core.speech_matcher import SpeechAnnouncementMatcher
from stopsense.errors import SpeechUnsupported

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[str], None]
EndCallback = Callable[[], None]

NO_SPEECH = "no-speech"
ABORTED = "aborted"
# 出现以下错误后不再自动重启
FATAL_ERRORS = frozenset({"not-allowed", "service-not-allowed", "audio-capture"})


class SpeechService(Protocol):
    """语音转文字服务接口。"""

    @property
    def supported(self) -> bool:
        """当前环境是否可用。"""

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
        language: str = "th-TH",
    ) -> None:
        """以 `language`（BCP 47）开始一次识别，结束时必须回调 `on_end`。"""

    def stop(self) -> None:
        """结束识别。"""


class SpeechAdapter(SensorAdapter):
    """管理识别服务的生命周期。

    每次启动分配新的代号，回调只在代号匹配且未被主动停止时生效，
    防止服务自身的结束回调在停止之后再次启动识别。
    """

    source = EventSource.SPEECH

    def __init__(
        self,
        service: SpeechService,
        matcher: SpeechAnnouncementMatcher,
        on_match: Optional[Callable[[SpeechMatch], None]] = None,
        language: str = "th-TH",
        sink: Optional[EventSink] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(sink, clock)
        self._service = service
        self._matcher = matcher
        self._on_match = on_match
        self._language = language
        self._generation = 0
        self._stopped = True
        self._restarts = 0
        self._last_transcript = ""

    @property
    def listening(self) -> bool:
        return not self._stopped

    @property
    def restart_count(self) -> int:
        return self._restarts

    @property
    def last_transcript(self) -> str:
        return self._last_transcript

    async def start(self) -> None:
        if not self._stopped:
            return
        if not self._service.supported:
            raise SpeechUnsupported("当前环境不支持语音识别")
        self._stopped = False
        self._launch()
        logger.info("语音识别已启动 (%s)", self._language)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._generation += 1
        try:
            self._service.stop()
        except Exception:
            logger.warning("停止语音识别失败", exc_info=True)
        logger.info("语音识别已停止")

    def _launch(self) -> None:
        self._generation += 1
        generation = self._generation
        try:
            self._service.start(
                on_result=lambda text, final: self._handle_result(generation, text, final),
                on_error=lambda code: self._handle_error(generation, code),
                on_end=lambda: self._handle_end(generation),
                language=self._language,
            )
        except Exception as exc:
            logger.error("启动语音识别失败: %s", exc)
            self.publish("speech_error", {"error": str(exc)})
            self._stopped = True

    def _is_current(self, generation: int) -> bool:
        return not self._stopped and generation == self._generation

    def _restart(self) -> None:
        self._restarts += 1
        logger.debug("语音识别自动重启 (#%s)", self._restarts)
        self._launch()

    def _handle_result(self, generation: int, text: str, final: bool) -> None:
        if not self._is_current(generation):
            return
        self._last_transcript = text
        match = self._matcher.match(text, self.now())
        if match is None:
            return
        self.publish(
            f"announcement: {match.station.name}",
            {"station_id": match.station.id, "matched_text": match.matched_text, "final": int(final)},
        )
        if self._on_match is not None:
            self._on_match(match)

    def _handle_error(self, generation: int, code: str) -> None:
        if not self._is_current(generation):
            return
        if code == NO_SPEECH:
            self._restart()
            return
        if code == ABORTED:
            return
        logger.warning("语音识别错误: %s", code)
        self.publish("speech_error", {"error": code})
        if code in FATAL_ERRORS:
            self._stopped = True
            self._generation += 1

    def _handle_end(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._restart()
