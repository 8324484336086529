"""麦克风频带能量轮询适配器。"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional, Protocol

import numpy as np

from stopsense.adapters.base import Clock, EventSink, SensorAdapter
from stopsense.config import AppConfig
from stopsense.core.chime_detector import AudioChimeDetector, band_energy_db
from stopsense.core.events import ChimeEvent, EventSource

logger = logging.getLogger(__name__)


class AudioSource(Protocol):
    """实时麦克风流 + 频谱分析句柄。"""

    def open(self) -> None:
        """打开麦克风流。"""

    def read_band_energy(self, low_hz: float, high_hz: float) -> Optional[float]:
        """返回当前时刻频带内的平均能量（dB）。"""

    def close(self) -> None:
        """释放麦克风流，需保证可重复调用。"""


class FrameAudioSource:
    """从 PCM 帧提供者计算频带能量。

    每次只取最近的 `fft_size` 个采样做 FFT；帧不足时按实际长度计算。
    """

    def __init__(
        self,
        frame_provider: Callable[[], Optional[np.ndarray]],
        sample_rate: int = 44100,
        fft_size: int = 2048,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._frame_provider = frame_provider
        self._sample_rate = sample_rate
        self._fft_size = fft_size
        self._on_close = on_close
        self._open = False

    @classmethod
    def from_config(
        cls,
        frame_provider: Callable[[], Optional[np.ndarray]],
        config: AppConfig,
        on_close: Optional[Callable[[], None]] = None,
    ) -> "FrameAudioSource":
        return cls(
            frame_provider,
            sample_rate=config.audio_sample_rate,
            fft_size=config.audio_fft_size,
            on_close=on_close,
        )

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def fft_size(self) -> int:
        return self._fft_size

    def open(self) -> None:
        self._open = True

    def read_band_energy(self, low_hz: float, high_hz: float) -> Optional[float]:
        if not self._open:
            return None
        frame = self._frame_provider()
        if frame is None:
            return None
        samples = np.asarray(frame, dtype=np.float64).ravel()[-self._fft_size :]
        return band_energy_db(samples, self._sample_rate, low_hz, high_hz)

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        if self._on_close is not None:
            self._on_close()


class AudioChimeAdapter(SensorAdapter):
    """按显示刷新节奏轮询频带能量并交给 `AudioChimeDetector`。"""

    source = EventSource.CHIME

    def __init__(
        self,
        source: AudioSource,
        detector: AudioChimeDetector,
        low_hz: float = 800.0,
        high_hz: float = 2500.0,
        poll_interval: float = 1.0 / 60.0,
        on_chime: Optional[Callable[[ChimeEvent], None]] = None,
        sink: Optional[EventSink] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(sink, clock)
        self._source = source
        self._detector = detector
        self._low_hz = low_hz
        self._high_hz = high_hz
        self._poll_interval = poll_interval
        self._on_chime = on_chime
        self._task: Optional[asyncio.Task[None]] = None
        self._opened = False
        self._failing = False
        self._read_failures = 0

    @property
    def read_failures(self) -> int:
        return self._read_failures

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._source.open()
        self._opened = True

        async def _loop() -> None:
            while True:
                self.poll_once()
                await asyncio.sleep(self._poll_interval)

        self._task = asyncio.create_task(_loop())
        logger.info("提示音检测已启动 (%.0f-%.0f Hz)", self._low_hz, self._high_hz)

    def poll_once(self) -> Optional[ChimeEvent]:
        try:
            level = self._source.read_band_energy(self._low_hz, self._high_hz)
        except Exception as exc:
            self._read_failures += 1
            # 连续失败只报告一次，恢复后再失败才重新报告
            if not self._failing:
                self._failing = True
                logger.warning("读取频带能量失败: %s", exc)
                self.publish("audio_read_failed", {"error": str(exc)})
            return None
        if self._failing:
            self._failing = False
            logger.info("频带能量读取已恢复")
        event = self._detector.update(level, self.now())
        if event is not None:
            self.publish("chime", {"level_db": round(event.level_db, 2)})
            if self._on_chime is not None:
                self._on_chime(event)
        return event

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._opened:
            self._opened = False
            self._source.close()
            logger.info("提示音检测已停止")

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
