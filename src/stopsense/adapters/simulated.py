"""模拟传感器源，用于开发阶段离线跑完整行程。"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from stopsense.adapters.audio import FrameAudioSource
from stopsense.adapters.speech import EndCallback, ErrorCallback, ResultCallback

logger = logging.getLogger(__name__)

GRAVITY = 9.81

# (状态, 持续秒数)
DEFAULT_JOURNEY: List[Tuple[str, float]] = [
    ("stopped", 10.0),
    ("moving", 70.0),
    ("stopped", 25.0),
    ("moving", 80.0),
    ("stopped", 25.0),
    ("moving", 75.0),
    ("stopped", 25.0),
]


class SimulatedMotionSource:
    """按行程剧本生成加速度样本：行驶时抖动大，停站时近乎静止。"""

    def __init__(
        self,
        journey: Sequence[Tuple[str, float]] = DEFAULT_JOURNEY,
        rate_hz: float = 20.0,
        time_scale: float = 1.0,
        drop_probability: float = 0.01,
    ) -> None:
        self._journey = list(journey)
        self._rate_hz = rate_hz
        self._time_scale = max(time_scale, 0.01)
        self._drop_probability = drop_probability
        self._task: Optional[asyncio.Task[None]] = None

    def phase_at(self, elapsed: float) -> str:
        total = 0.0
        for phase, seconds in self._journey:
            total += seconds
            if elapsed < total:
                return phase
        return self._journey[-1][0] if self._journey else "stopped"

    def make_sample(self, phase: str) -> Mapping[str, Any]:
        if random.random() < self._drop_probability:
            return {"x": None, "y": 0.0, "z": GRAVITY}
        jitter = 1.0 if phase == "moving" else 0.05
        return {
            "x": random.gauss(0.0, jitter),
            "y": random.gauss(0.0, jitter),
            "z": GRAVITY + random.gauss(0.0, jitter),
        }

    def subscribe(self, callback: Callable[[Mapping[str, Any]], None]) -> None:
        if self._task is not None:
            return

        async def _loop() -> None:
            started = time.monotonic()
            interval = 1.0 / self._rate_hz
            while True:
                elapsed = (time.monotonic() - started) * self._time_scale
                callback(self.make_sample(self.phase_at(elapsed)))
                await asyncio.sleep(interval)

        self._task = asyncio.create_task(_loop())

    def unsubscribe(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class SimulatedAudioSource(FrameAudioSource):
    """合成 PCM 帧：低噪声背景中周期性出现一段正弦提示音。"""

    def __init__(
        self,
        sample_rate: int = 44100,
        fft_size: int = 2048,
        period_seconds: float = 105.0,
        chime_seconds: float = 1.2,
        chime_hz: float = 1400.0,
        chime_amplitude: float = 0.3,
        noise_amplitude: float = 0.003,
    ) -> None:
        super().__init__(self._next_frame, sample_rate=sample_rate, fft_size=fft_size)
        self._period = period_seconds
        self._chime = chime_seconds
        self._chime_hz = chime_hz
        self._chime_amplitude = chime_amplitude
        self._noise_amplitude = noise_amplitude
        self._rng = np.random.default_rng()
        self._opened_at: Optional[float] = None

    def open(self) -> None:
        super().open()
        self._opened_at = time.monotonic()

    def close(self) -> None:
        super().close()
        self._opened_at = None

    def _next_frame(self) -> Optional[np.ndarray]:
        if self._opened_at is None:
            return None
        elapsed = time.monotonic() - self._opened_at
        frame = self._rng.normal(0.0, self._noise_amplitude, self.fft_size)
        if elapsed % self._period >= self._period - self._chime:
            t = elapsed + np.arange(self.fft_size) / self.sample_rate
            frame += self._chime_amplitude * np.sin(2.0 * np.pi * self._chime_hz * t)
        return frame


class ScriptedSpeechService:
    """按脚本回放识别文本，也可在测试中手动触发回调。"""

    def __init__(self, script: Sequence[Tuple[float, str]] = (), supported: bool = True) -> None:
        self._script = list(script)
        self._supported = supported
        self._on_result: Optional[ResultCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_end: Optional[EndCallback] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._cursor = 0
        self.start_calls = 0
        self.stop_calls = 0
        self.language: Optional[str] = None

    @property
    def supported(self) -> bool:
        return self._supported

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
        language: str = "th-TH",
    ) -> None:
        self.start_calls += 1
        self.language = language
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end
        if self._script and self._cursor < len(self._script):
            with contextlib.suppress(RuntimeError):
                self._task = asyncio.get_running_loop().create_task(self._play())

    def stop(self) -> None:
        self.stop_calls += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def emit_result(self, text: str, final: bool = True) -> None:
        if self._on_result is not None:
            self._on_result(text, final)

    def emit_error(self, code: str) -> None:
        if self._on_error is not None:
            self._on_error(code)

    def emit_end(self) -> None:
        if self._on_end is not None:
            self._on_end()

    async def _play(self) -> None:
        delay, text = self._script[self._cursor]
        self._cursor += 1
        await asyncio.sleep(delay)
        self.emit_result(text, final=True)
        self._task = None
        self.emit_end()
