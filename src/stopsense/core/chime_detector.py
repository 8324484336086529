"""到站提示音检测：频带能量阈值 + 持续时长 + 冷却。"""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from stopsense.config import AppConfig
from stopsense.core.events import ChimeEvent

logger = logging.getLogger(__name__)

_POWER_FLOOR = 1e-16


def band_energy_db(
    frame: np.ndarray,
    sample_rate: int,
    low_hz: float,
    high_hz: float,
) -> Optional[float]:
    """计算 PCM 帧在 [low_hz, high_hz] 频带内的平均能量（dBFS 近似）。

    帧取值范围为 [-1, 1]。加 Hann 窗后做实数 FFT，幅值按窗增益归一化，
    使满幅正弦在其频点处约为 1.0。频带内没有任何频点时返回 None。
    """

    samples = np.asarray(frame, dtype=np.float64).ravel()
    if samples.size < 2:
        return None

    window = np.hanning(samples.size)
    spectrum = np.abs(np.fft.rfft(samples * window)) / (window.sum() / 2.0)
    freqs = np.fft.rfftfreq(samples.size, d=1.0 / sample_rate)
    mask = (freqs >= low_hz) & (freqs <= high_hz)
    if not mask.any():
        return None

    power = float(np.mean(spectrum[mask] ** 2))
    return 10.0 * math.log10(max(power, _POWER_FLOOR))


@dataclass
class ChimeDetectorState:
    active: bool = False
    activation_started_at: Optional[dt.datetime] = None
    cooldown_until: Optional[dt.datetime] = None
    emitted: bool = False


class AudioChimeDetector:
    """单阈值提示音检测器。

    高于阈值开始一次激活，激活持续满 `min_duration` 时发出一次事件并
    进入冷却；冷却期内不识别新的激活。低于阈值会清除激活，被打断的
    上升沿不计数。同一次激活只发出一次事件。
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self._config = config or AppConfig.load_default()
        self._threshold = self._config.chime_threshold_db
        self._min_duration = dt.timedelta(milliseconds=self._config.chime_min_duration_ms)
        self._cooldown = dt.timedelta(milliseconds=self._config.chime_cooldown_ms)
        self._state = ChimeDetectorState()
        self._chime_count = 0
        self._interrupted_count = 0
        self._last_level: Optional[float] = None

    @property
    def state(self) -> ChimeDetectorState:
        return self._state

    @property
    def chime_count(self) -> int:
        return self._chime_count

    @property
    def interrupted_count(self) -> int:
        return self._interrupted_count

    @property
    def last_level(self) -> Optional[float]:
        return self._last_level

    def in_cooldown(self, now: dt.datetime) -> bool:
        return self._state.cooldown_until is not None and now < self._state.cooldown_until

    def update(self, level_db: Optional[float], now: dt.datetime) -> Optional[ChimeEvent]:
        """消费一个频带能量样本，确认提示音时返回事件。"""

        if level_db is None or math.isnan(level_db):
            return None
        self._last_level = level_db
        state = self._state

        if level_db <= self._threshold:
            if state.active and not state.emitted:
                self._interrupted_count += 1
                logger.debug("提示音上升沿被打断")
            state.active = False
            state.activation_started_at = None
            state.emitted = False
            return None

        if not state.active:
            if self.in_cooldown(now):
                return None
            state.active = True
            state.activation_started_at = now
            state.emitted = False
            return None

        if state.emitted or state.activation_started_at is None:
            return None

        if now - state.activation_started_at < self._min_duration:
            return None

        state.emitted = True
        state.cooldown_until = now + self._cooldown
        self._chime_count += 1
        logger.info("检测到到站提示音 (%.1f dB)", level_db)
        return ChimeEvent(
            activated_at=state.activation_started_at,
            confirmed_at=now,
            level_db=level_db,
        )

    def deactivate(self) -> None:
        """结束当前激活，保留计数与冷却。"""

        self._state.active = False
        self._state.activation_started_at = None
        self._state.emitted = False

    def reset(self) -> None:
        self._state = ChimeDetectorState()
        self._chime_count = 0
        self._interrupted_count = 0
        self._last_level = None
