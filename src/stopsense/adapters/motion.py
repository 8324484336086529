"""加速度传感器适配器：订阅 {x, y, z} 样本并驱动运动状态机。"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Any, Callable, Mapping, Optional, Protocol

from stopsense.adapters.base import Clock, EventSink, SensorAdapter
from stopsense.core.events import EventSource
from stopsense.core.motion_classifier import MotionClassifier, MotionUpdate

logger = logging.getLogger(__name__)

MotionCallback = Callable[[Mapping[str, Any]], None]


class MotionSource(Protocol):
    """设备原生频率的加速度订阅接口。"""

    def subscribe(self, callback: MotionCallback) -> None:
        """开始推送样本。"""

    def unsubscribe(self) -> None:
        """停止推送，需保证可重复调用。"""


def sample_magnitude(sample: Mapping[str, Any]) -> Optional[float]:
    """计算加速度矢量模长；任一轴缺失或非数值时返回 None。"""

    try:
        x = float(sample["x"])
        y = float(sample["y"])
        z = float(sample["z"])
    except (KeyError, TypeError, ValueError):
        return None
    if not all(math.isfinite(v) for v in (x, y, z)):
        return None
    return math.sqrt(x * x + y * y + z * z)


class MotionSensorAdapter(SensorAdapter):
    """将加速度样本转换为幅值并交给 `MotionClassifier`。"""

    source = EventSource.MOTION

    def __init__(
        self,
        source: MotionSource,
        classifier: MotionClassifier,
        on_update: Optional[Callable[[MotionUpdate], None]] = None,
        sink: Optional[EventSink] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(sink, clock)
        self._source = source
        self._classifier = classifier
        self._on_update = on_update
        self._subscribed = False
        self._dropped = 0
        self._rate_window_start: Optional[dt.datetime] = None
        self._rate_window_count = 0
        self._sample_rate = 0.0

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    @property
    def sample_rate(self) -> float:
        """最近一个完整秒内收到的样本数。"""

        return self._sample_rate

    @property
    def dropped_samples(self) -> int:
        return self._dropped

    async def start(self) -> None:
        if self._subscribed:
            return
        self._source.subscribe(self.handle_sample)
        self._subscribed = True
        logger.info("加速度订阅已启动")

    def stop(self) -> None:
        if not self._subscribed:
            return
        self._subscribed = False
        self._source.unsubscribe()
        logger.info("加速度订阅已停止")

    def handle_sample(self, sample: Mapping[str, Any]) -> Optional[MotionUpdate]:
        magnitude = sample_magnitude(sample)
        if magnitude is None:
            self._dropped += 1
            logger.debug("丢弃不完整的加速度样本: %s", sample)
            return None

        now = self.now()
        self._track_rate(now)
        update = self._classifier.update(magnitude, now)
        if update.transitioned:
            self.publish(
                f"state {update.previous_state.value} -> {update.state.value}",
                {"variance": update.variance},
            )
        if self._on_update is not None:
            self._on_update(update)
        return update

    def _track_rate(self, now: dt.datetime) -> None:
        if self._rate_window_start is None:
            self._rate_window_start = now
            return
        self._rate_window_count += 1
        elapsed = (now - self._rate_window_start).total_seconds()
        if elapsed >= 1.0:
            self._sample_rate = self._rate_window_count / elapsed
            self._rate_window_count = 0
            self._rate_window_start = now
