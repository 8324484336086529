"""滑动窗口统计与会话事件日志。"""

from __future__ import annotations

import collections
import threading
from typing import Deque, List, Optional

from stopsense.core.events import DetectionEvent

# 周期性重新求和，抵消长时间运行的浮点累积误差
_RESYNC_EVERY = 10_000


class SignalWindow:
    """固定容量的标量滑动窗口，增量维护均值与总体方差。

    以首个样本作为偏移基准累加，避免 9.8 m/s² 量级的加速度幅值在
    求平方和时出现明显的相消误差。
    """

    def __init__(self, capacity: int = 60) -> None:
        if capacity < 1:
            raise ValueError("capacity 必须为正整数")
        self._capacity = capacity
        self._values: Deque[float] = collections.deque()
        self._shift: Optional[float] = None
        self._sum = 0.0
        self._sum_sq = 0.0
        self._appends = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._values)

    @property
    def is_full(self) -> bool:
        return len(self._values) >= self._capacity

    def push(self, value: float) -> None:
        """追加样本，超出容量时淘汰最旧样本。"""

        if self._shift is None:
            self._shift = value
        if len(self._values) >= self._capacity:
            evicted = self._values.popleft() - self._shift
            self._sum -= evicted
            self._sum_sq -= evicted * evicted
        self._values.append(value)
        shifted = value - self._shift
        self._sum += shifted
        self._sum_sq += shifted * shifted

        self._appends += 1
        if self._appends % _RESYNC_EVERY == 0:
            self._resync()

    def mean(self) -> float:
        count = len(self._values)
        if count == 0 or self._shift is None:
            return 0.0
        return self._shift + self._sum / count

    def variance(self) -> float:
        """当前窗口内容的总体方差。"""

        count = len(self._values)
        if count == 0:
            return 0.0
        offset = self._sum / count
        return max(0.0, self._sum_sq / count - offset * offset)

    def clear(self) -> None:
        self._values.clear()
        self._shift = None
        self._sum = 0.0
        self._sum_sq = 0.0
        self._appends = 0

    def values(self) -> List[float]:
        return list(self._values)

    def _resync(self) -> None:
        if not self._values:
            return
        self._shift = self._values[0]
        self._sum = 0.0
        self._sum_sq = 0.0
        for value in self._values:
            shifted = value - self._shift
            self._sum += shifted
            self._sum_sq += shifted * shifted


class EventLog:
    """只追加的会话事件日志，支持多线程追加与快照。

    默认不设上限，会话内的停站与系统记录不会被淘汰；`maxlen` 仅用于
    有界的诊断场景。
    """

    def __init__(self, maxlen: Optional[int] = None) -> None:
        self._events: Deque[DetectionEvent] = collections.deque(maxlen=maxlen)
        self._dropped = 0
        self._lock = threading.Lock()

    def append(self, event: DetectionEvent) -> None:
        with self._lock:
            if self._events.maxlen is not None and len(self._events) == self._events.maxlen:
                self._dropped += 1
            self._events.append(event)

    def snapshot(self) -> List[DetectionEvent]:
        """返回当前记录的浅拷贝。"""

        with self._lock:
            return list(self._events)

    def since(self, index: int) -> List[DetectionEvent]:
        """返回全局序号 `index` 之后的记录，序号包含已被环形淘汰的部分。"""

        with self._lock:
            start = max(0, index - self._dropped)
            return list(self._events)[start:]

    def total(self) -> int:
        with self._lock:
            return self._dropped + len(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._dropped = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
