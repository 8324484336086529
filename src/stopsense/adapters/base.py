"""信号采集适配器基类。"""

from __future__ import annotations

import abc
import datetime as dt
from typing import Callable, Dict, Optional, Union

from stopsense.core.events import DetectionEvent, EventSource, utcnow

EventSink = Callable[[DetectionEvent], None]
Clock = Callable[[], dt.datetime]


class SensorAdapter(abc.ABC):
    """所有传感器适配器的抽象基类。"""

    source: EventSource = EventSource.SYSTEM

    def __init__(self, sink: Optional[EventSink] = None, clock: Optional[Clock] = None) -> None:
        self._sink = sink
        self._clock = clock or utcnow

    @abc.abstractmethod
    async def start(self) -> None:
        """启动采集。"""

    @abc.abstractmethod
    def stop(self) -> None:
        """停止采集，重复调用无副作用。"""

    def now(self) -> dt.datetime:
        return self._clock()

    def publish(self, detail: str, data: Optional[Dict[str, Union[float, int, str, None]]] = None) -> None:
        """向会话事件日志追加一条记录。"""

        if self._sink is None:
            return
        self._sink(DetectionEvent(time=self.now(), source=self.source, detail=detail, data=data or {}))
