"""检测管线共享的事件与状态类型。"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

from stopsense.data.lines import Station


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class MotionState(Enum):
    """车辆运动状态。"""

    IDLE = "idle"
    MOVING = "moving"
    STOPPED = "stopped"


class EventSource(Enum):
    """事件来源模态。"""

    MOTION = "motion"
    CHIME = "chime"
    SPEECH = "speech"
    SYSTEM = "system"


@dataclass
class PendingStop:
    """等待确认的停站区间。"""

    started_at: dt.datetime


@dataclass(frozen=True)
class ConfirmedStopEvent:
    """经确认门控后的停站事件，创建后不可修改。"""

    ordinal: int
    station: Optional[Station]
    started_at: dt.datetime
    confirmed_at: dt.datetime
    source: EventSource = EventSource.MOTION
    label: str = ""

    @property
    def beyond_route(self) -> bool:
        return self.station is None


@dataclass(frozen=True)
class ChimeEvent:
    """一次被确认的到站提示音。"""

    activated_at: dt.datetime
    confirmed_at: dt.datetime
    level_db: float


@dataclass(frozen=True)
class SpeechMatch:
    """语音播报中识别出的站点。"""

    station: Station
    transcript: str
    matched_text: str
    matched_at: dt.datetime
    by_word: bool = False


@dataclass(frozen=True)
class DetectionEvent:
    """会话事件日志中的单条记录。"""

    time: dt.datetime
    source: EventSource
    detail: str
    data: Dict[str, Union[float, int, str, None]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "time": self.time.isoformat(),
            "source": self.source.value,
            "detail": self.detail,
            "data": dict(self.data),
        }
