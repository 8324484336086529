"""行程路线构建与停站位置映射。"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional, Union

from stopsense.core.events import ConfirmedStopEvent, EventSource
from stopsense.core.stop_gate import GateDecision
from stopsense.data.lines import Direction, Station, StationCatalog


@dataclass(frozen=True)
class Route:
    """按行驶方向排列的站点序列，`stations[0]` 为起点。"""

    line_id: str
    stations: List[Station] = field(default_factory=list)
    direction: Optional[Direction] = None

    def __len__(self) -> int:
        return len(self.stations)

    def __bool__(self) -> bool:
        return bool(self.stations)

    @property
    def origin(self) -> Optional[Station]:
        return self.stations[0] if self.stations else None

    @property
    def destination(self) -> Optional[Station]:
        return self.stations[-1] if self.stations else None


@dataclass(frozen=True)
class BeyondRoute:
    """超出计划路线的停站占位。"""

    ordinal: int

    @property
    def label(self) -> str:
        return f"Stop #{self.ordinal + 2} (beyond route)"


def build_route(catalog: StationCatalog, line_id: str, origin_id: str, destination_id: str) -> Route:
    """按起终点在线路上的先后顺序截取路线，必要时反转。

    起终点相同或任一不在该线路上时返回空路线。
    """

    line_stations = catalog.stations_on_line(line_id)
    ids = [station.id for station in line_stations]
    if origin_id == destination_id or origin_id not in ids or destination_id not in ids:
        return Route(line_id=line_id)

    origin_idx = ids.index(origin_id)
    dest_idx = ids.index(destination_id)
    if origin_idx < dest_idx:
        stations = line_stations[origin_idx : dest_idx + 1]
    else:
        stations = list(reversed(line_stations[dest_idx : origin_idx + 1]))
    direction = catalog.direction_towards(line_id, origin_id, destination_id)
    return Route(line_id=line_id, stations=stations, direction=direction)


class RouteMatcher:
    """纯位置映射：第 k 个确认停站（从 0 开始）对应 `Route[k + 1]`。

    不做重排或跳站修正，漏检一站会使之后的映射整体后移。
    """

    def __init__(self, route: Route) -> None:
        self._route = route

    @property
    def route(self) -> Route:
        return self._route

    @property
    def expected_stops(self) -> int:
        return max(0, len(self._route) - 1)

    def station_for(self, ordinal: int) -> Optional[Station]:
        index = ordinal + 1
        if 0 <= index < len(self._route):
            return self._route.stations[index]
        return None

    def assign(self, ordinal: int) -> Union[Station, BeyondRoute]:
        """返回站点或 `BeyondRoute` 占位，从不抛出异常。"""

        station = self.station_for(ordinal)
        if station is None:
            return BeyondRoute(ordinal=ordinal)
        return station

    def next_station(self, confirmed_count: int) -> Optional[Station]:
        return self.station_for(confirmed_count)

    def to_event(
        self,
        decision: GateDecision,
        source: EventSource = EventSource.MOTION,
    ) -> ConfirmedStopEvent:
        """将已确认的门控判定标注为带站点的停站事件。"""

        if not decision.confirmed or decision.ordinal is None:
            raise ValueError("只能标注已确认的停站")
        assigned = self.assign(decision.ordinal)
        if isinstance(assigned, BeyondRoute):
            station, label = None, assigned.label
        else:
            station, label = assigned, assigned.name
        return ConfirmedStopEvent(
            ordinal=decision.ordinal,
            station=station,
            started_at=decision.started_at,
            confirmed_at=decision.decided_at,
            source=source,
            label=label,
        )


def format_clock(timestamp: dt.datetime) -> str:
    return timestamp.strftime("%H:%M:%S")
