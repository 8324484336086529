"""曼谷轨道交通线路与站点参考数据（只读）。"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Direction:
    """线路的行驶方向，以终点站命名。"""

    id: str
    label: str


@dataclass(frozen=True)
class Line:
    """线路定义，`directions[0]` 指向首站一端，`directions[1]` 指向末站一端。"""

    id: str
    name: str
    directions: Tuple[Direction, Direction]


@dataclass(frozen=True)
class Station:
    id: str
    name: str
    line: str


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def _stations(prefix: str, line_id: str, names: Sequence[str]) -> List[Station]:
    return [Station(id=f"{prefix}_{_slug(name)}", name=name, line=line_id) for name in names]


LINES: List[Line] = [
    Line(
        id="mrt_blue",
        name="MRT Blue",
        directions=(Direction("tha_phra", "Tha Phra"), Direction("lak_song", "Lak Song")),
    ),
    Line(
        id="bts_sukhumvit",
        name="BTS Sukhumvit",
        directions=(Direction("khu_khot", "Khu Khot"), Direction("kheha", "Kheha")),
    ),
    Line(
        id="bts_silom",
        name="BTS Silom",
        directions=(Direction("national_stadium", "National Stadium"), Direction("bang_wa", "Bang Wa")),
    ),
    Line(
        id="arl",
        name="Airport Rail Link",
        directions=(Direction("phaya_thai", "Phaya Thai"), Direction("suvarnabhumi", "Suvarnabhumi")),
    ),
]

# 仅收录 MRT 蓝线 Tha Phra 至 Lak Song 的延伸段
STATIONS: List[Station] = [
    *_stations(
        "blue",
        "mrt_blue",
        [
            "Tha Phra",
            "Bang Phai",
            "Bang Wa",
            "Phetkasem 48",
            "Phasi Charoen",
            "Bang Khae",
            "Lak Song",
        ],
    ),
    *_stations(
        "suk",
        "bts_sukhumvit",
        [
            "Khu Khot",
            "Yaek Kor Por Aor",
            "Royal Thai Air Force Museum",
            "Bhumibol Adulyadej Hospital",
            "Saphan Mai",
            "Sai Yud",
            "Phahon Yothin 59",
            "Wat Phra Sri Mahathat",
            "11th Infantry Regiment",
            "Bang Bua",
            "Royal Forest Department",
            "Kasetsart University",
            "Sena Nikhom",
            "Ratchayothin",
            "Phahon Yothin 24",
            "Ha Yaek Lat Phrao",
            "Mo Chit",
            "Saphan Khwai",
            "Ari",
            "Sanam Pao",
            "Victory Monument",
            "Phaya Thai",
            "Ratchathewi",
            "Siam",
            "Chit Lom",
            "Phloen Chit",
            "Nana",
            "Asok",
            "Phrom Phong",
            "Thong Lo",
            "Ekkamai",
            "Phra Khanong",
            "On Nut",
            "Bang Chak",
            "Punnawithi",
            "Udom Suk",
            "Bang Na",
            "Bearing",
            "Samrong",
            "Pu Chao",
            "Chang Erawan",
            "Royal Thai Naval Academy",
            "Pak Nam",
            "Srinagarindra",
            "Phraek Sa",
            "Sai Luat",
            "Kheha",
        ],
    ),
    *_stations(
        "silom",
        "bts_silom",
        [
            "National Stadium",
            "Siam",
            "Ratchadamri",
            "Sala Daeng",
            "Chong Nonsi",
            "Saint Louis",
            "Surasak",
            "Saphan Taksin",
            "Krung Thon Buri",
            "Wongwian Yai",
            "Pho Nimit",
            "Talat Phlu",
            "Wutthakat",
            "Bang Wa",
        ],
    ),
    *_stations(
        "arl",
        "arl",
        [
            "Phaya Thai",
            "Ratchaprarop",
            "Makkasan",
            "Ramkhamhaeng",
            "Hua Mak",
            "Ban Thap Chang",
            "Lat Krabang",
            "Suvarnabhumi",
        ],
    ),
]


class StationCatalog:
    """按线路顺序索引的站点目录。"""

    def __init__(self, lines: Iterable[Line] = (), stations: Iterable[Station] = ()) -> None:
        self._lines: Dict[str, Line] = {line.id: line for line in lines}
        self._stations: Dict[str, Station] = {}
        self._by_line: Dict[str, List[Station]] = {line_id: [] for line_id in self._lines}
        for station in stations:
            self._stations[station.id] = station
            self._by_line.setdefault(station.line, []).append(station)

    @classmethod
    def default(cls) -> "StationCatalog":
        return cls(LINES, STATIONS)

    def lines(self) -> List[Line]:
        return list(self._lines.values())

    def get_line(self, line_id: str) -> Optional[Line]:
        return self._lines.get(line_id)

    def get_station(self, station_id: str) -> Optional[Station]:
        return self._stations.get(station_id)

    def stations_on_line(self, line_id: str) -> List[Station]:
        return list(self._by_line.get(line_id, []))

    def direction_towards(self, line_id: str, origin_id: str, destination_id: str) -> Optional[Direction]:
        """返回从起点驶向终点时所朝向的终点站方向。"""

        line = self.get_line(line_id)
        if line is None:
            return None
        ids = [station.id for station in self.stations_on_line(line_id)]
        if origin_id not in ids or destination_id not in ids or origin_id == destination_id:
            return None
        if ids.index(origin_id) < ids.index(destination_id):
            return line.directions[1]
        return line.directions[0]
