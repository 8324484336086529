"""静态线路参考数据。"""

from .lines import LINES, STATIONS, Direction, Line, Station, StationCatalog

__all__ = [
    "Direction",
    "LINES",
    "Line",
    "STATIONS",
    "Station",
    "StationCatalog",
]
