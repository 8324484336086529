"""语音播报文本与站名的增量模糊匹配。"""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Iterable, List, Optional, Set, Tuple

from stopsense.core.events import SpeechMatch, utcnow
from stopsense.data.lines import Station

logger = logging.getLogger(__name__)

_WORD_SPLIT = re.compile(r"[^\w]+", re.UNICODE)


class SpeechAnnouncementMatcher:
    """在识别文本中查找站名，每个站点每个会话最多匹配一次。

    先按站名全称匹配（长名优先，避免短名命中长名的一部分），
    再退回到站名中长度不少于 `min_word_length` 的单词。
    """

    def __init__(self, stations: Iterable[Station] = (), min_word_length: int = 4) -> None:
        self._min_word_length = min_word_length
        self._stations: List[Station] = []
        self._by_length: List[Station] = []
        self._keywords: List[Tuple[Station, List[str]]] = []
        self._matched: Set[str] = set()
        self.set_stations(stations)

    def set_stations(self, stations: Iterable[Station]) -> None:
        self._stations = list(stations)
        self._by_length = sorted(self._stations, key=lambda s: len(s.name), reverse=True)
        self._keywords = [(station, self._words(station.name)) for station in self._stations]

    @property
    def matched_station_ids(self) -> Set[str]:
        return set(self._matched)

    def match(self, transcript: str, now: Optional[dt.datetime] = None) -> Optional[SpeechMatch]:
        """尝试从一段（最终或中间）识别文本中匹配站点。"""

        text = (transcript or "").strip().lower()
        if not text:
            return None
        now = now or utcnow()

        for station in self._by_length:
            if station.id in self._matched:
                continue
            if station.name.lower() in text:
                return self._record(station, transcript, station.name, now, by_word=False)

        for station, words in self._keywords:
            if station.id in self._matched:
                continue
            for word in words:
                if word in text:
                    return self._record(station, transcript, word, now, by_word=True)
        return None

    def reset(self) -> None:
        self._matched.clear()

    def _record(
        self, station: Station, transcript: str, matched_text: str, now: dt.datetime, by_word: bool
    ) -> SpeechMatch:
        self._matched.add(station.id)
        logger.info("语音播报匹配站点 %s（%s）", station.name, matched_text)
        return SpeechMatch(
            station=station,
            transcript=transcript,
            matched_text=matched_text,
            matched_at=now,
            by_word=by_word,
        )

    def _words(self, name: str) -> List[str]:
        return [
            word
            for word in _WORD_SPLIT.split(name.lower())
            if len(word) >= self._min_word_length
        ]
