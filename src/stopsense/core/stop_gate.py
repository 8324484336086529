"""停站确认门控：按持续时长与最小间隔过滤候选停站。"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Optional

from stopsense.core.events import PendingStop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    """一次门控判定的结果。"""

    confirmed: bool
    ordinal: Optional[int]
    started_at: dt.datetime
    decided_at: dt.datetime
    duration: dt.timedelta
    reason: str = ""


class StopConfirmationGate:
    """将待定停站判定为确认或忽略。

    确认条件：持续时长达到 `min_stop`，并且本会话尚无已确认停站，
    或本次停站开始时刻距上一次确认已超过 `min_gap`。
    """

    def __init__(self, min_stop_ms: int = 15000, min_gap_ms: int = 60000) -> None:
        self._min_stop = dt.timedelta(milliseconds=min_stop_ms)
        self._min_gap = dt.timedelta(milliseconds=min_gap_ms)
        self._confirmed_count = 0
        self._ignored_count = 0
        self._last_confirmed_at: Optional[dt.datetime] = None

    @property
    def confirmed_count(self) -> int:
        return self._confirmed_count

    @property
    def ignored_count(self) -> int:
        return self._ignored_count

    @property
    def last_confirmed_at(self) -> Optional[dt.datetime]:
        return self._last_confirmed_at

    def has_met_duration(self, pending: PendingStop, now: dt.datetime) -> bool:
        return now - pending.started_at >= self._min_stop

    def evaluate(self, pending: PendingStop, now: dt.datetime) -> GateDecision:
        """判定待定停站；确认时分配下一个序号（从 0 开始）。"""

        duration = now - pending.started_at
        if duration < self._min_stop:
            return self._ignore(pending, now, duration, "too_short")

        if self._last_confirmed_at is not None:
            gap = pending.started_at - self._last_confirmed_at
            if gap < self._min_gap:
                return self._ignore(pending, now, duration, "too_soon")

        ordinal = self._confirmed_count
        self._confirmed_count += 1
        self._last_confirmed_at = now
        logger.info("确认停站 #%s，持续 %.1f 秒", ordinal, duration.total_seconds())
        return GateDecision(
            confirmed=True,
            ordinal=ordinal,
            started_at=pending.started_at,
            decided_at=now,
            duration=duration,
        )

    def reset(self) -> None:
        self._confirmed_count = 0
        self._ignored_count = 0
        self._last_confirmed_at = None

    def _ignore(
        self, pending: PendingStop, now: dt.datetime, duration: dt.timedelta, reason: str
    ) -> GateDecision:
        self._ignored_count += 1
        logger.info("忽略停站（%s），持续 %.1f 秒", reason, duration.total_seconds())
        return GateDecision(
            confirmed=False,
            ordinal=None,
            started_at=pending.started_at,
            decided_at=now,
            duration=duration,
            reason=reason,
        )
