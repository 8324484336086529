"""基于加速度幅值方差的运动状态机。"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from stopsense.config import AppConfig
from stopsense.core.events import MotionState, PendingStop
from stopsense.core.signal_window import SignalWindow
from stopsense.core.stop_gate import GateDecision, StopConfirmationGate

logger = logging.getLogger(__name__)


@dataclass
class MotionUpdate:
    """处理单个样本后的结果。"""

    state: MotionState
    variance: Optional[float]
    previous_state: MotionState
    decisions: List[GateDecision] = field(default_factory=list)

    @property
    def transitioned(self) -> bool:
        return self.state is not self.previous_state

    @property
    def confirmed(self) -> List[GateDecision]:
        return [decision for decision in self.decisions if decision.confirmed]


class MotionClassifier:
    """将幅值流转换为 idle/moving/stopped 状态，并产出停站判定。

    两个阈值之间的方差视为维持当前状态（滞回区间），只清零另一候选
    状态的计数器，不触发转换。窗口未满之前不做任何判定。
    """

    def __init__(self, config: Optional[AppConfig] = None, gate: Optional[StopConfirmationGate] = None) -> None:
        self._config = config or AppConfig.load_default()
        self._window = SignalWindow(self._config.motion_window_size)
        self._gate = gate or StopConfirmationGate(
            min_stop_ms=self._config.min_stop_ms,
            min_gap_ms=self._config.min_gap_ms,
        )
        self._state = MotionState.IDLE
        self._stop_candidates = 0
        self._move_candidates = 0
        self._pending: Optional[PendingStop] = None
        self._variance: Optional[float] = None
        self._samples = 0

    @property
    def state(self) -> MotionState:
        return self._state

    @property
    def variance(self) -> Optional[float]:
        return self._variance

    @property
    def pending_stop(self) -> Optional[PendingStop]:
        return self._pending

    @property
    def gate(self) -> StopConfirmationGate:
        return self._gate

    @property
    def sample_count(self) -> int:
        return self._samples

    def update(self, magnitude: float, now: dt.datetime) -> MotionUpdate:
        """消费一个幅值样本。"""

        self._samples += 1
        self._window.push(magnitude)
        previous = self._state
        if not self._window.is_full:
            return MotionUpdate(state=previous, variance=None, previous_state=previous)

        variance = self._window.variance()
        self._variance = variance
        decisions: List[GateDecision] = []

        if variance < self._config.motion_stop_threshold:
            self._move_candidates = 0
            if self._state is not MotionState.STOPPED:
                self._stop_candidates += 1
                if self._stop_candidates >= self._config.motion_min_stop_samples:
                    self._enter_stopped(previous, now)
            else:
                self._stop_candidates = 0
                if self._pending is not None and self._gate.has_met_duration(self._pending, now):
                    decisions.append(self._settle_pending(now))
        elif variance > self._config.motion_move_threshold:
            self._stop_candidates = 0
            if self._state is not MotionState.MOVING:
                self._move_candidates += 1
                if self._move_candidates >= self._config.motion_min_move_samples:
                    if self._pending is not None:
                        decisions.append(self._settle_pending(now))
                    self._state = MotionState.MOVING
                    self._move_candidates = 0
                    logger.debug("运动状态 %s -> moving (方差 %.3f)", previous.value, variance)
            else:
                self._move_candidates = 0
        else:
            if self._state is not MotionState.STOPPED:
                self._stop_candidates = 0
            if self._state is not MotionState.MOVING:
                self._move_candidates = 0

        return MotionUpdate(
            state=self._state,
            variance=variance,
            previous_state=previous,
            decisions=decisions,
        )

    def reset(self) -> None:
        """会话开始时清空窗口、计数器与门控状态。"""

        self._window.clear()
        self._gate.reset()
        self._state = MotionState.IDLE
        self._stop_candidates = 0
        self._move_candidates = 0
        self._pending = None
        self._variance = None
        self._samples = 0

    def halt(self) -> None:
        """会话结束时清空窗口与待定停站，保留门控统计供展示。"""

        self._window.clear()
        self._state = MotionState.IDLE
        self._stop_candidates = 0
        self._move_candidates = 0
        self._pending = None
        self._variance = None

    def _enter_stopped(self, previous: MotionState, now: dt.datetime) -> None:
        self._state = MotionState.STOPPED
        self._stop_candidates = 0
        if previous is MotionState.MOVING:
            self._pending = PendingStop(started_at=now)
        logger.debug("运动状态 %s -> stopped", previous.value)

    def _settle_pending(self, now: dt.datetime) -> GateDecision:
        assert self._pending is not None
        decision = self._gate.evaluate(self._pending, now)
        self._pending = None
        return decision
