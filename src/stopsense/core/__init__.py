"""核心业务逻辑：窗口统计、状态机、门控与路线映射。"""

from .chime_detector import AudioChimeDetector, band_energy_db
from .events import (
    ChimeEvent,
    ConfirmedStopEvent,
    DetectionEvent,
    EventSource,
    MotionState,
    PendingStop,
    SpeechMatch,
)
from .motion_classifier import MotionClassifier, MotionUpdate
from .route import BeyondRoute, Route, RouteMatcher, build_route
from .signal_window import EventLog, SignalWindow
from .speech_matcher import SpeechAnnouncementMatcher
from .stop_gate import GateDecision, StopConfirmationGate

__all__ = [
    "AudioChimeDetector",
    "BeyondRoute",
    "ChimeEvent",
    "ConfirmedStopEvent",
    "DetectionEvent",
    "EventLog",
    "EventSource",
    "GateDecision",
    "MotionClassifier",
    "MotionState",
    "MotionUpdate",
    "PendingStop",
    "Route",
    "RouteMatcher",
    "SignalWindow",
    "SpeechAnnouncementMatcher",
    "SpeechMatch",
    "StopConfirmationGate",
    "band_energy_db",
    "build_route",
]
