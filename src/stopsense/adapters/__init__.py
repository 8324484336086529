"""传感器与外部服务适配器。"""

from .audio import AudioChimeAdapter, AudioSource, FrameAudioSource
from .base import SensorAdapter
from .motion import MotionSensorAdapter, MotionSource, sample_magnitude
from .permissions import AllowAllPermissions, PermissionProvider, ensure_permission
from .simulated import ScriptedSpeechService, SimulatedAudioSource, SimulatedMotionSource
from .speech import SpeechAdapter, SpeechService
from .wake_lock import WakeLock, WakeLockGuard

__all__ = [
    "AllowAllPermissions",
    "AudioChimeAdapter",
    "AudioSource",
    "FrameAudioSource",
    "MotionSensorAdapter",
    "MotionSource",
    "PermissionProvider",
    "ScriptedSpeechService",
    "SensorAdapter",
    "SimulatedAudioSource",
    "SimulatedMotionSource",
    "SpeechAdapter",
    "SpeechService",
    "WakeLock",
    "WakeLockGuard",
    "ensure_permission",
    "sample_magnitude",
]
