"""会话层的具名异常与状态条件。"""

from __future__ import annotations


class StopSenseError(Exception):
    """所有 stopsense 异常的基类。"""


class RouteUnavailable(StopSenseError):
    """起终点无法在所选线路上组成路线。"""


class SessionAlreadyRunning(StopSenseError):
    """会话已在运行，需要先停止。"""


class PermissionDenied(StopSenseError):
    """传感器或麦克风权限被拒绝。"""

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} 权限被拒绝")
        self.resource = resource


class SpeechUnsupported(StopSenseError):
    """当前环境不提供语音识别服务。"""
