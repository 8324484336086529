"""传感器与麦克风权限请求工具。"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class PermissionProvider(Protocol):
    def request_motion(self) -> bool:
        """请求运动传感器权限。"""

    def request_microphone(self) -> bool:
        """请求麦克风权限。"""


class AllowAllPermissions:
    """开发环境使用，所有权限直接放行。"""

    def request_motion(self) -> bool:
        return True

    def request_microphone(self) -> bool:
        return True


def ensure_permission(request: Callable[[], bool], resource: str) -> bool:
    """调用权限请求；请求失败或抛出异常都视为拒绝。"""

    try:
        granted = bool(request())
    except Exception as exc:
        logger.warning("请求%s权限失败: %s", resource, exc)
        return False
    if not granted:
        logger.warning("%s权限已被拒绝，对应检测管线不会启动", resource)
    return granted
