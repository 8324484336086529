"""屏幕常亮锁，尽力而为。"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class WakeLock(Protocol):
    def acquire(self) -> bool:
        """申请常亮锁，成功返回 True。"""

    def release(self) -> None:
        """释放常亮锁。"""


class WakeLockGuard:
    """包装平台常亮锁：失败不抛出，系统回收后可重新申请。"""

    def __init__(self, lock: Optional[WakeLock]) -> None:
        self._lock = lock
        self._held = False

    @property
    def available(self) -> bool:
        return self._lock is not None

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        if self._lock is None:
            return False
        if self._held:
            return True
        try:
            self._held = bool(self._lock.acquire())
        except Exception as exc:
            logger.warning("申请屏幕常亮失败: %s", exc)
            self._held = False
        return self._held

    def mark_revoked(self) -> None:
        """系统在应用失去前台时回收了锁。"""

        if self._held:
            logger.info("屏幕常亮锁已被系统回收")
        self._held = False

    def release(self) -> None:
        if self._lock is None or not self._held:
            return
        self._held = False
        try:
            self._lock.release()
        except Exception:
            logger.warning("释放屏幕常亮锁失败", exc_info=True)
