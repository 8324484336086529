"""本地配置覆盖示例（`AppConfig.load()` 会自动导入）。"""

from stopsense.config import AppConfig


def load_config() -> AppConfig:
    return AppConfig.load_default().model_copy(
        update={
            "min_stop_ms": 15000,
            "min_gap_ms": 60000,
            "chime_threshold_db": -35.0,
            # "speech_language": "en-US",
            # "wake_lock_enabled": False,
        }
    )
