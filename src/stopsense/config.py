"""应用配置模型。"""

from __future__ import annotations

import importlib.util
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class AppConfig(BaseModel):
    """停站检测总配置，默认值与 20Hz 加速度计采样相匹配。"""

    motion_enabled: bool = True
    motion_window_size: int = Field(60, ge=2)
    motion_stop_threshold: float = Field(0.3, ge=0.0)
    motion_move_threshold: float = Field(0.5, ge=0.0)
    motion_min_stop_samples: int = Field(8, ge=1)
    motion_min_move_samples: int = Field(10, ge=1)
    min_stop_ms: int = Field(15000, ge=0)
    min_gap_ms: int = Field(60000, ge=0)

    audio_enabled: bool = True
    chime_band_low_hz: float = Field(800.0, gt=0.0)
    chime_band_high_hz: float = Field(2500.0, gt=0.0)
    chime_threshold_db: float = -35.0
    chime_min_duration_ms: int = Field(500, ge=0)
    chime_cooldown_ms: int = Field(2000, ge=0)
    audio_poll_interval_s: float = Field(1.0 / 60.0, gt=0.0)
    audio_sample_rate: int = Field(44100, ge=8000)
    audio_fft_size: int = Field(2048, ge=64)

    speech_enabled: bool = True
    speech_language: str = "th-TH"
    speech_min_word_length: int = Field(4, ge=1)

    wake_lock_enabled: bool = True

    api_host: str = "127.0.0.1"
    api_port: int = Field(8000, ge=1, le=65535)

    @model_validator(mode="after")
    def _check_ranges(self) -> "AppConfig":
        if self.motion_stop_threshold >= self.motion_move_threshold:
            raise ValueError("motion_stop_threshold 必须小于 motion_move_threshold")
        if self.chime_band_low_hz >= self.chime_band_high_hz:
            raise ValueError("chime_band_low_hz 必须小于 chime_band_high_hz")
        return self

    @classmethod
    def load_default(cls) -> "AppConfig":
        return cls()

    @classmethod
    def load(cls) -> "AppConfig":
        """优先尝试加载项目根目录的 `config.local.py`，否则返回默认配置。"""

        root_dir = Path(__file__).resolve().parents[2]
        local_path = root_dir / "config.local.py"
        if not local_path.exists():
            return cls.load_default()

        spec = importlib.util.spec_from_file_location("config_local", local_path)
        if spec is None or spec.loader is None:
            return cls.load_default()

        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)  # type: ignore[arg-type]
        except Exception:
            return cls.load_default()

        load_fn = getattr(module, "load_config", None)
        if callable(load_fn):
            try:
                return load_fn()
            except Exception:
                return cls.load_default()
        return cls.load_default()
