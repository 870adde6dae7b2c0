"""Configuration module for Shot Coach."""

from .settings import (
    AuthMode,
    BallEstimatorConfig,
    BufferConfig,
    DetectorConfig,
    MotionEstimatorConfig,
    PipelineConfig,
    SelectorConfig,
    SessionConfig,
    ShotCoachConfig,
    TokenServiceConfig,
    DEFAULT_CONFIG,
)
from .prompts import (
    SYSTEM_INSTRUCTION,
    build_live_prompt,
    build_fallback_prompt,
)
