"""Shot coach pipeline configuration.

All thresholds, timeouts and endpoints are centralised here so that tuning the
detector or the analysis session never requires touching pipeline code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from dotenv import load_dotenv


# Values shipped in sample .env files; treated as "no key configured".
PLACEHOLDER_API_KEYS = frozenset({"", "YOUR_GEMINI_API_KEY_HERE"})


class AuthMode(str, Enum):
    """How credentials are attached to the streaming connection."""

    # ?access_token=<ephemeral> / ?key=<api key>
    QUERY = "query"
    # Authorization: Token <ephemeral> / x-goog-api-key: <api key>
    HEADER = "header"


# =====================================================================
# Stage 1: Frame ingestion
# =====================================================================

@dataclass(frozen=True)
class BufferConfig:
    """Ring buffer of recent frames."""

    capacity: int = 30          # ~1 s at 30 fps


# =====================================================================
# Stage 2: Shot detection
# =====================================================================

@dataclass(frozen=True)
class DetectorConfig:
    """Trajectory based shot trigger."""

    min_points: int = 5
    # Normalised image units (0..1); filters hand shake and sensor noise.
    min_path_length: float = 0.3
    cooldown_s: float = 2.0
    # Offset of the estimated release frame from the end of the buffer window.
    release_offset: int = 5


@dataclass(frozen=True)
class MotionEstimatorConfig:
    """Classical frame-differencing trajectory estimator."""

    blur_kernel: int = 5
    diff_threshold: int = 25
    dilate_iterations: int = 2
    min_blob_area_px: float = 30.0
    max_blob_area_px: float = 5000.0
    min_circularity: float = 0.5
    # Track assembly
    max_track_length: int = 10
    max_jump: float = 0.15          # normalised distance between frames
    max_missed_frames: int = 3


@dataclass(frozen=True)
class BallEstimatorConfig:
    """YOLO ball detector (optional, needs ultralytics)."""

    model_name: str = "yolo11n.pt"
    device: str = "auto"
    confidence: float = 0.25
    ball_class_id: int = 32         # COCO "sports ball"


# =====================================================================
# Stage 3: Frame selection
# =====================================================================

@dataclass(frozen=True)
class SelectorConfig:
    """Quality gate for frames sent to analysis."""

    min_width: int = 640
    min_height: int = 480
    min_luminance: float = 0.1
    max_luminance: float = 0.9
    sample_step: int = 10           # sample every Nth pixel in both axes


# =====================================================================
# Stage 4: Analysis session
# =====================================================================

@dataclass(frozen=True)
class SessionConfig:
    """Streaming session and stateless fallback against the analysis service."""

    api_key: Optional[str] = None
    auth_mode: AuthMode = AuthMode.QUERY
    live_url: str = (
        "wss://generativelanguage.googleapis.com/ws/"
        "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
    )
    live_model: str = "models/gemini-2.0-flash-001"
    fallback_model: str = "gemini-1.5-flash"

    # Generation parameters shared by both channels.
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int = 200

    connect_timeout_s: float = 10.0
    setup_resend_s: float = 2.0
    max_setup_resends: int = 3
    reconnect_base_s: float = 3.0
    reconnect_max_s: float = 30.0
    max_reconnect_attempts: int = 5
    request_timeout_s: float = 30.0
    jpeg_quality: int = 80

    @property
    def has_api_key(self) -> bool:
        return self.api_key is not None and self.api_key.strip() not in PLACEHOLDER_API_KEYS


@dataclass(frozen=True)
class TokenServiceConfig:
    """Credential issuance service."""

    base_url: Optional[str] = None
    device_id: Optional[str] = None
    user_id: str = "anonymous"
    timeout_s: float = 10.0


# =====================================================================
# Orchestration
# =====================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """Worker pool and queueing for the training session."""

    worker_threads: int = 2
    # Frames waiting for detection; beyond this, frames are only buffered.
    detection_queue_size: int = 8
    tips_path: Optional[str] = None
    log_level: str = "INFO"


# =====================================================================
# Master Configuration
# =====================================================================

@dataclass(frozen=True)
class ShotCoachConfig:
    """Top-level configuration aggregating all sub-configs."""

    buffer: BufferConfig = field(default_factory=BufferConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    motion: MotionEstimatorConfig = field(default_factory=MotionEstimatorConfig)
    ball: BallEstimatorConfig = field(default_factory=BallEstimatorConfig)
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    token_service: TokenServiceConfig = field(default_factory=TokenServiceConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "ShotCoachConfig":
        """Build a config from environment variables (and an optional .env file).

        Unset variables keep their defaults.
        """
        load_dotenv(dotenv_path)
        base = cls()

        session_overrides = {}
        api_key = os.getenv("GEMINI_API_KEY")
        if api_key is not None:
            session_overrides["api_key"] = api_key.strip() or None
        auth_mode = os.getenv("SHOT_COACH_AUTH_MODE")
        if auth_mode:
            session_overrides["auth_mode"] = AuthMode(auth_mode.strip().lower())
        live_model = os.getenv("SHOT_COACH_LIVE_MODEL")
        if live_model:
            session_overrides["live_model"] = live_model
        fallback_model = os.getenv("SHOT_COACH_FALLBACK_MODEL")
        if fallback_model:
            session_overrides["fallback_model"] = fallback_model

        token_overrides = {}
        token_url = os.getenv("SHOT_COACH_TOKEN_URL")
        if token_url:
            token_overrides["base_url"] = token_url
        device_id = os.getenv("SHOT_COACH_DEVICE_ID")
        if device_id:
            token_overrides["device_id"] = device_id

        pipeline_overrides = {}
        tips_path = os.getenv("SHOT_COACH_TIPS_PATH")
        if tips_path:
            pipeline_overrides["tips_path"] = tips_path
        log_level = os.getenv("SHOT_COACH_LOG_LEVEL")
        if log_level:
            pipeline_overrides["log_level"] = log_level.upper()

        return replace(
            base,
            session=replace(base.session, **session_overrides),
            token_service=replace(base.token_service, **token_overrides),
            pipeline=replace(base.pipeline, **pipeline_overrides),
        )


# Default configuration instance
DEFAULT_CONFIG = ShotCoachConfig()
