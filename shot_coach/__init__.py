"""Shot Coach: real-time basketball shot detection and coaching feedback."""

__version__ = "0.1.0"

from .config.settings import DEFAULT_CONFIG, ShotCoachConfig
from .core.frame import Frame
from .core.frame_buffer import FrameBuffer
from .analysis.shot_detector import ShotEvent, TrajectoryShotDetector
from .analysis.frame_selector import FrameQualitySelector
from .session.models import AnalysisResult, ConnectionState, SessionCredential, ShotOutcome
from .session.controller import AnalysisSessionController
from .feedback.sequencer import DisplayEvent, FeedbackSequencer, SessionStats
from .pipeline import TrainingSession
from .errors import (
    AnalysisInFlightError,
    CredentialError,
    FrameEncodingError,
    SessionStartError,
    ShotCoachError,
)
