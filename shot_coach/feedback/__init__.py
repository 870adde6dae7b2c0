"""User-facing feedback: canned tips and result sequencing."""

from .tips import CoachingTips
from .sequencer import DisplayEvent, FeedbackSequencer, SessionStats
