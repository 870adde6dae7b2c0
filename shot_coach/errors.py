"""Exceptions raised by the shot coach pipeline."""


class ShotCoachError(Exception):
    """Base class for all shot coach errors."""


class SessionStartError(ShotCoachError):
    """A training session cannot start: no credential and no API key."""


class AnalysisInFlightError(ShotCoachError):
    """An analysis was requested while another one is still outstanding."""


class CredentialError(ShotCoachError):
    """The credential service returned an unusable response."""


class FrameEncodingError(ShotCoachError):
    """A frame could not be converted to an uploadable image."""
