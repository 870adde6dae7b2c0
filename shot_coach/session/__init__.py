"""Analysis session: streaming channel, fallback, credentials and parsing."""

from .models import AnalysisRequest, AnalysisResult, ConnectionState, SessionCredential, ShotOutcome
from .parsing import GENERIC_TIP, parse_analysis_text
from .auth import CredentialService
from .fallback_client import FallbackClient
from .controller import AnalysisSessionController, reconnect_delay
