"""Fetch short-lived streaming credentials from the token service."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from ..config.settings import TokenServiceConfig
from ..errors import CredentialError
from .models import SessionCredential

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "auth/request-token"


def parse_iso_datetime(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing ``Z`` and naive values mean UTC."""
    if not isinstance(value, str) or not value:
        raise CredentialError(f"Expected an ISO-8601 string, got {value!r}")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise CredentialError(f"Invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def credential_from_payload(payload: Any) -> SessionCredential:
    """Build a credential from the service's JSON body.

    Raises:
        CredentialError: if a field is missing or malformed.
    """
    if not isinstance(payload, dict):
        raise CredentialError("Token response is not a JSON object")
    token = payload.get("token")
    if not isinstance(token, str) or not token:
        raise CredentialError("Token response has no token")
    return SessionCredential(
        token=token,
        expires_at=parse_iso_datetime(payload.get("expiresAt")),
        session_start_deadline=parse_iso_datetime(payload.get("sessionStartDeadline")),
    )


class CredentialService:
    """Client for ``POST {base_url}/auth/request-token``.

    ``fetch`` blocks on the network; call it off the event loop.
    """

    def __init__(self, config: TokenServiceConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.device_id = config.device_id or uuid.uuid4().hex

    @property
    def configured(self) -> bool:
        return bool(self.config.base_url)

    @property
    def url(self) -> str:
        return f"{(self.config.base_url or '').rstrip('/')}/{TOKEN_ENDPOINT}"

    def _request_body(self) -> Dict[str, str]:
        return {"deviceId": self.device_id, "userId": self.config.user_id}

    def fetch(self) -> Optional[SessionCredential]:
        """Request a credential; returns None on any failure."""
        if not self.configured:
            logger.debug("No token service configured")
            return None

        try:
            response = self.session.post(
                self.url,
                json=self._request_body(),
                timeout=self.config.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("Token request failed: %s", e)
            return None

        if response.status_code != 200:
            logger.warning("Token service returned HTTP %s", response.status_code)
            return None

        try:
            credential = credential_from_payload(response.json())
        except (CredentialError, ValueError) as e:
            logger.warning("Malformed token response: %s", e)
            return None

        logger.info("Obtained streaming credential, expires %s", credential.expires_at.isoformat())
        return credential
