"""Wire format of the bidirectional streaming analysis session.

Outbound messages are plain dicts serialised to JSON text frames; inbound
frames are reduced to a ``ServerMessage`` carrying only what the session
controller acts on.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlencode

from websockets.asyncio.client import connect

from ..config.prompts import SYSTEM_INSTRUCTION, build_live_prompt
from ..config.settings import AuthMode, SessionConfig

logger = logging.getLogger(__name__)

# (url, headers) -> open connection with async send(str) / recv() / close()
Connector = Callable[[str, Dict[str, str]], Awaitable[Any]]


async def websocket_connector(url: str, headers: Dict[str, str]) -> Any:
    """Open a websocket; the caller bounds the open with its own timeout."""
    return await connect(
        url,
        additional_headers=headers or None,
        open_timeout=None,
        max_size=None,
    )


def build_live_url_and_headers(
    config: SessionConfig,
    token: str,
    is_ephemeral: bool,
) -> Tuple[str, Dict[str, str]]:
    """Attach a credential to the streaming endpoint.

    Args:
        config: Session configuration (endpoint and auth mode).
        token: Ephemeral token or developer API key.
        is_ephemeral: True for tokens issued by the credential service.

    Returns:
        (url, headers) for the connector.
    """
    if config.auth_mode is AuthMode.HEADER:
        if is_ephemeral:
            return config.live_url, {"Authorization": f"Token {token}"}
        return config.live_url, {"x-goog-api-key": token}

    param = "access_token" if is_ephemeral else "key"
    sep = "&" if "?" in config.live_url else "?"
    return f"{config.live_url}{sep}{urlencode({param: token})}", {}


def build_setup_message(config: SessionConfig, resumption_handle: Optional[str] = None) -> Dict[str, Any]:
    """First message on a new connection: model, generation config, persona."""
    resumption: Dict[str, Any] = {}
    if resumption_handle:
        resumption["handle"] = resumption_handle

    return {
        "setup": {
            "model": config.live_model,
            "generationConfig": {
                "candidateCount": 1,
                "temperature": config.temperature,
                "topP": config.top_p,
                "topK": config.top_k,
                "maxOutputTokens": config.max_output_tokens,
                "responseModalities": ["TEXT"],
            },
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "sessionResumption": resumption,
        }
    }


def build_turn_message(jpeg_bytes: bytes, prompt: str) -> Dict[str, Any]:
    """One complete user turn: the prompt plus an inline JPEG."""
    return {
        "clientContent": {
            "turns": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {
                            "inlineData": {
                                "mimeType": "image/jpeg",
                                "data": base64.b64encode(jpeg_bytes).decode("ascii"),
                            }
                        },
                    ],
                }
            ],
            "turnComplete": True,
        }
    }


def build_shot_turn(jpeg_bytes: bytes, last_tip: str = "") -> Dict[str, Any]:
    return build_turn_message(jpeg_bytes, build_live_prompt(last_tip))


@dataclass
class ServerMessage:
    """The parts of an inbound frame the controller cares about."""

    setup_complete: bool = False
    texts: List[str] = field(default_factory=list)
    turn_complete: bool = False
    resumption_handle: Optional[str] = None
    go_away_time_left: Optional[str] = None


def parse_server_message(raw: Union[str, bytes]) -> Optional[ServerMessage]:
    """Decode one inbound frame; returns None for anything unparseable."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Dropping non UTF-8 binary frame (%d bytes)", len(raw))
            return None
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Dropping non-JSON frame")
        return None
    if not isinstance(data, dict):
        return None

    msg = ServerMessage(setup_complete="setupComplete" in data)

    content = data.get("serverContent")
    if isinstance(content, dict):
        turn = content.get("modelTurn") or {}
        for part in turn.get("parts") or []:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                msg.texts.append(part["text"])
        msg.turn_complete = bool(content.get("turnComplete") or content.get("generationComplete"))

    update = data.get("sessionResumptionUpdate")
    if isinstance(update, dict) and update.get("newHandle"):
        msg.resumption_handle = str(update["newHandle"])

    go_away = data.get("goAway")
    if isinstance(go_away, dict):
        msg.go_away_time_left = str(go_away.get("timeLeft", "unknown"))

    return msg
