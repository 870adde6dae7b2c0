"""Streaming analysis session with stateless fallback.

The controller owns one websocket at a time and walks it through

    DISCONNECTED -> CONNECTING -> AWAITING_SETUP_ACK -> READY
                                        |                 |
                                        +--> DEGRADED <---+  (drop / error)

Reconnection uses exponential backoff; after too many consecutive failures it
gives up and every request goes over the fallback channel. ``analyze`` never
raises for transport or parse problems: it degrades to the fallback, and when
no channel exists at all it returns an INDETERMINATE result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config.settings import SessionConfig
from ..core.frame import Frame, encode_jpeg
from ..errors import AnalysisInFlightError, FrameEncodingError
from .fallback_client import FallbackClient
from .live_client import (
    Connector,
    build_live_url_and_headers,
    build_setup_message,
    build_shot_turn,
    parse_server_message,
    websocket_connector,
)
from .models import AnalysisRequest, AnalysisResult, ConnectionState, SessionCredential, ShotOutcome
from .parsing import parse_analysis_text, try_parse_json_result

logger = logging.getLogger(__name__)

StateCallback = Callable[[ConnectionState, bool], None]
CredentialProvider = Callable[[], Optional[SessionCredential]]

TRANSPORT_ERRORS = (OSError, WebSocketException)


def reconnect_delay(failures: int, base_s: float, max_s: float) -> float:
    """Backoff before reconnect attempt number ``failures`` (1-based)."""
    if failures <= 0:
        return 0.0
    return min(base_s * 2 ** (failures - 1), max_s)


@dataclass
class _PendingTurn:
    request_id: str
    future: "asyncio.Future[Optional[AnalysisResult]]"
    texts: List[str] = field(default_factory=list)


class AnalysisSessionController:
    """Routes shot frames to the analysis service.

    Args:
        config: Session configuration.
        fallback: Stateless client; built from ``config`` when omitted.
        connector: Opens the streaming connection (tests inject fakes).
        credential_provider: Blocking callable returning a fresh credential,
            used when the held one can no longer start a session.
        on_state_change: Called with ``(state, is_live)`` on every transition.
    """

    def __init__(
        self,
        config: SessionConfig,
        fallback: Optional[FallbackClient] = None,
        connector: Optional[Connector] = None,
        credential_provider: Optional[CredentialProvider] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        self.config = config
        self.fallback = fallback if fallback is not None else FallbackClient(config)
        self._connector = connector or websocket_connector
        self._credential_provider = credential_provider
        self.on_state_change = on_state_change

        self._state = ConnectionState.DISCONNECTED
        self._credential: Optional[SessionCredential] = None
        self._resumption_handle: Optional[str] = None
        self._failures = 0
        self._go_away = False
        self._stopped = True

        self._ws: Any = None
        self._connection_task: Optional[asyncio.Task] = None
        self._setup_task: Optional[asyncio.Task] = None
        self._ready_event: Optional[asyncio.Event] = None
        self._pending: Optional[_PendingTurn] = None
        self._in_flight = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def is_analyzing(self) -> bool:
        return self._in_flight

    @property
    def resumption_handle(self) -> Optional[str]:
        return self._resumption_handle

    @property
    def failures(self) -> int:
        return self._failures

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.info("Analysis session %s -> %s", self._state.value, state.value)
        self._state = state
        if self._ready_event is not None:
            if state is ConnectionState.READY:
                self._ready_event.set()
            else:
                self._ready_event.clear()
        if self.on_state_change is not None:
            try:
                self.on_state_change(state, state is ConnectionState.READY)
            except Exception:
                logger.exception("Connectivity observer failed")

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for READY; False on timeout or if the session never started."""
        if self._ready_event is None:
            return False
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, credential: Optional[SessionCredential] = None) -> None:
        """Begin connecting in the background.

        A credential is only used if it can still start a session; otherwise
        the developer API key is used. With neither, the controller stays
        DISCONNECTED and serves requests over the fallback channel.
        """
        if self._connection_task is not None and not self._connection_task.done():
            logger.debug("start() called on a running session; ignoring")
            return

        self._stopped = False
        self._failures = 0
        self._go_away = False
        self._ready_event = asyncio.Event()
        self._credential = None

        if credential is not None:
            if credential.can_start_session() and credential.is_valid():
                self._credential = credential
            else:
                logger.warning("Rejecting %r: past its session start deadline", credential)

        if self._credential is None and not self.config.has_api_key:
            logger.warning("No usable credential or API key; streaming disabled")
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._connection_task = asyncio.create_task(self._connection_loop())

    async def disconnect(self) -> None:
        """Tear everything down; safe to call repeatedly."""
        self._stopped = True
        self._cancel_setup_timer()

        task = self._connection_task
        self._connection_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._close_socket()
        self._resolve_pending(None)
        self._set_state(ConnectionState.DISCONNECTED)

    async def _connection_loop(self) -> None:
        while not self._stopped:
            if not await self._prepare_credential():
                logger.warning("No credential can start a session; staying on fallback")
                self._set_state(ConnectionState.DISCONNECTED)
                return

            await self._connect_once()
            if self._stopped:
                return

            if self._go_away:
                self._go_away = False
                logger.info("Reconnecting after server go-away notice")
                continue

            self._failures += 1
            if self._failures > self.config.max_reconnect_attempts:
                logger.error(
                    "Giving up on streaming after %d consecutive failures; using fallback only",
                    self._failures - 1,
                )
                self._set_state(ConnectionState.DISCONNECTED)
                return

            delay = reconnect_delay(self._failures, self.config.reconnect_base_s, self.config.reconnect_max_s)
            logger.info("Reconnecting in %.1fs (attempt %d/%d)", delay, self._failures, self.config.max_reconnect_attempts)
            await asyncio.sleep(delay)

    async def _prepare_credential(self) -> bool:
        """Make sure something can authenticate the next connection."""
        cred = self._credential
        if cred is not None and not cred.can_start_session():
            self._credential = None
            if self._credential_provider is not None:
                try:
                    fresh = await asyncio.to_thread(self._credential_provider)
                except Exception:
                    logger.exception("Credential refresh failed")
                    fresh = None
                if fresh is not None and fresh.can_start_session():
                    self._credential = fresh
            if self._credential is None:
                logger.info("Held credential expired; falling back to API key")
        return self._credential is not None or self.config.has_api_key

    def _endpoint(self):
        if self._credential is not None:
            return build_live_url_and_headers(self.config, self._credential.token, is_ephemeral=True)
        return build_live_url_and_headers(self.config, self.config.api_key or "", is_ephemeral=False)

    async def _connect_once(self) -> None:
        """Open, run and close one connection."""
        self._set_state(ConnectionState.CONNECTING)
        url, headers = self._endpoint()
        try:
            ws = await asyncio.wait_for(self._connector(url, headers), self.config.connect_timeout_s)
        except asyncio.TimeoutError:
            logger.error("Streaming connection timed out after %.0fs", self.config.connect_timeout_s)
            self._set_state(ConnectionState.DISCONNECTED)
            return
        except TRANSPORT_ERRORS as e:
            logger.warning("Streaming connection failed: %s", e)
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._ws = ws
        self._set_state(ConnectionState.AWAITING_SETUP_ACK)
        try:
            if await self._send_setup():
                self._setup_task = asyncio.create_task(self._setup_resend_loop())
                await self._receive_loop(ws)
        finally:
            self._cancel_setup_timer()
            await self._close_socket()
            if not self._stopped:
                self._set_state(ConnectionState.DEGRADED)
            # A request waiting on this connection is re-issued over fallback.
            self._resolve_pending(None)

    async def _receive_loop(self, ws: Any) -> None:
        while True:
            try:
                raw = await ws.recv()
            except ConnectionClosed as e:
                logger.warning("Streaming connection closed: %s", e)
                return
            except TRANSPORT_ERRORS as e:
                logger.warning("Streaming transport error: %s", e)
                return
            self._handle_message(raw)

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except TRANSPORT_ERRORS as e:
            logger.debug("Error closing websocket: %s", e)

    # ------------------------------------------------------------------
    # Setup handshake
    # ------------------------------------------------------------------

    async def _send_json(self, message: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None:
            return False
        try:
            await ws.send(json.dumps(message))
        except TRANSPORT_ERRORS as e:
            logger.warning("Send failed: %s", e)
            return False
        return True

    async def _send_setup(self) -> bool:
        return await self._send_json(build_setup_message(self.config, self._resumption_handle))

    async def _setup_resend_loop(self) -> None:
        for attempt in range(1, self.config.max_setup_resends + 1):
            await asyncio.sleep(self.config.setup_resend_s)
            if self._state is not ConnectionState.AWAITING_SETUP_ACK:
                return
            logger.warning("Setup not acknowledged; resending (%d/%d)", attempt, self.config.max_setup_resends)
            await self._send_setup()

        await asyncio.sleep(self.config.setup_resend_s)
        if self._state is ConnectionState.AWAITING_SETUP_ACK:
            logger.error("Setup never acknowledged; dropping connection")
            await self._close_socket()

    def _cancel_setup_timer(self) -> None:
        task, self._setup_task = self._setup_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def _handle_message(self, raw: Any) -> None:
        msg = parse_server_message(raw)
        if msg is None:
            return

        if msg.setup_complete and self._state is ConnectionState.AWAITING_SETUP_ACK:
            self._failures = 0
            self._cancel_setup_timer()
            self._set_state(ConnectionState.READY)

        if msg.resumption_handle:
            self._resumption_handle = msg.resumption_handle

        if msg.go_away_time_left is not None:
            logger.warning("Server going away in %s; will reconnect", msg.go_away_time_left)
            self._go_away = True

        pending = self._pending
        if pending is None:
            if msg.texts:
                logger.debug("Ignoring %d text part(s) with no request outstanding", len(msg.texts))
            return

        pending.texts.extend(msg.texts)
        text = "".join(pending.texts)
        if msg.turn_complete or (text and try_parse_json_result(text) is not None):
            self._resolve_pending(parse_analysis_text(text, source="live"))

    def _resolve_pending(self, result: Optional[AnalysisResult]) -> None:
        pending = self._pending
        if pending is not None and not pending.future.done():
            pending.future.set_result(result)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(self, frame: Frame, last_tip: str = "") -> AnalysisResult:
        """Analyse one shot frame.

        Raises:
            AnalysisInFlightError: if another analysis is still outstanding.
        """
        if self._in_flight:
            raise AnalysisInFlightError("An analysis is already in flight")
        self._in_flight = True
        try:
            return await self._analyze(AnalysisRequest(frame=frame, last_tip=last_tip))
        finally:
            self._in_flight = False

    async def _analyze(self, request: AnalysisRequest) -> AnalysisResult:
        try:
            jpeg = await asyncio.to_thread(encode_jpeg, request.frame, self.config.jpeg_quality)
        except FrameEncodingError as e:
            logger.warning("Cannot encode frame %s: %s", request.frame.index, e)
            return self._indeterminate(request)

        if self.is_live and self._ws is not None:
            result = await self._analyze_live(request, jpeg)
            if result is not None:
                return replace(result, request_id=request.request_id)
            if self._stopped:
                logger.debug("Session closed while %s was in flight", request.request_id)
                return self._indeterminate(request)
            logger.warning("Live analysis of %s failed; retrying over fallback", request.request_id)

        return await self._analyze_fallback(request, jpeg)

    async def _analyze_live(self, request: AnalysisRequest, jpeg: bytes) -> Optional[AnalysisResult]:
        loop = asyncio.get_running_loop()
        self._pending = _PendingTurn(request_id=request.request_id, future=loop.create_future())
        try:
            if not await self._send_json(build_shot_turn(jpeg, request.last_tip)):
                return None
            return await asyncio.wait_for(self._pending.future, self.config.request_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("No live response within %.0fs; dropping connection", self.config.request_timeout_s)
            # A late reply on this socket would otherwise land on the next turn.
            self._pending = None
            await self._close_socket()
            return None
        finally:
            self._pending = None

    async def _analyze_fallback(self, request: AnalysisRequest, jpeg: bytes) -> AnalysisResult:
        if self.fallback is None or not self.fallback.available:
            logger.warning("No analysis channel available for %s", request.request_id)
            return self._indeterminate(request)
        result = await self.fallback.analyze(jpeg, request.last_tip)
        return replace(result, request_id=request.request_id)

    def _indeterminate(self, request: AnalysisRequest) -> AnalysisResult:
        return AnalysisResult(
            outcome=ShotOutcome.INDETERMINATE,
            tip="",
            source="default",
            request_id=request.request_id,
        )
