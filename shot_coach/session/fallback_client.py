"""Stateless single-request analysis through the google-generativeai SDK."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import google.generativeai as genai

from ..config.prompts import build_fallback_prompt, validate_prompt_length
from ..config.settings import SessionConfig
from .models import AnalysisResult, ShotOutcome
from .parsing import GENERIC_TIP, parse_analysis_text

logger = logging.getLogger(__name__)


class FallbackClient:
    """Used whenever the streaming session is not ready.

    Args:
        config: Session configuration (API key, model, timeout).
        model: Pre-built model object exposing ``generate_content``; built
            lazily from ``config`` when omitted.
    """

    def __init__(self, config: SessionConfig, model: Optional[Any] = None):
        self.config = config
        self._model = model

    @property
    def available(self) -> bool:
        return self._model is not None or self.config.has_api_key

    def _get_model(self) -> Any:
        if self._model is None:
            genai.configure(api_key=self.config.api_key)
            self._model = genai.GenerativeModel(
                self.config.fallback_model,
                generation_config={
                    "temperature": self.config.temperature,
                    "top_p": self.config.top_p,
                    "top_k": self.config.top_k,
                    "max_output_tokens": self.config.max_output_tokens,
                },
            )
        return self._model

    def _failure(self) -> AnalysisResult:
        return AnalysisResult(outcome=ShotOutcome.MISS, tip=GENERIC_TIP, source="fallback")

    async def analyze(self, jpeg_bytes: bytes, last_tip: str = "") -> AnalysisResult:
        """Send one frame and parse the reply; never raises."""
        if not self.available:
            logger.warning("Fallback analysis requested without an API key")
            return self._failure()

        prompt = build_fallback_prompt(last_tip)
        if not validate_prompt_length(prompt):
            logger.warning("Fallback prompt is %d chars; the service may truncate it", len(prompt))

        try:
            model = self._get_model()
            response = await asyncio.to_thread(
                model.generate_content,
                [prompt, {"mime_type": "image/jpeg", "data": jpeg_bytes}],
                request_options={"timeout": self.config.request_timeout_s},
            )
            text = response.text
        except Exception as e:
            logger.warning("Fallback analysis failed: %s", e)
            return self._failure()

        return parse_analysis_text(text, source="fallback")
