# llm.py  — uses google-generativeai directly, one call per analysis
import logging
from dataclasses import dataclass
from typing import Any, Dict

import google.generativeai as genai

from config import Settings, get_settings
from errors import UpstreamError
from prompt import AnalysisRequest

logger = logging.getLogger(__name__)

RESPONSE_MIME_TYPES = {"json": "application/json"}


@dataclass(frozen=True)
class AnalysisConfig:
    model_name: str = "gemini-1.5-flash"
    temperature: float = 0.7
    max_output_tokens: int = 8192
    response_format: str = "json"

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisConfig":
        return cls(
            model_name=settings.gemini_model,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )

    def generation_config(self) -> Dict[str, Any]:
        return {
            "temperature": float(self.temperature),
            "max_output_tokens": int(self.max_output_tokens),
            "response_mime_type": RESPONSE_MIME_TYPES[self.response_format],
        }


class AnalysisClient:
    """Sends one analysis request to Gemini and returns the raw response text.

    No retry and no model fallback: a failed call surfaces as UpstreamError
    and retrying is up to the caller.
    """

    def __init__(self, api_key: str, config: AnalysisConfig):
        self.api_key = api_key
        self.config = config
        self._configured = False

    @classmethod
    def from_settings(cls, settings: Settings = None) -> "AnalysisClient":
        settings = settings or get_settings()
        return cls(settings.google_api_key, AnalysisConfig.from_settings(settings))

    def _configure(self) -> None:
        if not self.api_key:
            raise UpstreamError("GOOGLE_API_KEY is not configured.")
        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True

    def analyze(self, request: AnalysisRequest) -> str:
        logger.info(
            "Calling %s (prompt %s, %d chars of content)",
            self.config.model_name, request.instruction_version, len(request.user_content),
        )
        try:
            self._configure()
            model = genai.GenerativeModel(
                self.config.model_name,
                system_instruction=request.system_instruction,
                generation_config=self.config.generation_config(),
            )
            resp = model.generate_content(request.user_content)
            # .text raises ValueError when the candidate was blocked
            text = resp.text
        except UpstreamError:
            raise
        except Exception as e:
            logger.warning("Model %s call failed: %s", self.config.model_name, e)
            raise UpstreamError(f"Model {self.config.model_name} request failed: {e}") from e

        if not text or not text.strip():
            raise UpstreamError(f"Model {self.config.model_name} returned an empty response.")
        logger.info("Model %s returned %d chars", self.config.model_name, len(text))
        return text

    # --- Simple ping for /api/llm-test
    def ping(self) -> dict:
        """
        Returns {"ok": True, "model": <model>, "content": "..."} on success,
                or {"ok": False, "model": <model>, "error": "..."} on failure.
        """
        try:
            self._configure()
            model = genai.GenerativeModel(self.config.model_name)
            resp = model.generate_content("Reply with OK")
            text = (resp.text or "").strip()
        except Exception as e:
            return {"ok": False, "model": self.config.model_name, "error": str(e)}
        if not text:
            return {"ok": False, "model": self.config.model_name, "error": "Empty response"}
        return {"ok": True, "model": self.config.model_name, "content": text[:200]}
