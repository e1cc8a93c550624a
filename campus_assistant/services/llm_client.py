"""HTTP client for a hosted chat model used for open-ended questions."""

from __future__ import annotations

from typing import Any, Optional

import requests

from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

SYSTEM_PROMPT = """You are Campus AI, a helpful assistant for university students, faculty, and visitors.

For students you can explain courses, campus resources such as the library and athletic center,
portal credentials, OneCard questions and appointment scheduling.
For faculty you can help with campus resources and course schedules.
For visitors you can describe commuter options and places near campus.

Be concise, accurate, and helpful. If you're not sure about something, say so."""


class LanguageModelError(Exception):
    """Base error for the language model client."""


class LanguageModelUnavailableError(LanguageModelError):
    """Raised when the model is not configured or the call fails."""


class LanguageModelClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.llm_api_key)

    def _payload(self, text: str) -> dict[str, Any]:
        return {
            "model": self._settings.llm_model,
            "max_tokens": self._settings.llm_max_tokens,
            "temperature": self._settings.llm_temperature,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": text}],
        }

    def complete(self, text: str) -> str:
        """Send one user turn and return the first text block of the reply."""
        if not self.enabled:
            raise LanguageModelUnavailableError("Language model API key is not configured")

        try:
            response = self._session.post(
                self._settings.llm_api_url,
                json=self._payload(text),
                headers={
                    "x-api-key": self._settings.llm_api_key,
                    "anthropic-version": self._settings.llm_api_version,
                    "content-type": "application/json",
                },
                timeout=self._settings.llm_timeout_seconds,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning("Language model call failed | error=%s", exc)
            raise LanguageModelUnavailableError(str(exc)) from exc

        for block in body.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                return block["text"]

        raise LanguageModelUnavailableError("Language model reply had no text content")
