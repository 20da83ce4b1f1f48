"""
Language model completion client (Anthropic Messages API over HTTP).

Each worker thread gets its own pooled requests.Session, so repeated calls
reuse the TLS connection without sharing session state between threads.
Transport problems are translated into InterpretationError kinds so callers
can tell a slow model from an unreachable one or a garbled reply.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

import requests

from rules_search.budget import InvocationBudget
from rules_search.config import Settings
from rules_search.errors import ConfigurationError, InterpretationError, InterpretationErrorKind

logger = logging.getLogger(__name__)


class AnthropicClient:
    """
    Minimal client for the /v1/messages endpoint.

    Args:
        api_key: Anthropic API key; empty raises ConfigurationError immediately
        model: Model id
        timeout: Seconds before the HTTP call is abandoned
        budget: Optional shared InvocationBudget checked before every call
        session: Optional requests.Session used by every thread (tests inject a
            fake); by default each thread creates its own
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-haiku-20240307",
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        timeout: float = 8.0,
        budget: Optional[InvocationBudget] = None,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not configured")
        self.model = model
        self.url = f"{base_url.rstrip('/')}/v1/messages"
        self.timeout = timeout
        self.budget = budget
        self._headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": api_version,
        }
        self._shared_session = session
        self._local = threading.local()

    @classmethod
    def from_settings(cls, settings: Settings, budget: Optional[InvocationBudget] = None) -> "AnthropicClient":
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            base_url=settings.anthropic_base_url,
            api_version=settings.anthropic_version,
            timeout=settings.llm_timeout_seconds,
            budget=budget,
        )

    @property
    def session(self) -> requests.Session:
        """The calling thread's session."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def complete(self, prompt: str, max_tokens: int = 200) -> str:
        """
        Send a single-turn prompt and return the concatenated text reply.

        Raises:
            BudgetExceededError: the invocation budget is exhausted
            InterpretationError: timeout, transport/HTTP failure or an
                unexpected response envelope
        """
        if self.budget is not None:
            self.budget.acquire()

        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": 0,
            "messages": [{"role": "user", "content": prompt}],
        }

        start = time.time()
        try:
            response = self.session.post(self.url, headers=self._headers, json=body, timeout=self.timeout)
        except requests.Timeout as exc:
            raise InterpretationError(
                InterpretationErrorKind.TIMEOUT, f"model call timed out after {self.timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise InterpretationError(
                InterpretationErrorKind.UPSTREAM_UNAVAILABLE, f"model endpoint unreachable: {exc}"
            ) from exc
        elapsed = (time.time() - start) * 1000

        if response.status_code != 200:
            logger.error("Model API error %s after %.2fms: %s", response.status_code, elapsed, response.text[:500])
            raise InterpretationError(
                InterpretationErrorKind.UPSTREAM_UNAVAILABLE, f"model API returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise InterpretationError(
                InterpretationErrorKind.MALFORMED_MODEL_OUTPUT, "model API returned non-JSON envelope"
            ) from exc

        blocks = data.get("content") if isinstance(data, dict) else None
        texts = [
            block.get("text", "")
            for block in (blocks or [])
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if not texts:
            raise InterpretationError(
                InterpretationErrorKind.MALFORMED_MODEL_OUTPUT, "model reply contained no text content"
            )

        logger.info("Model call completed in %.2fms", elapsed)
        return "".join(texts)
