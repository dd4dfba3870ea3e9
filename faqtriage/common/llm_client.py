"""
Provider-agnostic LLM client for the semantic judge and the enricher.

One blocking ``generate()`` call over Google Gemini, Anthropic or OpenAI.
Async callers run it in a worker thread.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import LLMConfig

logger = logging.getLogger("faqtriage.common.llm_client")


def _connect_google(api_key: str) -> Any:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    return genai  # models are built per system prompt


def _connect_anthropic(api_key: str) -> Any:
    import anthropic

    return anthropic.Anthropic(api_key=api_key)


def _connect_openai(api_key: str) -> Any:
    from openai import OpenAI

    return OpenAI(api_key=api_key)


_CONNECTORS: Dict[str, Callable[[str], Any]] = {
    "google": _connect_google,
    "anthropic": _connect_anthropic,
    "openai": _connect_openai,
}


class LLMClient:
    """Single-turn text generation across LLM providers."""

    def __init__(
        self,
        provider: str = "google",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "google").lower()
        self.model = model
        self._client = None
        self._google_models: Dict[str, Any] = {}

        connect = _CONNECTORS.get(self.provider)
        if connect is None:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        api_key = {
            "google": google_api_key,
            "anthropic": anthropic_api_key,
            "openai": openai_api_key,
        }[self.provider]
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        try:
            self._client = connect(api_key)
        except ImportError as e:
            logger.warning("SDK for %s not installed: %s", self.provider, e)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, llm_config: "LLMConfig") -> "LLMClient":
        return cls(
            provider=llm_config.provider,
            model=llm_config.model,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 256,
        timeout: float = 30.0,
    ) -> str:
        """Generate a completion for ``prompt``. Blocks the calling thread."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        call = getattr(self, f"_generate_{self.provider}")
        return call(prompt, system, max_tokens, timeout).strip()

    def _generate_google(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        key = system or ""
        model = self._google_models.get(key)
        if model is None:
            if system:
                model = self._client.GenerativeModel(model_name=self.model, system_instruction=system)
            else:
                model = self._client.GenerativeModel(model_name=self.model)
            self._google_models[key] = model
        response = model.generate_content(
            prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": 0.0},
            request_options={"timeout": timeout},
        )
        return response.text

    def _generate_anthropic(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        extra = {"system": system} if system else {}
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **extra,
        )
        return response.content[0].text

    def _generate_openai(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=messages,
            timeout=timeout,
        )
        return response.choices[0].message.content or ""
