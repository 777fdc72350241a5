"""
Anthropic Messages API client for Taskbot.

Used by the API-backed model invoker when no CLI backend is configured.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger("taskbot.common.llm_client")


class LLMClient:
    """Thin text-generation client over the Anthropic SDK."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        anthropic_api_key: Optional[str] = None,
    ) -> None:
        self.model = model
        self._client = None

        if not anthropic_api_key:
            logger.info("anthropic API key not provided, LLM client unavailable")
            return
        try:
            import anthropic

            self._client = anthropic.Anthropic(api_key=anthropic_api_key, max_retries=0)
        except ImportError:
            logger.warning("anthropic package not installed")
        except Exception as e:
            logger.warning("Failed to initialize Anthropic client: %s", e)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = 1024,
        timeout: float = 120.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": timeout,
        }
        response = self._client.messages.create(**kwargs)
        parts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        return "".join(parts).strip()
