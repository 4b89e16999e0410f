"""Fallback LLM provider — tries primary, falls back to secondary on failure.

Used when GEMINI_FALLBACK_MODEL is configured: the primary Gemini model
handles every call and the fallback model only answers when it errors.
"""

import structlog

from app.services.llm.base import LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)


class FallbackLLMProvider(LLMProvider):
    """Tries primary provider first; falls back to secondary on any error."""

    def __init__(self, primary: LLMProvider, secondary: LLMProvider) -> None:
        self._primary = primary
        self._secondary = secondary
        logger.info(
            "fallback_provider_initialized",
            primary=type(primary).__name__,
            secondary=type(secondary).__name__,
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Try primary generate(); fall back to secondary on failure."""
        try:
            return await self._primary.generate(
                prompt, system_prompt, max_tokens, temperature, json_mode
            )
        except Exception as primary_err:
            logger.warning(
                "primary_generate_failed_falling_back",
                primary=type(self._primary).__name__,
                error=str(primary_err),
            )
            return await self._secondary.generate(
                prompt, system_prompt, max_tokens, temperature, json_mode
            )
