"""Google Gemini LLM provider implementation.

Uses google-generativeai SDK with Gemini Flash model.
Instantiated once in the FastAPI lifespan.
All external calls have a 10-second timeout and structured error logging.
"""

import google.generativeai as genai
import structlog

from app.services.llm.base import LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)

_TIMEOUT_SECONDS = 10


class GeminiProvider(LLMProvider):
    """Gemini Flash implementation of LLMProvider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        timeout_seconds: float = _TIMEOUT_SECONDS,
    ) -> None:
        genai.configure(api_key=api_key)
        self._model_name = model
        self._timeout_seconds = timeout_seconds
        logger.info("gemini_provider_initialized", model=model)

    def _build_model(self, system_prompt: str) -> genai.GenerativeModel:
        """Build a GenerativeModel with the given system instruction."""
        return genai.GenerativeModel(
            model_name=self._model_name,
            system_instruction=system_prompt or None,
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a complete response using Gemini Flash."""
        model = self._build_model(system_prompt)
        generation_config = genai.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=temperature,
            response_mime_type="application/json" if json_mode else "text/plain",
        )
        try:
            response = await model.generate_content_async(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": self._timeout_seconds},
            )
            # Safe text extraction — response.text throws when Gemini
            # returns no valid Part (safety block, empty candidates).
            try:
                text = response.text
            except (ValueError, AttributeError):
                text = ""
                if response.candidates:
                    try:
                        for part in response.candidates[0].content.parts:
                            if hasattr(part, "text") and part.text:
                                text += part.text
                    except (IndexError, AttributeError):
                        pass
                if not text:
                    logger.warning(
                        "gemini_empty_response",
                        prompt_len=len(prompt),
                        candidates=len(response.candidates) if response.candidates else 0,
                    )
            usage = response.usage_metadata
            result = LLMResponse(
                text=text,
                input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
                output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
            )
            logger.debug(
                "gemini_generate_ok",
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                prompt_len=len(prompt),
                json_mode=json_mode,
            )
            return result
        except Exception as e:
            logger.error(
                "gemini_generate_failed",
                error=str(e),
                model=self._model_name,
                prompt_len=len(prompt),
            )
            raise RuntimeError(f"Gemini generate failed: {e}") from e
