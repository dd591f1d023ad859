"""Text-generation service used to summarize endpoints."""

from typing import Optional, Protocol

import anthropic

from restsum.exceptions import AIError
from restsum.logger import get_logger

logger = get_logger()

DEFAULT_MODEL = "claude-haiku-4-5-20251001"


class TextGenerator(Protocol):
    """Stateless prompt-in, text-out call to a language model.

    Implementations raise ``AIError`` when the call fails.
    """

    def generate(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        timeout: Optional[float] = None,
    ) -> str:
        ...


class AnthropicGenerator:
    """``TextGenerator`` backed by Anthropic's Messages API."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, max_retries: int = 2):
        if not api_key:
            raise AIError("An API key is required to call the summarization service")
        self.model = model
        self.client = anthropic.Anthropic(api_key=api_key, max_retries=max_retries)

    def generate(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        timeout: Optional[float] = None,
    ) -> str:
        kwargs = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except anthropic.APIError as e:
            raise AIError(f"AI call failed: {e}") from e

        # Anthropic returns a list of content blocks; keep the text ones
        text = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise AIError("AI call returned no text")

        logger.debug(
            f"{self.model}: {message.usage.input_tokens} input / "
            f"{message.usage.output_tokens} output tokens"
        )
        return text
