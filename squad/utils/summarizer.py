"""
Conversation summarization.

LLMSummarizer turns a block of conversation text into a short summary
using an OpenAI chat model. Storage backends call it with the messages
they trim so older context survives as a running summary.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from squad.core.errors import ProviderError
from squad.core.prompts import PromptManager

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 100000
MAX_SUMMARY_BYTES = 3500


def truncate_to_bytes(text: str, max_bytes: int) -> str:
    """Drop trailing words until the UTF-8 encoding fits in max_bytes."""
    if len(text.encode("utf-8")) <= max_bytes:
        return text
    words = text.split(" ")
    while words and len((" ".join(words) + "...").encode("utf-8")) > max_bytes:
        words.pop()
    if not words:
        return text.encode("utf-8")[: max(0, max_bytes - 3)].decode("utf-8", "ignore") + "..."
    return " ".join(words) + "..."


class LLMSummarizer:
    """
    Summarize conversation text with a chat model.

    Instances are awaitable callables, so they can be passed directly as
    the `summarizer` of InMemoryChatStorage.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key_env: str = "OPENAI_API_KEY",
        client: Optional[AsyncOpenAI] = None,
        prompts: Optional[PromptManager] = None,
        max_summary_bytes: int = MAX_SUMMARY_BYTES,
    ) -> None:
        self.model = model
        self.api_key_env = api_key_env
        self._client_instance = client
        self.prompt = (prompts or PromptManager()).get_summary_prompt()
        self.max_summary_bytes = max_summary_bytes

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        prompts: Optional[PromptManager] = None,
    ) -> "LLMSummarizer":
        return cls(
            model=cfg.get("model", "gpt-4o-mini"),
            api_key_env=cfg.get("api_key_env", "OPENAI_API_KEY"),
            prompts=prompts,
            max_summary_bytes=int(cfg.get("max_summary_bytes", MAX_SUMMARY_BYTES)),
        )

    def _client(self) -> AsyncOpenAI:
        if self._client_instance is not None:
            return self._client_instance
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(
                f"Environment variable '{self.api_key_env}' is not set for the summarizer."
            )
        self._client_instance = AsyncOpenAI(api_key=api_key)
        return self._client_instance

    async def summarize(self, conversation_text: str) -> str:
        text = conversation_text
        if len(text) > MAX_CONTEXT_CHARS:
            logger.info("Conversation too large for a single summary, truncating.")
            text = text[:MAX_CONTEXT_CHARS] + "\n\n[... conversation truncated ...]"

        try:
            completion = await self._client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.prompt},
                    {"role": "user", "content": text},
                ],
            )
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(f"Summarizer error: {exc}") from exc

        summary = completion.choices[0].message.content if completion.choices else None
        if not summary:
            raise ProviderError("Summarizer returned an empty summary.")
        if len(summary.encode("utf-8")) > self.max_summary_bytes:
            logger.info("Generated summary too large, truncating.")
            summary = truncate_to_bytes(summary, self.max_summary_bytes)
        return summary

    async def __call__(self, conversation_text: str) -> str:
        return await self.summarize(conversation_text)
