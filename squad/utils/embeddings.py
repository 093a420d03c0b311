"""
Text embeddings for vector-backed storage.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from squad.core.errors import ProviderError


class OpenAIEmbedder:
    """Awaitable text -> vector callable backed by the OpenAI embeddings API."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key_env: str = "OPENAI_API_KEY",
        dimensions: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.api_key_env = api_key_env
        self.dimensions = dimensions
        self._client_instance = client

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "OpenAIEmbedder":
        dimensions = cfg.get("dimensions")
        return cls(
            model=cfg.get("model", "text-embedding-3-small"),
            api_key_env=cfg.get("api_key_env", "OPENAI_API_KEY"),
            dimensions=int(dimensions) if dimensions else None,
        )

    def _client(self) -> AsyncOpenAI:
        if self._client_instance is not None:
            return self._client_instance
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(
                f"Environment variable '{self.api_key_env}' is not set for the embedder."
            )
        self._client_instance = AsyncOpenAI(api_key=api_key)
        return self._client_instance

    async def __call__(self, text: str) -> List[float]:
        options: Dict[str, Any] = {"model": self.model, "input": text}
        if self.dimensions:
            options["dimensions"] = self.dimensions
        try:
            resp = await self._client().embeddings.create(**options)
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(f"Embedding error: {exc}") from exc
        return list(resp.data[0].embedding)
