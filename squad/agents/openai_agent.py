"""
OpenAI agent implementation.

Wraps the OpenAI Chat Completions API using the official async SDK.
Supports non-streaming and streaming responses. The agent configuration
may specify the environment variable containing the API key, the base
URL for the API, the model name and inference parameters.
"""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from squad.agents.base import AgentOutput, LLMAgent, Retriever
from squad.core.errors import ProviderError
from squad.core.prompts import PromptManager
from squad.core.types import ConversationHistory, ConversationMessage, ParticipantRole

logger = logging.getLogger(__name__)


class OpenAIAgent(LLMAgent):
    """
    OpenAIAgent answers requests with an OpenAI-compatible chat model.
    """

    provider_label = "openai"
    default_api_key_env = "OPENAI_API_KEY"
    default_base_url = "https://api.openai.com/v1"
    default_model = "gpt-4o-mini"

    def __init__(
        self,
        name: str,
        description: str,
        agent_id: Optional[str] = None,
        model: Optional[str] = None,
        api_key_env: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        streaming: bool = False,
        save_chat: bool = True,
        log_request: bool = False,
        inference_config: Optional[Dict[str, Any]] = None,
        retriever: Optional[Retriever] = None,
        prompts: Optional[PromptManager] = None,
    ) -> None:
        super().__init__(
            name=name,
            description=description,
            agent_id=agent_id,
            save_chat=save_chat,
            streaming=streaming,
            log_request=log_request,
            inference_config=inference_config,
            retriever=retriever,
            prompts=prompts,
        )
        self.model = model or self.default_model
        self.api_key_env = api_key_env or self.default_api_key_env
        self.base_url = base_url or self.default_base_url
        self._client_instance = client

    @classmethod
    def from_config(
        cls,
        agent_id: str,
        cfg: Dict[str, Any],
        prompts: Optional[PromptManager] = None,
    ) -> "OpenAIAgent":
        agent = cls(
            name=cfg.get("name", agent_id),
            description=cfg.get("description", ""),
            agent_id=agent_id,
            model=cfg.get("model"),
            api_key_env=cfg.get("api_key_env"),
            base_url=cfg.get("base_url"),
            streaming=bool(cfg.get("streaming", False)),
            save_chat=bool(cfg.get("save_chat", True)),
            log_request=bool(cfg.get("log_request", False)),
            inference_config=cfg.get("inference", {}),
            prompts=prompts,
        )
        if cfg.get("system_prompt"):
            agent.set_system_prompt(cfg["system_prompt"], cfg.get("variables"))
        return agent

    def _client(self) -> AsyncOpenAI:
        if self._client_instance is not None:
            return self._client_instance
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(
                f"Environment variable '{self.api_key_env}' is not set for agent '{self.id}'."
            )
        self._client_instance = AsyncOpenAI(api_key=api_key, base_url=self.base_url)
        return self._client_instance

    async def build_messages(
        self,
        input_text: str,
        chat_history: ConversationHistory,
    ) -> List[Dict[str, Any]]:
        system_prompt = await self.build_system_prompt(input_text, chat_history)
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for msg in chat_history.messages:
            messages.append({"role": msg.role.value, "content": msg.text})
        messages.append({"role": "user", "content": input_text})
        return messages

    def _request_options(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        options: Dict[str, Any] = {"model": self.model, "messages": messages}
        cfg = self.inference_config
        if cfg.get("max_tokens") is not None:
            options["max_tokens"] = cfg["max_tokens"]
        if cfg.get("temperature") is not None:
            options["temperature"] = cfg["temperature"]
        if cfg.get("top_p") is not None:
            options["top_p"] = cfg["top_p"]
        if cfg.get("stop_sequences"):
            options["stop"] = cfg["stop_sequences"]
        return options

    async def process_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        chat_history: ConversationHistory,
        additional_params: Optional[Dict[str, Any]] = None,
    ) -> AgentOutput:
        messages = await self.build_messages(input_text, chat_history)
        options = self._request_options(messages)
        if self.log_request:
            logger.debug("%s agent %s request: %s", self.provider_label, self.id, options)
        if self.streaming:
            return self._stream(options)
        return await self._complete(options)

    async def _complete(self, options: Dict[str, Any]) -> ConversationMessage:
        client = self._client()
        try:
            resp = await client.chat.completions.create(**options)
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(f"{self.provider_label} agent error: {exc}") from exc

        if self.log_request:
            logger.debug("%s agent %s response: %s", self.provider_label, self.id, resp)
        if not resp.choices:
            raise ProviderError(f"{self.provider_label} agent: no choices returned.")
        text = resp.choices[0].message.content
        if not isinstance(text, str):
            raise ProviderError(f"{self.provider_label} agent: unexpected response format.")

        stats = {
            "id": resp.id,
            "model": resp.model,
            "usage": resp.usage,
            "from": f"agent-{self.provider_label}",
        }
        logger.info("%s agent %s usage: %s", self.provider_label, self.id, stats["usage"])
        return ConversationMessage.from_text(
            ParticipantRole.ASSISTANT, text, model_stats=[stats]
        )

    async def _stream(self, options: Dict[str, Any]) -> AsyncIterator[str]:
        client = self._client()
        try:
            stream = await client.chat.completions.create(**options, stream=True)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(f"{self.provider_label} agent stream error: {exc}") from exc
