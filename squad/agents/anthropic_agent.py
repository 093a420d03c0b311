"""
Anthropic agent implementation.

This agent wraps the Claude messages API via the official `anthropic`
SDK. The system prompt is passed separately from the conversation, and
stored history is translated into Anthropic's user/assistant message
format.
"""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import anthropic

from squad.agents.base import AgentOutput, LLMAgent, Retriever
from squad.core.errors import ProviderError
from squad.core.prompts import PromptManager
from squad.core.types import ConversationHistory, ConversationMessage, ParticipantRole

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-sonnet-latest"
DEFAULT_MAX_TOKENS = 2048


class AnthropicAgent(LLMAgent):
    """
    AnthropicAgent answers requests with a Claude model.
    """

    default_max_tokens = DEFAULT_MAX_TOKENS

    def __init__(
        self,
        name: str,
        description: str,
        agent_id: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        api_key_env: str = "ANTHROPIC_API_KEY",
        client: Optional[anthropic.AsyncAnthropic] = None,
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
        self.model = model
        self.api_key_env = api_key_env
        self._client_instance = client

    @classmethod
    def from_config(
        cls,
        agent_id: str,
        cfg: Dict[str, Any],
        prompts: Optional[PromptManager] = None,
    ) -> "AnthropicAgent":
        agent = cls(
            name=cfg.get("name", agent_id),
            description=cfg.get("description", ""),
            agent_id=agent_id,
            model=cfg.get("model", DEFAULT_MODEL),
            api_key_env=cfg.get("api_key_env", "ANTHROPIC_API_KEY"),
            streaming=bool(cfg.get("streaming", False)),
            save_chat=bool(cfg.get("save_chat", True)),
            log_request=bool(cfg.get("log_request", False)),
            inference_config=cfg.get("inference", {}),
            prompts=prompts,
        )
        if cfg.get("system_prompt"):
            agent.set_system_prompt(cfg["system_prompt"], cfg.get("variables"))
        return agent

    def _client(self) -> anthropic.AsyncAnthropic:
        if self._client_instance is not None:
            return self._client_instance
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(
                f"Environment variable '{self.api_key_env}' is not set for agent '{self.id}'."
            )
        self._client_instance = anthropic.AsyncAnthropic(api_key=api_key)
        return self._client_instance

    async def process_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        chat_history: ConversationHistory,
        additional_params: Optional[Dict[str, Any]] = None,
    ) -> AgentOutput:
        # Tool-only turns carry no text and the Messages API rejects empty content.
        converted: List[Dict[str, Any]] = [
            {"role": msg.role.value, "content": msg.text}
            for msg in chat_history.messages
            if msg.text
        ]
        converted.append({"role": "user", "content": input_text})

        request: Dict[str, Any] = {
            "model": self.model,
            "system": await self.build_system_prompt(input_text, chat_history),
            "messages": converted,
            "max_tokens": self.inference_config["max_tokens"],
        }
        if self.inference_config.get("temperature") is not None:
            request["temperature"] = self.inference_config["temperature"]
        if self.inference_config.get("top_p") is not None:
            request["top_p"] = self.inference_config["top_p"]
        if self.inference_config.get("stop_sequences"):
            request["stop_sequences"] = self.inference_config["stop_sequences"]

        if self.log_request:
            logger.debug("anthropic agent %s request: %s", self.id, request)
        if self.streaming:
            return self._stream(request)
        return await self._complete(request)

    async def _complete(self, request: Dict[str, Any]) -> ConversationMessage:
        client = self._client()
        try:
            resp = await client.messages.create(**request)
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(f"Anthropic agent error: {exc}") from exc

        if self.log_request:
            logger.debug("anthropic agent %s response: %s", self.id, resp)
        content: List[Dict[str, Any]] = []
        for block in resp.content:
            block_type = getattr(block, "type", "")
            if block_type == "text":
                content.append({"text": block.text})
            elif block_type == "tool_use":
                content.append(
                    {"toolUse": {"toolUseId": block.id, "name": block.name, "input": block.input}}
                )
        stats = {"id": resp.id, "model": resp.model, "usage": resp.usage, "from": "agent-anthropic"}
        logger.info("anthropic agent %s usage: %s", self.id, resp.usage)
        return ConversationMessage(
            role=ParticipantRole.ASSISTANT,
            content=content,
            metadata={"model_stats": [stats]},
        )

    async def _stream(self, request: Dict[str, Any]) -> AsyncIterator[str]:
        client = self._client()
        try:
            stream = await client.messages.create(**request, stream=True)
            async for event in stream:
                if event.type != "content_block_delta":
                    continue
                text = getattr(event.delta, "text", None)
                if text:
                    yield text
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(f"Anthropic agent stream error: {exc}") from exc
