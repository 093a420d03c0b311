"""
Base types for agents.

Defines the Agent contract every handler implements to plug into the
orchestrator, and the Retriever contract agents may use to pull
supplementary context into their prompts.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional, Union

from squad.core.prompts import PromptManager, TemplateValue, render
from squad.core.types import AgentDescriptor, ConversationHistory, ConversationMessage

AgentOutput = Union[ConversationMessage, AsyncIterator[str]]


def generate_key_from_name(name: str) -> str:
    """
    Derive a stable agent id from a display name.

    "Tech Agent" becomes "tech-agent"; characters other than letters,
    digits, spaces and hyphens are removed.
    """
    key = re.sub(r"[^a-zA-Z0-9\s-]", "", name)
    key = re.sub(r"\s+", "-", key.strip())
    return key.lower()


class Retriever(ABC):
    """Supplies extra context text for a user input."""

    @abstractmethod
    async def retrieve_and_combine_results(self, text: str) -> str:
        ...


class Agent(ABC):
    """
    Abstract base class for all agents.

    An agent has a unique id, a display name and a description. The
    description is what the classifier sees when deciding where to
    route a request, so it must not be empty.

    Agents must implement `process_request`, returning either a complete
    assistant message or an async iterator of text fragments. Agents
    never write to chat storage; the orchestrator persists every turn.
    """

    def __init__(
        self,
        name: str,
        description: str,
        agent_id: Optional[str] = None,
        save_chat: bool = True,
        streaming: bool = False,
        log_request: bool = False,
    ) -> None:
        if not name or not name.strip():
            raise ValueError("Agent name must not be empty.")
        if not description or not description.strip():
            raise ValueError(f"Agent '{name}' requires a non-empty description.")
        self.name = name
        self.description = description
        self.id = agent_id or generate_key_from_name(name)
        self.save_chat = save_chat
        self.streaming = streaming
        self.log_request = log_request

    def descriptor(self) -> AgentDescriptor:
        return AgentDescriptor(id=self.id, name=self.name, description=self.description)

    def is_streaming_enabled(self) -> bool:
        return self.streaming

    @abstractmethod
    async def process_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        chat_history: ConversationHistory,
        additional_params: Optional[Dict[str, Any]] = None,
    ) -> AgentOutput:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, name={self.name!r})"


class LLMAgent(Agent):
    """
    Base class for agents backed by a chat model.

    Holds what the vendor agents share: the `{{VAR}}` system prompt
    template and its custom variables, the optional retriever, and the
    inference settings. `build_system_prompt` appends retrieved context
    and the history summary to the rendered template.
    """

    default_max_tokens = 4096

    def __init__(
        self,
        name: str,
        description: str,
        agent_id: Optional[str] = None,
        save_chat: bool = True,
        streaming: bool = False,
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
        )
        self.inference_config: Dict[str, Any] = {"max_tokens": self.default_max_tokens}
        self.inference_config.update(inference_config or {})
        self.retriever = retriever
        self.prompt_template = (prompts or PromptManager()).get_agent_template()
        self.custom_variables: Dict[str, TemplateValue] = {}

    def set_system_prompt(
        self,
        template: Optional[str] = None,
        variables: Optional[Dict[str, TemplateValue]] = None,
    ) -> None:
        if template:
            self.prompt_template = template
        if variables:
            self.custom_variables = dict(variables)

    def system_prompt(self) -> str:
        variables: Dict[str, TemplateValue] = {
            "AGENT_NAME": self.name,
            "AGENT_DESCRIPTION": self.description,
        }
        variables.update(self.custom_variables)
        return render(self.prompt_template, variables)

    async def build_system_prompt(self, input_text: str, chat_history: ConversationHistory) -> str:
        system_prompt = self.system_prompt()
        if self.retriever is not None:
            context = await self.retriever.retrieve_and_combine_results(input_text)
            system_prompt += (
                "\nHere is the context to use to answer the user's question:\n" + context
            )
        if chat_history.summary:
            system_prompt += (
                "\nHere is a summary of the old conversation that you should account "
                "for before answering:\n" + chat_history.summary
            )
        return system_prompt
