"""
Core data types shared by the orchestrator, agents, classifiers and storage.

Messages are stored per (user, session, agent) conversation. A message
holds an ordered list of content parts; a part is a mapping with either a
``text`` key or a ``toolUse`` key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Union

if TYPE_CHECKING:
    from squad.agents.base import Agent


class ParticipantRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationMessage:
    """
    A single turn fragment in a conversation.

    The content attribute is a list of content parts. Text parts look
    like ``{"text": "..."}``; tool-use parts look like
    ``{"toolUse": {"toolUseId": ..., "name": ..., "input": {...}}}``.
    """

    role: ParticipantRole
    content: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_text(
        cls,
        role: ParticipantRole,
        text: str,
        timestamp: Optional[float] = None,
        **metadata: Any,
    ) -> "ConversationMessage":
        return cls(role=role, content=[{"text": text}], timestamp=timestamp, metadata=metadata)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part["text"] for part in self.content if "text" in part)


@dataclass
class ConversationHistory:
    """
    Ordered messages (oldest first) for one conversation scope.

    The summary covers older turns that were dropped from the verbatim
    message list by retention trimming, when the storage backend
    supports summarization.
    """

    messages: List[ConversationMessage] = field(default_factory=list)
    summary: Optional[str] = None

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def last(self) -> Optional[ConversationMessage]:
        return self.messages[-1] if self.messages else None


@dataclass(frozen=True)
class AgentDescriptor:
    id: str
    name: str
    description: str


@dataclass
class ClassifierResult:
    """
    Outcome of intent classification.

    A result with no selected agent is a normal outcome for ambiguous
    input, not an error.
    """

    selected_agent: Optional["Agent"] = None
    confidence: Optional[float] = None
    model_stats: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AgentProcessingResult:
    user_input: str
    agent_id: str
    agent_name: str
    user_id: str
    session_id: str
    additional_params: Dict[str, Any] = field(default_factory=dict)
    confidence: Optional[float] = None
    model_stats: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AgentResponse:
    """
    Response returned to the caller of the orchestrator.

    When streaming is True, output is a single-pass async iterator of
    text fragments; otherwise it is the complete assistant message.
    """

    metadata: AgentProcessingResult
    output: Union[ConversationMessage, AsyncIterator[str]]
    streaming: bool = False
