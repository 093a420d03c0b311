"""
Base class for chat storage backends.

Conversations are keyed by (user_id, session_id, agent_id). Retention is
expressed in message pairs: a bound of N keeps the newest 2 * N messages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from squad.core.types import ConversationHistory, ConversationMessage


def trim_messages(
    messages: Sequence[ConversationMessage],
    max_pairs: Optional[int],
) -> Tuple[List[ConversationMessage], List[ConversationMessage]]:
    """
    Split messages into (dropped, kept) so that kept holds at most
    `2 * max_pairs` of the newest messages, in their original order.

    A `max_pairs` of None keeps everything.
    """
    messages = list(messages)
    if max_pairs is None:
        return [], messages
    limit = max(0, max_pairs) * 2
    if len(messages) <= limit:
        return [], messages
    cut = len(messages) - limit
    return messages[:cut], messages[cut:]


class ChatStorage(ABC):
    """
    Abstract base class for all chat storage backends.

    Backends must return messages in chronological order, must return an
    empty history for unknown conversations, and must not hand out
    references that let callers mutate stored messages.
    """

    async def save_chat_message(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        message: ConversationMessage,
        max_pairs: Optional[int] = None,
    ) -> ConversationHistory:
        """Append a message and return the retained history."""
        return await self.save_chat_messages(user_id, session_id, agent_id, [message], max_pairs)

    @abstractmethod
    async def save_chat_messages(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        messages: Sequence[ConversationMessage],
        max_pairs: Optional[int] = None,
    ) -> ConversationHistory:
        """
        Append several messages as one write and return the retained history.

        Either all messages are stored or, on failure, none are; a
        user/assistant pair is never left half written.
        """

    @abstractmethod
    async def fetch_chat(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        max_pairs: Optional[int] = None,
    ) -> ConversationHistory:
        ...

    @abstractmethod
    async def fetch_all_chats(
        self,
        user_id: str,
        session_id: str,
        query: Optional[str] = None,
    ) -> Dict[str, ConversationHistory]:
        """
        Return every agent's history for a session, keyed by agent id.

        Backends with similarity search may use `query` to add relevant
        older messages; backends without it ignore the argument.
        """
