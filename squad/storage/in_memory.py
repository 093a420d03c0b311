"""
In-memory chat storage.

Keeps conversations in a process-local dictionary. When a summarizer is
supplied, messages trimmed by retention are folded into a running
summary instead of being discarded.
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from squad.core.errors import StorageError
from squad.core.prompts import format_history
from squad.core.types import ConversationHistory, ConversationMessage
from squad.storage.base import ChatStorage, trim_messages

logger = logging.getLogger(__name__)

Summarizer = Callable[[str], Awaitable[str]]
ConversationKey = Tuple[str, str, str]


class InMemoryChatStorage(ChatStorage):
    def __init__(
        self,
        max_message_pairs: Optional[int] = None,
        summarizer: Optional[Summarizer] = None,
    ) -> None:
        self.max_message_pairs = max_message_pairs
        self.summarizer = summarizer
        self._conversations: Dict[ConversationKey, ConversationHistory] = {}

    def _bound(self, max_pairs: Optional[int]) -> Optional[int]:
        return max_pairs if max_pairs is not None else self.max_message_pairs

    async def save_chat_messages(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        messages: Sequence[ConversationMessage],
        max_pairs: Optional[int] = None,
    ) -> ConversationHistory:
        key = (user_id, session_id, agent_id)
        conversation = self._conversations.get(key) or ConversationHistory()

        now = time.time()
        stored = copy.deepcopy(list(messages))
        for message in stored:
            if message.timestamp is None:
                message.timestamp = now

        dropped, kept = trim_messages(conversation.messages + stored, self._bound(max_pairs))
        summary = conversation.summary
        if dropped and self.summarizer is not None:
            summary = await self._summarize(summary, dropped)

        # Committed only after summarization succeeded.
        self._conversations[key] = ConversationHistory(messages=kept, summary=summary)
        return copy.deepcopy(self._conversations[key])

    async def _summarize(
        self,
        previous: Optional[str],
        dropped: List[ConversationMessage],
    ) -> str:
        text = format_history(dropped)
        if previous:
            text = f"Earlier summary:\n{previous}\n\nConversation:\n{text}"
        try:
            return await self.summarizer(text)
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Failed to summarize trimmed messages: {exc}") from exc

    async def fetch_chat(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        max_pairs: Optional[int] = None,
    ) -> ConversationHistory:
        conversation = self._conversations.get((user_id, session_id, agent_id))
        if conversation is None:
            return ConversationHistory()
        _, kept = trim_messages(conversation.messages, self._bound(max_pairs))
        return ConversationHistory(messages=copy.deepcopy(kept), summary=conversation.summary)

    async def fetch_all_chats(
        self,
        user_id: str,
        session_id: str,
        query: Optional[str] = None,
    ) -> Dict[str, ConversationHistory]:
        chats: Dict[str, ConversationHistory] = {}
        for (uid, sid, agent_id), conversation in self._conversations.items():
            if uid == user_id and sid == session_id:
                chats[agent_id] = copy.deepcopy(conversation)
        return chats
