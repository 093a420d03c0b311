"""
Qdrant-backed chat storage.

Stores each message as a point in a Qdrant collection with vector
embeddings for similarity search.

Storage strategy:
- One point per message; payload carries user/session/agent ids, role,
  content parts, timestamp and a monotonic sequence number.
- Exact-match fetches scroll with a payload filter and order by sequence.
- `fetch_all_chats(query=...)` merges the most similar messages with the
  most recent ones, so relevant older turns resurface without breaking
  chronological order.
- Retention deletes points beyond the newest 2 * max_pairs messages.

Embedding generation is injected as an async text -> vector callable.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from squad.core.errors import StorageError
from squad.core.types import ConversationHistory, ConversationMessage, ParticipantRole
from squad.storage.base import ChatStorage

logger = logging.getLogger(__name__)

Embedder = Callable[[str], Awaitable[List[float]]]

SCROLL_PAGE_SIZE = 256


class QdrantChatStorage(ChatStorage):
    """
    Store and retrieve conversation messages using a Qdrant collection.

    Example:
        storage = QdrantChatStorage(
            client=AsyncQdrantClient(url="http://localhost:6333"),
            collection_name="chat_messages",
            embed=my_embedder,
            vector_size=1024,
        )
        await storage.save_chat_message("u1", "s1", "tech", message, max_pairs=20)
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        collection_name: str,
        embed: Embedder,
        vector_size: int = 1024,
        max_message_pairs: Optional[int] = None,
        similar_limit: int = 7,
        recent_limit: int = 10,
    ) -> None:
        self.client = client
        self.collection_name = collection_name
        self.embed = embed
        self.vector_size = vector_size
        self.max_message_pairs = max_message_pairs
        self.similar_limit = similar_limit
        self.recent_limit = recent_limit
        self._collection_ready = False
        self._last_seq = 0

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], embed: Embedder) -> "QdrantChatStorage":
        client = AsyncQdrantClient(url=cfg.get("url", "http://localhost:6333"), api_key=cfg.get("api_key"))
        return cls(
            client=client,
            collection_name=cfg.get("collection", "chat_messages"),
            embed=embed,
            vector_size=int(cfg.get("vector_size", 1024)),
            max_message_pairs=cfg.get("max_message_pairs"),
        )

    async def _ensure_collection(self) -> None:
        if self._collection_ready:
            return
        if not await self.client.collection_exists(self.collection_name):
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.vector_size, distance=Distance.COSINE),
            )
            logger.info("Created Qdrant collection: %s", self.collection_name)
        self._collection_ready = True

    @staticmethod
    def _filter(**conditions: str) -> Filter:
        return Filter(
            must=[
                FieldCondition(key=key, match=MatchValue(value=value))
                for key, value in conditions.items()
            ]
        )

    async def _scroll(self, scroll_filter: Filter) -> List[Any]:
        records: List[Any] = []
        offset = None
        while True:
            page, offset = await self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(page)
            if offset is None:
                break
        records.sort(key=lambda r: r.payload.get("seq", 0))
        return records

    @staticmethod
    def _to_message(payload: Dict[str, Any]) -> ConversationMessage:
        return ConversationMessage(
            role=ParticipantRole(payload["role"]),
            content=list(payload.get("content") or []),
            timestamp=payload.get("timestamp"),
            metadata=dict(payload.get("metadata") or {}),
        )

    def _next_seq(self) -> int:
        self._last_seq = max(time.time_ns(), self._last_seq + 1)
        return self._last_seq

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
        try:
            await self._ensure_collection()
            # Embed everything first so a failed embedding writes nothing.
            vectors = [await self.embed(message.text) for message in messages]
            now = time.time()
            points = [
                PointStruct(
                    id=str(uuid.uuid4()),
                    vector=vector,
                    payload={
                        "user_id": user_id,
                        "session_id": session_id,
                        "agent_id": agent_id,
                        "role": message.role.value,
                        "content": message.content,
                        "text": message.text,
                        "metadata": message.metadata,
                        "timestamp": message.timestamp if message.timestamp is not None else now,
                        "seq": self._next_seq(),
                    },
                )
                for message, vector in zip(messages, vectors)
            ]
            await self.client.upsert(collection_name=self.collection_name, points=points, wait=True)

            conversation_filter = self._filter(
                user_id=user_id, session_id=session_id, agent_id=agent_id
            )
            records = await self._scroll(conversation_filter)
            bound = self._bound(max_pairs)
            if bound is not None and len(records) > bound * 2:
                stale = records[: len(records) - bound * 2]
                await self.client.delete(
                    collection_name=self.collection_name,
                    points_selector=PointIdsList(points=[r.id for r in stale]),
                    wait=True,
                )
                records = records[len(stale):]
                logger.debug("Trimmed %d messages from %s/%s/%s", len(stale), user_id, session_id, agent_id)
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Failed to save message to Qdrant: {exc}") from exc

        return ConversationHistory(messages=[self._to_message(r.payload) for r in records])

    async def fetch_chat(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        max_pairs: Optional[int] = None,
    ) -> ConversationHistory:
        try:
            await self._ensure_collection()
            records = await self._scroll(
                self._filter(user_id=user_id, session_id=session_id, agent_id=agent_id)
            )
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Failed to fetch chat from Qdrant: {exc}") from exc

        bound = self._bound(max_pairs)
        if bound is not None:
            records = records[-bound * 2:] if bound > 0 else []
        return ConversationHistory(messages=[self._to_message(r.payload) for r in records])

    async def fetch_all_chats(
        self,
        user_id: str,
        session_id: str,
        query: Optional[str] = None,
    ) -> Dict[str, ConversationHistory]:
        session_filter = self._filter(user_id=user_id, session_id=session_id)
        try:
            await self._ensure_collection()
            records = await self._scroll(session_filter)
            if query:
                recent = records[-self.recent_limit:] if self.recent_limit > 0 else []
                vector = await self.embed(query)
                response = await self.client.query_points(
                    collection_name=self.collection_name,
                    query=vector,
                    query_filter=session_filter,
                    limit=self.similar_limit,
                    with_payload=True,
                )
                seen = set()
                merged = []
                for record in list(response.points) + recent:
                    if record.id in seen:
                        continue
                    seen.add(record.id)
                    merged.append(record)
                records = sorted(merged, key=lambda r: r.payload.get("seq", 0))
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Failed to fetch chats from Qdrant: {exc}") from exc

        chats: Dict[str, ConversationHistory] = {}
        for record in records:
            agent_id = record.payload["agent_id"]
            chats.setdefault(agent_id, ConversationHistory()).messages.append(
                self._to_message(record.payload)
            )
        return chats
