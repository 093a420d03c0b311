"""
Conversation storage backends.

`base.py` defines the ChatStorage contract and retention trimming;
`in_memory.py` and `qdrant_storage.py` are the bundled backends.
"""

__all__ = [
    "base",
    "in_memory",
    "qdrant_storage",
]
