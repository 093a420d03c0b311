"""
Helper services used by storage backends: summarization and embeddings.
"""

__all__ = [
    "summarizer",
    "embeddings",
]
