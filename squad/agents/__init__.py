"""
Agent implementations.

This package collects the Agent contract in `base.py` and concrete
agents for OpenAI, Perplexity and Grok (OpenAI-compatible), and
Anthropic. Adding a new agent involves creating a new module that
subclasses `Agent`.
"""

__all__ = [
    "base",
    "openai_agent",
    "perplexity_agent",
    "anthropic_agent",
]
