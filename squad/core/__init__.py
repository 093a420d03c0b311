"""
Core logic for the squad router.

This subpackage provides the orchestrator, which classifies requests and
dispatches them to agents, the shared data types and error taxonomy,
prompt management utilities, and config-gated logging.
"""

__all__ = [
    "orchestrator",
    "types",
    "errors",
    "prompts",
    "logger",
]
