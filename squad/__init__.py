"""
Squad package root.

This package provides configuration loading utilities, the core
orchestrator that classifies and routes requests, pluggable agents
and classifiers backed by model providers, and conversation storage
backends. All sub-packages are imported from this package to expose
a clean API to the rest of the application.
"""

__all__ = [
    "config",
    "core",
    "agents",
    "classifiers",
    "storage",
    "utils",
]
