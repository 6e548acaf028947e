"""
LLM Learning Cards

A chat assistant that answers with structured learning cards and multi-level
learning pathways, with progress tracking for each pathway.
"""

from . import db
from . import structured
from . import parsing
from . import storage
from . import progress
from . import render
from . import prompts
from . import providers
from . import chat
from . import plugin

__version__ = "0.1.0"
__all__ = [
    "db", "structured", "parsing", "storage", "progress",
    "render", "prompts", "providers", "chat", "plugin",
]
