"""Knowledge base adapters."""

from .base import KnowledgeBase  # noqa: F401
from .jsonl import JSONLKnowledgeBase  # noqa: F401
