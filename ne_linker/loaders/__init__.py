"""Document loaders."""

from .jsonl import JSONLLoader, JSONLoader  # noqa: F401
