"""
Component registry for the entity linker.

Document loaders, tokenizers, knowledge bases and candidate lookups are
registered by name so a JSON configuration can select them.
"""

from typing import Any, Callable, Dict, TypeVar

T = TypeVar("T")


class ComponentRegistry:
    """Simple registry to keep components pluggable."""

    def __init__(self, kind: str = "Component") -> None:
        self.kind = kind
        self._registry: Dict[str, Callable[..., Any]] = {}

    def register(self, name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
        def decorator(factory: Callable[..., T]) -> Callable[..., T]:
            if name in self._registry:
                raise ValueError(f"{self.kind} '{name}' already registered.")
            self._registry[name] = factory
            return factory

        return decorator

    def get(self, name: str) -> Callable[..., Any]:
        try:
            return self._registry[name]
        except KeyError as exc:
            raise KeyError(
                f"{self.kind} '{name}' not found. Available: {sorted(self._registry)}"
            ) from exc

    def available(self) -> Dict[str, Callable[..., Any]]:
        return dict(self._registry)


# Registries per component type
loaders = ComponentRegistry("Loader")
tokenizers = ComponentRegistry("Tokenizer")
knowledge_bases = ComponentRegistry("Knowledge base")
candidate_lookups = ComponentRegistry("Candidate lookup")
