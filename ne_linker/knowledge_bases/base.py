from typing import ContextManager, Iterable, List, Optional, Protocol, Tuple

from ne_linker.types import Entity


class KnowledgeBase(Protocol):
    """Abstract knowledge base interface."""

    name: str
    supports_linking: bool

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        ...

    def match(self, query: str, limit: int = 10) -> List[Tuple[Entity, float]]:
        ...

    def all_entities(self) -> Iterable[Entity]:
        ...

    def read(self) -> ContextManager["KnowledgeBase"]:
        ...
