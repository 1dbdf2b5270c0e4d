"""
Collaborator interfaces consumed by the linker.

Knowledge-base listing, candidate lookup and document session resolution
live outside the linking core. They are declared here as protocols, with
in-memory implementations used by the pipeline and the tests.
"""

import threading
from contextlib import contextmanager
from typing import (
    Any,
    ContextManager,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from ne_linker.errors import SessionResolutionError
from ne_linker.knowledge_bases.base import KnowledgeBase
from ne_linker.types import CandidateHandle, SessionContext


class KnowledgeBaseService(Protocol):
    """Lists the knowledge bases of a project and grants read access."""

    def list_knowledge_bases(self, project: Optional[str]) -> List[KnowledgeBase]:
        ...

    def read(self, kb: KnowledgeBase) -> ContextManager[Any]:
        ...


class CandidateLookup(Protocol):
    """Black-box candidate retrieval inside a single knowledge base."""

    def __call__(
        self,
        kb: Any,
        query_context: Optional[str],
        text: str,
        begin: int,
        session: SessionContext,
    ) -> Sequence[CandidateHandle]:
        ...


class DocumentService(Protocol):
    """Resolves the read context of a document."""

    def read_session(
        self, project: Optional[str], document_name: Optional[str], user: Optional[str]
    ) -> ContextManager[SessionContext]:
        ...


class ProjectKnowledgeBaseService:
    """Knowledge bases grouped by project, kept in registration order."""

    def __init__(self) -> None:
        self._by_project: Dict[Optional[str], List[KnowledgeBase]] = {}

    def add(self, project: Optional[str], kb: KnowledgeBase) -> None:
        self._by_project.setdefault(project, []).append(kb)

    def list_knowledge_bases(self, project: Optional[str]) -> List[KnowledgeBase]:
        return list(self._by_project.get(project, []))

    @contextmanager
    def read(self, kb: KnowledgeBase) -> Iterator[Any]:
        reader = getattr(kb, "read", None)
        if reader is None:
            yield kb
            return
        with reader() as handle:
            yield handle


class InMemoryDocumentService:
    """Holds document texts keyed by (project, document name)."""

    def __init__(self) -> None:
        self._texts: Dict[Tuple[Optional[str], str], str] = {}
        self._lock = threading.Lock()
        self._open_sessions = 0

    def add_document(self, project: Optional[str], document_name: str, text: str) -> None:
        with self._lock:
            self._texts[(project, document_name)] = text

    def remove_document(self, project: Optional[str], document_name: str) -> None:
        with self._lock:
            self._texts.pop((project, document_name), None)

    @property
    def open_sessions(self) -> int:
        with self._lock:
            return self._open_sessions

    @contextmanager
    def read_session(
        self, project: Optional[str], document_name: Optional[str], user: Optional[str]
    ) -> Iterator[SessionContext]:
        with self._lock:
            text = self._texts.get((project, document_name)) if document_name else None
            if text is None:
                raise SessionResolutionError(
                    f"Document '{document_name}' not found in project '{project}'"
                )
            self._open_sessions += 1
        try:
            yield SessionContext(
                project=project, document_name=document_name, user=user, text=text
            )
        finally:
            with self._lock:
                self._open_sessions -= 1
