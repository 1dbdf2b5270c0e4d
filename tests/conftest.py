"""Shared fixtures for entity linker tests."""

import json
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import pytest

from ne_linker.services import InMemoryDocumentService, ProjectKnowledgeBaseService
from ne_linker.types import CandidateHandle, Document, Entity, Offset, SessionContext, Token


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_text() -> str:
    """Sample text containing named entities."""
    return (
        "Barack Obama was the 44th President of the United States. "
        "He was born in Honolulu, Hawaii."
    )


@pytest.fixture
def sample_document(sample_text: str) -> Document:
    """Sample Document with tagged entity character spans."""
    return Document(
        id="doc-001",
        text=sample_text,
        entities=[
            {"start": 0, "end": 12, "label": "PER"},
            {"start": 43, "end": 56, "label": "LOC"},
            {"start": 73, "end": 81, "label": "LOC"},
            {"start": 83, "end": 89, "label": "LOC"},
        ],
        meta={"source": "test"},
    )


@pytest.fixture
def sample_entities() -> List[Entity]:
    """Sample Entity records."""
    return [
        Entity(id="Q76", title="Barack Obama", description="44th President of the United States"),
        Entity(id="Q9696", title="Obama, Oklahoma", description="Town in Oklahoma"),
        Entity(id="Q30", title="United States", description="Country in North America", aliases=["USA"]),
        Entity(id="Q18094", title="Honolulu", description="Capital city of Hawaii"),
        Entity(id="Q782", title="Hawaii", description="U.S. state in the Pacific Ocean"),
    ]


# ---------------------------------------------------------------------------
# Mock classes
# ---------------------------------------------------------------------------


class StubKnowledgeBase:
    """Knowledge base returning fixed candidates, optionally failing or slow."""

    def __init__(
        self,
        name: str,
        candidates: Optional[Dict[str, List[Tuple[str, str]]]] = None,
        default: Optional[List[Tuple[str, str]]] = None,
        supports_linking: bool = True,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.supports_linking = supports_linking
        self._candidates = candidates or {}
        self._default = default or []
        self._error = error
        self._delay = delay
        self._lock = threading.Lock()
        self.readers = 0
        self.reads = 0

    @contextmanager
    def read(self) -> Iterator["StubKnowledgeBase"]:
        with self._lock:
            self.readers += 1
            self.reads += 1
        try:
            yield self
        finally:
            with self._lock:
                self.readers -= 1

    def respond(self, text: str) -> List[CandidateHandle]:
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        pairs = self._candidates.get(text, self._default)
        return [CandidateHandle(identifier=i, description=d) for i, d in pairs]


class RecordingLookup:
    """Candidate lookup delegating to StubKnowledgeBase.respond and recording calls."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Optional[str], str, int, SessionContext]] = []
        self._lock = threading.Lock()

    def __call__(self, kb, query_context, text, begin, session):
        with self._lock:
            self.calls.append((kb.name, query_context, text, begin, session))
        return kb.respond(text)

    @property
    def queried(self) -> List[str]:
        return [call[0] for call in self.calls]


def build_sentence(
    words: Sequence[str],
    tagged: Sequence[int] = (),
    document_name: str = "doc-1",
    first_token: int = 0,
    first_char: int = 0,
) -> Tuple[List[Token], set]:
    """Tokens for ``words`` separated by single spaces, plus offsets of tagged indices."""
    tokens: List[Token] = []
    char = first_char
    for i, word in enumerate(words):
        offset = Offset(char, char + len(word), first_token + i, first_token + i + 1)
        tokens.append(Token(text=word, offset=offset, document_name=document_name))
        char += len(word) + 1
    return tokens, {tokens[i].offset for i in tagged}


# ---------------------------------------------------------------------------
# Mock fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_kb() -> Callable[..., StubKnowledgeBase]:
    return StubKnowledgeBase


@pytest.fixture
def make_sentence() -> Callable[..., Tuple[List[Token], set]]:
    return build_sentence


@pytest.fixture
def lookup() -> RecordingLookup:
    return RecordingLookup()


@pytest.fixture
def kb_service() -> ProjectKnowledgeBaseService:
    return ProjectKnowledgeBaseService()


@pytest.fixture
def document_service() -> InMemoryDocumentService:
    service = InMemoryDocumentService()
    service.add_document("proj", "doc-1", "Barack Obama was here.")
    return service


# ---------------------------------------------------------------------------
# Temporary file fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_jsonl_kb(sample_entities: List[Entity]) -> Iterator[str]:
    """Create a temporary JSONL knowledge base file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
        for entity in sample_entities:
            line = json.dumps({
                "id": entity.id,
                "title": entity.title,
                "description": entity.description,
                "aliases": entity.aliases,
                **(entity.metadata or {}),
            })
            f.write(line + "\n")
        path = f.name
    yield path
    os.unlink(path)


@pytest.fixture
def temp_documents_file(sample_document: Document) -> Iterator[str]:
    """Create a temporary JSONL file of tagged documents."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
        f.write(json.dumps({
            "id": sample_document.id,
            "text": sample_document.text,
            "entities": sample_document.entities,
        }) + "\n")
        f.write(json.dumps({"id": "doc-002", "text": "Nothing to see here.", "entities": []}) + "\n")
        path = f.name
    yield path
    os.unlink(path)


@pytest.fixture
def temp_cache_dir() -> Iterator[str]:
    """Create a temporary cache directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def minimal_config_dict(temp_jsonl_kb: str) -> Dict:
    """Minimal config dict for pipeline testing."""
    return {
        "knowledge_bases": [
            {"name": "jsonl", "params": {"path": temp_jsonl_kb, "name": "sample"}},
        ],
        "loader": {"name": "jsonl", "params": {}},
        "lookup": {"name": "fuzzy", "params": {"top_k": 5, "context_weight": 0.0}},
        "project": "proj",
        "user": "tester",
        "max_predictions": 3,
    }


@pytest.fixture
def temp_config_file(minimal_config_dict: Dict) -> Iterator[str]:
    """Temporary config JSON file for CLI testing."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
        json.dump(minimal_config_dict, f)
        path = f.name
    yield path
    os.unlink(path)
