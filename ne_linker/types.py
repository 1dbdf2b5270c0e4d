from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class Offset:
    """Half-open character and token span.

    Offsets are hashable and compared field by field, which is what the
    span assembler relies on when testing whether a token is tagged.
    """

    begin_char: int
    end_char: int
    begin_token: int
    end_token: int

    def __post_init__(self) -> None:
        if min(self.begin_char, self.end_char, self.begin_token, self.end_token) < 0:
            raise ValueError(f"Offset bounds must be non-negative: {self}")
        if self.end_char < self.begin_char or self.end_token < self.begin_token:
            raise ValueError(f"Offset end precedes begin: {self}")

    def to_dict(self) -> Dict[str, int]:
        return {
            "begin_char": self.begin_char,
            "end_char": self.end_char,
            "begin_token": self.begin_token,
            "end_token": self.end_token,
        }


@dataclass(frozen=True)
class Token:
    """One lexical unit of a sentence."""

    text: str
    offset: Offset
    document_name: Optional[str] = None


@dataclass(frozen=True)
class EntitySpan:
    """A named-entity mention merged from one or more consecutive tokens."""

    text: str
    offset: Offset
    document_name: Optional[str] = None
    project: Optional[str] = None

    @classmethod
    def from_tokens(
        cls, tokens: Sequence[Token], project: Optional[str] = None
    ) -> "EntitySpan":
        """Build a span covering ``tokens``, which must be non-empty and ordered."""
        if not tokens:
            raise ValueError("Cannot build an entity span from zero tokens.")
        first, last = tokens[0], tokens[-1]
        return cls(
            text=" ".join(t.text for t in tokens),
            offset=Offset(
                begin_char=first.offset.begin_char,
                end_char=last.offset.end_char,
                begin_token=first.offset.begin_token,
                end_token=last.offset.end_token,
            ),
            document_name=first.document_name,
            project=project,
        )


@dataclass(frozen=True)
class CandidateHandle:
    """Linkable identifier returned by a knowledge base."""

    identifier: str
    description: Optional[str] = None
    score: Optional[float] = None


@dataclass(frozen=True)
class Prediction:
    """Ranked suggestion attached to an entity span."""

    identifier: str
    description: Optional[str]
    span: EntitySpan
    sequence_id: int
    feature: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.sequence_id,
            "identifier": self.identifier,
            "description": self.description,
            "feature": self.feature,
            "source": self.source,
        }


@dataclass
class Document:
    """Single document item with pre-tagged entity character spans."""

    id: Optional[str]
    text: str
    entities: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Entity:
    """Entity record from a knowledge base."""

    id: str
    title: str
    description: Optional[str] = None
    aliases: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionContext:
    """Per-document read context handed to candidate lookups."""

    project: Optional[str]
    document_name: Optional[str]
    user: Optional[str]
    text: str = ""


@dataclass(frozen=True)
class LinkedSpan:
    """An entity span together with its ranked predictions."""

    span: EntitySpan
    predictions: List[Prediction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.span.text,
            "start": self.span.offset.begin_char,
            "end": self.span.offset.end_char,
            "predictions": [p.to_dict() for p in self.predictions],
        }
