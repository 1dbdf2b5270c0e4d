"""
Named entity linking recommender.

Entry point used by the surrounding recommender framework: sentences of
tokens go in, and for every entity span a short ranked list of knowledge-base
identifiers comes out.
"""

import logging
from typing import AbstractSet, Any, FrozenSet, Iterable, List, Optional, Sequence

from ne_linker.aggregator import CandidateAggregator, SequenceCounter
from ne_linker.assembler import assemble_spans
from ne_linker.config import LinkerConfig
from ne_linker.services import CandidateLookup, DocumentService, KnowledgeBaseService
from ne_linker.types import LinkedSpan, Offset, Prediction, Token

logger = logging.getLogger(__name__)


def _coerce_tag_set(model: Any) -> Optional[FrozenSet[Offset]]:
    """Offsets of a set of Offsets or tagged Tokens, or None if neither."""
    if not isinstance(model, (set, frozenset)):
        return None
    offsets = set()
    for item in model:
        if isinstance(item, Offset):
            offsets.add(item)
        elif isinstance(item, Token):
            offsets.add(item.offset)
        else:
            return None
    return frozenset(offsets)


class NamedEntityLinker:
    """Links assembled entity spans to identifiers from the project's knowledge bases."""

    def __init__(
        self,
        kb_service: KnowledgeBaseService,
        lookup: CandidateLookup,
        document_service: DocumentService,
        config: Optional[LinkerConfig] = None,
        tagged_offsets: Iterable[Offset] = (),
    ):
        self.config = config or LinkerConfig()
        self.kb_service = kb_service
        self.aggregator = CandidateAggregator(
            kb_service=kb_service,
            lookup=lookup,
            document_service=document_service,
            max_predictions=self.config.max_predictions,
            feature_name=self.config.feature_name,
            source_label=self.config.source_label,
            max_workers=self.config.max_workers,
            lookup_timeout=self.config.lookup_timeout,
        )
        self.tagged_offsets: FrozenSet[Offset] = frozenset(tagged_offsets)
        self.project: Optional[str] = self.config.project
        self.user: Optional[str] = self.config.user

    def set_model(self, model: Any) -> None:
        """Replace the tag set; anything but a set of offsets or tokens empties it."""
        offsets = _coerce_tag_set(model)
        if offsets is None:
            logger.error(
                f"Expected model type: Set[Offset] - but was: "
                f"[{type(model).__name__ if model is not None else None}]"
            )
            offsets = frozenset()
        self.tagged_offsets = offsets

    def set_user(self, user: Optional[str]) -> None:
        self.user = user

    def set_project(self, project: Optional[str]) -> None:
        self.project = project

    def close(self) -> None:
        """Release the candidate lookup workers."""
        self.aggregator.close()

    def link_sentences(
        self,
        sentences: Sequence[Sequence[Token]],
        tagged_offsets: AbstractSet[Offset],
        project: Optional[str],
        user: Optional[str],
        max_predictions: Optional[int] = None,
        counter: Optional[SequenceCounter] = None,
    ) -> List[List[LinkedSpan]]:
        """
        Assemble entity spans and predict identifiers for each of them.

        Args:
            sentences: Sentences, each an ordered sequence of tokens
            tagged_offsets: Offsets of the tokens tagged as named entities
            project: Project whose knowledge bases are queried
            user: User on whose behalf documents are read
            max_predictions: Cap per span, defaults to the configured value
            counter: Sequence id allocator shared across calls of one run

        Returns:
            One list per sentence holding its entity spans, in the order
            encountered, each with its ranked predictions
        """
        if max_predictions is not None and max_predictions < 0:
            raise ValueError(f"max_predictions must be >= 0, got {max_predictions}")
        if counter is None:
            counter = SequenceCounter()

        knowledge_bases = self.kb_service.list_knowledge_bases(project)
        result: List[List[LinkedSpan]] = []
        for sentence in sentences:
            spans = assemble_spans(sentence, tagged_offsets, project=project)
            if not spans:
                result.append([])
                continue
            predictions = self.aggregator.predict_many(
                spans,
                knowledge_bases,
                counter,
                user=user,
                max_predictions=max_predictions,
            )
            result.append(
                [LinkedSpan(span=span, predictions=preds) for span, preds in zip(spans, predictions)]
            )

        logger.debug(
            f"Linked {sum(len(s) for s in result)} span(s) in {len(result)} sentence(s)"
        )
        return result

    def assemble_and_link(
        self,
        sentences: Sequence[Sequence[Token]],
        tagged_offsets: AbstractSet[Offset],
        project: Optional[str],
        user: Optional[str],
        max_predictions: Optional[int] = None,
        counter: Optional[SequenceCounter] = None,
    ) -> List[List[List[Prediction]]]:
        """
        Outer list: sentences. Middle list: entity spans in the order
        encountered. Inner list: ranked predictions for that span.
        """
        linked = self.link_sentences(
            sentences, tagged_offsets, project, user, max_predictions, counter
        )
        return [[item.predictions for item in sentence] for sentence in linked]

    def predict_sentences(
        self,
        sentences: Sequence[Sequence[Token]],
        counter: Optional[SequenceCounter] = None,
    ) -> List[List[List[Prediction]]]:
        """Link sentences using the linker's own tag set, project and user."""
        return self.assemble_and_link(
            sentences,
            self.tagged_offsets,
            self.project,
            self.user,
            counter=counter,
        )
