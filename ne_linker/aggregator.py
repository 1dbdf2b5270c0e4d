"""
Candidate aggregation across knowledge bases.

For every entity span, each knowledge base that supports linking is asked
for candidates. The candidate lists are concatenated in knowledge-base order,
keeping the order each knowledge base returned, and the concatenation is cut
to the maximum number of predictions. No scores are compared across
knowledge bases.

A lookup that fails or times out contributes no candidates; it never stops
the other lookups. The timeout of a lookup runs from the moment the lookup
starts, so lookups waiting for a free worker are never timed out.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import List, Optional, Sequence, Tuple

from ne_linker.config import (
    DEFAULT_FEATURE_NAME,
    DEFAULT_MAX_PREDICTIONS,
    DEFAULT_SOURCE_LABEL,
)
from ne_linker.knowledge_bases.base import KnowledgeBase
from ne_linker.services import CandidateLookup, DocumentService, KnowledgeBaseService
from ne_linker.types import CandidateHandle, EntitySpan, Prediction

logger = logging.getLogger(__name__)


def _kb_name(kb: KnowledgeBase) -> str:
    return getattr(kb, "name", None) or repr(kb)


class SequenceCounter:
    """Thread-safe allocator of increasing prediction ids for one run."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


class _PendingLookup:
    """A submitted lookup and the time its worker picked it up."""

    def __init__(self, kb: KnowledgeBase, span: EntitySpan) -> None:
        self.kb = kb
        self.span = span
        self.started = threading.Event()
        self.started_at = 0.0
        self.future: Optional["Future[List[CandidateHandle]]"] = None

    def mark_started(self) -> None:
        self.started_at = time.monotonic()
        self.started.set()


class CandidateAggregator:
    """Fans out span lookups to knowledge bases and builds bounded predictions."""

    def __init__(
        self,
        kb_service: KnowledgeBaseService,
        lookup: CandidateLookup,
        document_service: DocumentService,
        max_predictions: int = DEFAULT_MAX_PREDICTIONS,
        feature_name: str = DEFAULT_FEATURE_NAME,
        source_label: str = DEFAULT_SOURCE_LABEL,
        max_workers: int = 1,
        lookup_timeout: Optional[float] = None,
    ):
        if max_predictions < 0:
            raise ValueError(f"max_predictions must be >= 0, got {max_predictions}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.kb_service = kb_service
        self.lookup = lookup
        self.document_service = document_service
        self.max_predictions = max_predictions
        self.feature_name = feature_name
        self.source_label = source_label
        self.max_workers = max_workers
        self.lookup_timeout = lookup_timeout
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def concurrent(self) -> bool:
        return self.max_workers > 1 or self.lookup_timeout is not None

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="kb-lookup"
                )
            return self._executor

    def close(self, wait: bool = True) -> None:
        """Shut down the lookup workers; a later lookup starts a fresh pool."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "CandidateAggregator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def eligible_knowledge_bases(
        self, knowledge_bases: Sequence[KnowledgeBase]
    ) -> List[KnowledgeBase]:
        eligible = []
        for kb in knowledge_bases:
            if kb.supports_linking:
                eligible.append(kb)
            else:
                logger.debug(f"Skipping {_kb_name(kb)}: linking not supported")
        return eligible

    def _lookup(
        self, kb: KnowledgeBase, span: EntitySpan, user: Optional[str]
    ) -> List[CandidateHandle]:
        try:
            with self.kb_service.read(kb) as handle:
                with self.document_service.read_session(
                    span.project, span.document_name, user
                ) as session:
                    return list(
                        self.lookup(handle, None, span.text, span.offset.begin_char, session)
                    )
        except Exception:
            logger.error(
                f"An error occurred while retrieving entity candidates for "
                f"'{span.text}' from {_kb_name(kb)}",
                exc_info=True,
            )
            return []

    def _run_pending(self, pending: _PendingLookup, user: Optional[str]) -> List[CandidateHandle]:
        pending.mark_started()
        return self._lookup(pending.kb, pending.span, user)

    def _await(self, pending: _PendingLookup) -> List[CandidateHandle]:
        future = pending.future
        if self.lookup_timeout is None:
            return future.result()

        # Queued lookups have no deadline yet
        while not pending.started.wait(self.lookup_timeout):
            if future.done():
                break
        if future.cancelled():
            return []

        remaining = pending.started_at + self.lookup_timeout - time.monotonic()
        try:
            return future.result(timeout=max(remaining, 0.0))
        except FuturesTimeoutError:
            logger.error(
                f"Candidate lookup for '{pending.span.text}' in {_kb_name(pending.kb)} "
                f"timed out after {self.lookup_timeout}s"
            )
            return []

    def collect_many(
        self,
        spans: Sequence[EntitySpan],
        knowledge_bases: Sequence[KnowledgeBase],
        user: Optional[str] = None,
    ) -> List[List[CandidateHandle]]:
        """
        Gather the concatenated candidates of every span.

        Args:
            spans: Entity spans, in sentence order
            knowledge_bases: Knowledge bases in configured order
            user: User on whose behalf documents are read

        Returns:
            One candidate list per span, ordered by knowledge base and then
            by the order each knowledge base returned
        """
        eligible = self.eligible_knowledge_bases(knowledge_bases)
        tasks: List[Tuple[int, KnowledgeBase]] = [
            (span_idx, kb) for span_idx in range(len(spans)) for kb in eligible
        ]

        if not self.concurrent:
            results = [self._lookup(kb, spans[span_idx], user) for span_idx, kb in tasks]
        else:
            executor = self._pool()
            pending = [_PendingLookup(kb, spans[span_idx]) for span_idx, kb in tasks]
            for item in pending:
                item.future = executor.submit(self._run_pending, item, user)
            # Gather in submission order so completion order never leaks out
            results = [self._await(item) for item in pending]

        per_span: List[List[CandidateHandle]] = [[] for _ in spans]
        for (span_idx, _), candidates in zip(tasks, results):
            per_span[span_idx].extend(candidates)
        return per_span

    def collect_candidates(
        self,
        span: EntitySpan,
        knowledge_bases: Sequence[KnowledgeBase],
        user: Optional[str] = None,
    ) -> List[CandidateHandle]:
        return self.collect_many([span], knowledge_bases, user)[0]

    def to_predictions(
        self,
        span: EntitySpan,
        candidates: Sequence[CandidateHandle],
        counter: SequenceCounter,
        max_predictions: Optional[int] = None,
    ) -> List[Prediction]:
        limit = self.max_predictions if max_predictions is None else max_predictions
        return [
            Prediction(
                identifier=handle.identifier,
                description=handle.description,
                span=span,
                sequence_id=counter.allocate(),
                feature=self.feature_name,
                source=self.source_label,
            )
            for handle in candidates[:limit]
        ]

    def predict_many(
        self,
        spans: Sequence[EntitySpan],
        knowledge_bases: Sequence[KnowledgeBase],
        counter: SequenceCounter,
        user: Optional[str] = None,
        max_predictions: Optional[int] = None,
    ) -> List[List[Prediction]]:
        """Predictions for each span; ids are assigned after all lookups finish."""
        per_span = self.collect_many(spans, knowledge_bases, user)
        return [
            self.to_predictions(span, candidates, counter, max_predictions)
            for span, candidates in zip(spans, per_span)
        ]

    def predict(
        self,
        span: EntitySpan,
        knowledge_bases: Sequence[KnowledgeBase],
        counter: SequenceCounter,
        user: Optional[str] = None,
        max_predictions: Optional[int] = None,
    ) -> List[Prediction]:
        return self.predict_many([span], knowledge_bases, counter, user, max_predictions)[0]
