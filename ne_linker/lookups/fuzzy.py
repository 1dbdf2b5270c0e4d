import logging
from typing import List, Optional

from rapidfuzz import fuzz

from ne_linker.context import extract_context
from ne_linker.knowledge_bases.base import KnowledgeBase
from ne_linker.registry import candidate_lookups
from ne_linker.types import CandidateHandle, SessionContext

logger = logging.getLogger(__name__)


@candidate_lookups.register("fuzzy")
class FuzzyCandidateLookup:
    """
    RapidFuzz matching of the mention against entity titles and aliases.

    Name scores are blended with the similarity between the text around the
    mention and each entity description, so that the document decides
    between entities with the same name.
    """

    def __init__(
        self,
        top_k: int = 10,
        min_score: float = 0.0,
        context_weight: float = 0.2,
        context_mode: str = "window",
        window_chars: int = 150,
    ):
        if not 0.0 <= context_weight <= 1.0:
            raise ValueError(f"context_weight must be in [0, 1], got {context_weight}")
        self.top_k = top_k
        self.min_score = min_score
        self.context_weight = context_weight
        self.context_mode = context_mode
        self.window_chars = window_chars

    def _context(self, session: Optional[SessionContext], text: str, begin: int) -> str:
        if session is None or not session.text:
            return ""
        end = min(len(session.text), begin + len(text))
        if self.context_mode == "window":
            return extract_context(
                session.text, begin, end, mode="window", window_chars=self.window_chars
            )
        return extract_context(session.text, begin, end, mode=self.context_mode)

    def __call__(
        self,
        kb: KnowledgeBase,
        query_context: Optional[str],
        text: str,
        begin: int,
        session: Optional[SessionContext],
    ) -> List[CandidateHandle]:
        matches = kb.match(text, limit=self.top_k)
        if query_context is not None:
            # Restrict to entities of the requested type
            matches = [
                (entity, score)
                for entity, score in matches
                if entity.metadata.get("type") == query_context
            ]

        context = self._context(session, text, begin) if self.context_weight else ""
        scored = []
        for entity, name_score in matches:
            score = name_score
            if context:
                context_score = fuzz.token_set_ratio(context, entity.description or "")
                score = (1 - self.context_weight) * name_score + self.context_weight * context_score
            if score >= self.min_score:
                scored.append((entity, score))
        scored.sort(key=lambda item: item[1], reverse=True)

        logger.debug(f"Fuzzy lookup '{text}' in {kb.name}: {len(scored)} candidates")
        return [
            CandidateHandle(identifier=entity.id, description=entity.description, score=score)
            for entity, score in scored
        ]
