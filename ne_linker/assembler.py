"""
Span assembly.

Turns the per-token named-entity tags of a sentence into entity spans, one
span per maximal run of consecutive tagged tokens.
"""

import logging
from typing import AbstractSet, List, Optional, Sequence

from ne_linker.types import EntitySpan, Offset, Token

logger = logging.getLogger(__name__)


def is_named_entity(token: Token, tagged_offsets: AbstractSet[Offset]) -> bool:
    """Return True if the token's offset is exactly one of the tagged offsets."""
    return token.offset in tagged_offsets


def assemble_spans(
    sentence: Sequence[Token],
    tagged_offsets: AbstractSet[Offset],
    project: Optional[str] = None,
) -> List[EntitySpan]:
    """
    Merge consecutive tagged tokens of one sentence into entity spans.

    Args:
        sentence: Tokens of the sentence, in order
        tagged_offsets: Offsets of the tokens tagged as named entities
        project: Project the spans belong to

    Returns:
        One EntitySpan per maximal run of tagged tokens, in sentence order
    """
    spans: List[EntitySpan] = []
    index = 0
    while index < len(sentence):
        token = sentence[index]
        if is_named_entity(token, tagged_offsets):
            run = [token]
            # The lookahead stops at the sentence end, closing the run there
            while index + 1 < len(sentence) and is_named_entity(
                sentence[index + 1], tagged_offsets
            ):
                index += 1
                run.append(sentence[index])
            span = EntitySpan.from_tokens(run, project=project)
            logger.debug(f"Assembled span '{span.text}' from {len(run)} token(s)")
            spans.append(span)
        index += 1
    return spans
