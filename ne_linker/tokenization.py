"""
spaCy tokenization of pre-tagged documents.

Splits a document into sentences of Tokens and derives the set of tagged
offsets from the document's entity character spans.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import spacy

from ne_linker.registry import tokenizers
from ne_linker.types import Document, Offset, Token

logger = logging.getLogger(__name__)


def _overlaps(start: int, end: int, entities: Sequence[Dict[str, Any]]) -> bool:
    return any(start < ent["end"] and end > ent["start"] for ent in entities)


@tokenizers.register("spacy")
class SpacyTokenizer:
    """Blank spaCy pipeline with a rule-based sentencizer."""

    def __init__(self, language: str = "en") -> None:
        self.language = language
        self.nlp = spacy.blank(language)
        self.nlp.add_pipe("sentencizer")
        logger.info(f"Loaded blank spaCy tokenizer for '{language}'")

    def tokenize(
        self, doc: Document, document_name: Optional[str] = None
    ) -> Tuple[List[List[Token]], Set[Offset]]:
        """
        Tokenize a document and mark the tokens covered by its entities.

        Args:
            doc: Document with entity character spans
            document_name: Name stored on every token, defaults to the document id

        Returns:
            Sentences of tokens (whitespace tokens dropped) and the offsets of
            the tokens overlapping any entity span
        """
        name = document_name if document_name is not None else doc.id
        spacy_doc = self.nlp(doc.text)

        sentences: List[List[Token]] = []
        tagged: Set[Offset] = set()
        for sent in spacy_doc.sents:
            sentence: List[Token] = []
            for tok in sent:
                if tok.is_space:
                    continue
                offset = Offset(
                    begin_char=tok.idx,
                    end_char=tok.idx + len(tok.text),
                    begin_token=tok.i,
                    end_token=tok.i + 1,
                )
                sentence.append(Token(text=tok.text, offset=offset, document_name=name))
                if _overlaps(offset.begin_char, offset.end_char, doc.entities):
                    tagged.add(offset)
            if sentence:
                sentences.append(sentence)
        return sentences, tagged
