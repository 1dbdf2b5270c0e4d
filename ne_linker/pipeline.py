import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

# Ensure component registration by importing modules with registry decorators.
from ne_linker import knowledge_bases as _kb_pkg  # noqa: F401
from ne_linker import loaders as _loaders_pkg  # noqa: F401
from ne_linker import lookups as _lookups_pkg  # noqa: F401
from ne_linker import tokenization as _tokenization  # noqa: F401

from .aggregator import SequenceCounter
from .config import LinkerConfig
from .knowledge_bases.jsonl import shared_kb_summary
from .recommender import NamedEntityLinker
from .registry import candidate_lookups, knowledge_bases, loaders, tokenizers
from .services import InMemoryDocumentService, ProjectKnowledgeBaseService
from .types import Document

logger = logging.getLogger(__name__)


class LinkingPipeline:
    """Loads pre-tagged documents and links their entity spans."""

    def __init__(self, config: LinkerConfig) -> None:
        self.config = config

        self.kb_service = ProjectKnowledgeBaseService()
        for kb_config in config.knowledge_bases:
            kb_factory = knowledge_bases.get(kb_config.name)
            params = dict(kb_config.params)
            if config.cache_dir:
                params.setdefault("cache_dir", config.cache_dir)
            self.kb_service.add(config.project, kb_factory(**params))
        logger.debug(f"Parsed knowledge bases in memory: {shared_kb_summary()}")

        loader_factory = loaders.get(config.loader.name)
        self.loader = loader_factory(**config.loader.params)

        tokenizer_factory = tokenizers.get(config.tokenizer.name)
        self.tokenizer = tokenizer_factory(**config.tokenizer.params)

        lookup_factory = candidate_lookups.get(config.lookup.name)
        self.lookup = lookup_factory(**config.lookup.params)

        self.document_service = InMemoryDocumentService()
        self.linker = NamedEntityLinker(
            kb_service=self.kb_service,
            lookup=self.lookup,
            document_service=self.document_service,
            config=config,
        )

    def process_document(
        self, doc: Document, counter: Optional[SequenceCounter] = None
    ) -> Dict:
        document_name = doc.id or "document"
        project = self.config.project
        self.document_service.add_document(project, document_name, doc.text)
        try:
            sentences, tagged = self.tokenizer.tokenize(doc, document_name=document_name)
            linked = self.linker.link_sentences(
                sentences,
                tagged,
                project,
                self.config.user,
                counter=counter,
            )
        finally:
            self.document_service.remove_document(project, document_name)

        return {
            "id": doc.id,
            "text": doc.text,
            "sentences": [[item.to_dict() for item in sentence] for sentence in linked],
            "meta": doc.meta,
        }

    def run(self, paths: Iterable[str], output_path: Optional[str] = None) -> List[Dict]:
        results: List[Dict] = []
        counter = SequenceCounter()
        writer = None
        if output_path:
            writer = Path(output_path).open("w", encoding="utf-8")

        try:
            for path in paths:
                logger.info(f"Linking entities in {path}")
                for doc in self.loader.load(path):
                    result = self.process_document(doc, counter=counter)
                    if writer:
                        writer.write(json.dumps(result) + "\n")
                    results.append(result)
        finally:
            if writer:
                writer.close()
            self.linker.close()

        return results
