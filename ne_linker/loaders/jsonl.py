import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List

from ne_linker.registry import loaders
from ne_linker.types import Document

logger = logging.getLogger(__name__)


def _entity_spans(item: Dict[str, Any], entities_field: str, doc_id: str) -> List[Dict[str, Any]]:
    spans = []
    for raw in item.get(entities_field) or []:
        try:
            start, end = int(raw["start"]), int(raw["end"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping malformed entity in {doc_id}: {raw}")
            continue
        if start < 0 or end <= start:
            logger.warning(f"Skipping empty or negative entity span in {doc_id}: {raw}")
            continue
        spans.append({"start": start, "end": end, "label": raw.get("label")})
    return spans


def _to_document(
    item: Dict[str, Any], default_id: str, source: str, text_field: str, entities_field: str
) -> Document:
    doc_id = item.get("id") or default_id
    meta = {k: v for k, v in item.items() if k not in {text_field, entities_field}}
    return Document(
        id=doc_id,
        text=item.get(text_field, ""),
        entities=_entity_spans(item, entities_field, doc_id),
        meta={"source": source, **meta},
    )


@loaders.register("jsonl")
class JSONLLoader:
    """Loads JSONL where each line has a `text` field and tagged `entities`."""

    def __init__(self, text_field: str = "text", entities_field: str = "entities") -> None:
        self.text_field = text_field
        self.entities_field = entities_field

    def load(self, path: str) -> Iterator[Document]:
        with Path(path).open(encoding="utf-8") as f:
            for i, line in enumerate(f):
                if not line.strip():
                    continue
                yield _to_document(
                    json.loads(line),
                    f"{Path(path).stem}-{i}",
                    path,
                    self.text_field,
                    self.entities_field,
                )


@loaders.register("json")
class JSONLoader:
    """Loads a JSON object or array of objects shaped like the JSONL lines."""

    def __init__(self, text_field: str = "text", entities_field: str = "entities") -> None:
        self.text_field = text_field
        self.entities_field = entities_field

    def load(self, path: str) -> Iterator[Document]:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = [data]
        for i, item in enumerate(data):
            yield _to_document(
                item, f"{Path(path).stem}-{i}", path, self.text_field, self.entities_field
            )
