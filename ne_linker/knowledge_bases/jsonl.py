import hashlib
import json
import logging
import os
import pickle
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from rapidfuzz import fuzz, process

from ne_linker.registry import knowledge_bases
from ne_linker.types import Entity

logger = logging.getLogger(__name__)

_RESERVED_FIELDS = {"id", "title", "description", "aliases"}


class ParsedKB(NamedTuple):
    """Entities of one JSONL file plus a flat index of their names."""

    entities: Dict[str, Entity]
    # names[i] is a title or alias of entities[owners[i]]
    names: List[str]
    owners: List[str]


# ============================================================================
# Shared parse results
# ============================================================================

_shared: Dict[str, ParsedKB] = {}
_shared_lock = threading.Lock()


def file_fingerprint(path: str) -> str:
    """sha256 over the path, modification time and size of ``path``."""
    stat = os.stat(path)
    return hashlib.sha256(f"{path}|{stat.st_mtime_ns}|{stat.st_size}".encode()).hexdigest()


def shared_kb_summary() -> List[Dict[str, Any]]:
    with _shared_lock:
        return [
            {"fingerprint": fingerprint[:12], "entities": len(parsed.entities)}
            for fingerprint, parsed in _shared.items()
        ]


def clear_kb_cache() -> None:
    """Forget every parsed knowledge base held in memory."""
    with _shared_lock:
        dropped = len(_shared)
        _shared.clear()
    logger.debug(f"Dropped {dropped} parsed knowledge bases from memory")


def _entity_from_record(record: Dict[str, Any]) -> Optional[Entity]:
    identifier = record.get("id") or record.get("title")
    if not identifier:
        return None
    return Entity(
        id=identifier,
        title=record.get("title") or identifier,
        description=record.get("description"),
        aliases=list(record.get("aliases") or []),
        metadata={key: value for key, value in record.items() if key not in _RESERVED_FIELDS},
    )


def parse_jsonl(path: str) -> ParsedKB:
    """Read entity records from ``path``, skipping blank lines and nameless records."""
    parsed = ParsedKB({}, [], [])
    with open(path, encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            entity = _entity_from_record(json.loads(line))
            if entity is None:
                logger.warning(f"{path}:{line_no}: entity has neither id nor title, skipped")
                continue
            parsed.entities[entity.id] = entity
            for alias in (entity.title, *entity.aliases):
                parsed.names.append(alias)
                parsed.owners.append(entity.id)
    logger.info(f"Parsed {len(parsed.entities)} entities from {path}")
    return parsed


@knowledge_bases.register("jsonl")
class JSONLKnowledgeBase:
    """
    Knowledge base backed by a JSONL file of entity records.

    Records look like ``{"id": ..., "title": ..., "description": ..., "aliases": [...]}``.
    A record without ``id`` is keyed by its title. Unknown fields end up in
    ``Entity.metadata``.

    Instances opened on the same unchanged file share one parse. With
    ``cache_dir`` set the parse is also pickled to ``<cache_dir>/kb``.
    """

    def __init__(
        self,
        path: str,
        name: Optional[str] = None,
        supports_linking: bool = True,
        cache_dir: Optional[str] = None,
    ):
        self.source_path = path
        self.name = name or Path(path).stem
        self.supports_linking = supports_linking
        self._readers = 0
        self._readers_lock = threading.Lock()
        self._parsed = self._resolve(cache_dir)

    @property
    def fingerprint(self) -> str:
        return file_fingerprint(self.source_path)

    @property
    def entities(self) -> Dict[str, Entity]:
        return self._parsed.entities

    @property
    def names(self) -> List[str]:
        return self._parsed.names

    @property
    def name_owners(self) -> List[str]:
        return self._parsed.owners

    @property
    def active_readers(self) -> int:
        with self._readers_lock:
            return self._readers

    @contextmanager
    def read(self) -> Iterator["JSONLKnowledgeBase"]:
        """Read-only handle, counted while open."""
        with self._readers_lock:
            self._readers += 1
        try:
            yield self
        finally:
            with self._readers_lock:
                self._readers -= 1

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _resolve(self, cache_dir: Optional[str]) -> ParsedKB:
        fingerprint = self.fingerprint
        with _shared_lock:
            parsed = _shared.get(fingerprint)
        if parsed is not None:
            logger.debug(f"Knowledge base {self.name} shares an earlier parse of {self.source_path}")
            return parsed

        parsed = self._read_pickle(cache_dir) if cache_dir else None
        if parsed is None:
            parsed = parse_jsonl(self.source_path)
            if cache_dir:
                self._write_pickle(cache_dir, parsed)

        with _shared_lock:
            return _shared.setdefault(fingerprint, parsed)

    def pickle_path(self, cache_dir: str) -> Path:
        directory = Path(cache_dir) / "kb"
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{self.fingerprint}.pkl"

    def _read_pickle(self, cache_dir: str) -> Optional[ParsedKB]:
        target = self.pickle_path(cache_dir)
        if not target.exists():
            return None
        try:
            with target.open("rb") as handle:
                parsed = ParsedKB(*pickle.load(handle))
        except Exception:
            logger.warning(f"Unreadable KB pickle {target}, parsing {self.source_path} again", exc_info=True)
            return None
        logger.info(f"Loaded {len(parsed.entities)} entities for {self.name} from {target.name}")
        return parsed

    def _write_pickle(self, cache_dir: str, parsed: ParsedKB) -> None:
        target = self.pickle_path(cache_dir)
        try:
            with target.open("wb") as handle:
                pickle.dump(tuple(parsed), handle, protocol=pickle.HIGHEST_PROTOCOL)
        except OSError:
            logger.warning(f"Could not write KB pickle {target}", exc_info=True)
            return
        logger.info(f"Pickled {self.name} to {target.name}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self.entities.get(entity_id)

    def all_entities(self) -> Iterable[Entity]:
        return self.entities.values()

    def match(self, query: str, limit: int = 10) -> List[Tuple[Entity, float]]:
        """Best WRatio score per entity over its title and aliases, highest first."""
        if not self.names:
            return []
        # Several names may point to the same entity, so over-fetch
        hits = process.extract(query, self.names, scorer=fuzz.WRatio, limit=limit * 4)
        best: Dict[str, float] = {}
        for _, score, position in hits:
            owner = self.name_owners[position]
            best[owner] = max(best.get(owner, -1.0), float(score))
        ranked = sorted(best.items(), key=lambda pair: pair[1], reverse=True)[:limit]
        return [(self.entities[owner], score) for owner, score in ranked]
