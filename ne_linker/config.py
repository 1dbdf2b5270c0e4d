from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_MAX_PREDICTIONS = 3
DEFAULT_FEATURE_NAME = "identifier"
DEFAULT_SOURCE_LABEL = "NamedEntityLinker"


@dataclass
class ComponentConfig:
    """Generic component configuration."""

    name: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LinkerConfig:
    """Top-level linker configuration."""

    knowledge_bases: List[ComponentConfig] = field(default_factory=list)
    loader: ComponentConfig = field(default_factory=lambda: ComponentConfig(name="jsonl"))
    lookup: ComponentConfig = field(default_factory=lambda: ComponentConfig(name="fuzzy"))
    tokenizer: ComponentConfig = field(default_factory=lambda: ComponentConfig(name="spacy"))
    project: str = "default"
    user: str = "anonymous"
    max_predictions: int = DEFAULT_MAX_PREDICTIONS
    feature_name: str = DEFAULT_FEATURE_NAME
    source_label: str = DEFAULT_SOURCE_LABEL
    max_workers: int = 1
    lookup_timeout: Optional[float] = None
    cache_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_predictions < 0:
            raise ValueError(
                f"max_predictions must be >= 0, got {self.max_predictions}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.lookup_timeout is not None and self.lookup_timeout <= 0:
            raise ValueError(
                f"lookup_timeout must be positive, got {self.lookup_timeout}"
            )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "LinkerConfig":
        def build(entry: Dict[str, Any]) -> ComponentConfig:
            return ComponentConfig(name=entry["name"], params=entry.get("params") or {})

        def build_section(section: str, default: str) -> ComponentConfig:
            if data.get(section) is None:
                return ComponentConfig(name=default)
            return build(data[section])

        return LinkerConfig(
            knowledge_bases=[build(kb) for kb in data.get("knowledge_bases") or []],
            loader=build_section("loader", "jsonl"),
            lookup=build_section("lookup", "fuzzy"),
            tokenizer=build_section("tokenizer", "spacy"),
            project=data.get("project", "default"),
            user=data.get("user", "anonymous"),
            max_predictions=data.get("max_predictions", DEFAULT_MAX_PREDICTIONS),
            feature_name=data.get("feature_name", DEFAULT_FEATURE_NAME),
            source_label=data.get("source_label", DEFAULT_SOURCE_LABEL),
            max_workers=data.get("max_workers", 1),
            lookup_timeout=data.get("lookup_timeout"),
            cache_dir=data.get("cache_dir"),
        )
