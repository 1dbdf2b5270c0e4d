"""
Named entity linker package.

Merges tokens tagged as named entities into entity spans and links each
span to ranked identifier suggestions drawn from the project's knowledge
bases.
"""

__all__ = [
    "LinkerConfig",
    "LinkingPipeline",
    "NamedEntityLinker",
]

__version__ = "0.1.0"

from .config import LinkerConfig  # noqa: E402
from .pipeline import LinkingPipeline  # noqa: E402
from .recommender import NamedEntityLinker  # noqa: E402
