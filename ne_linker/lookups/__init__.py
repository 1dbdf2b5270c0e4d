"""Candidate lookups."""

from .fuzzy import FuzzyCandidateLookup  # noqa: F401
