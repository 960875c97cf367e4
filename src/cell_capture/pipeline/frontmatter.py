"""Frontmatter parsing and cache id derivation."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

import yaml

from cell_capture.core.constants import (
    CACHE_ID_KEY,
    FRONTMATTER_KEY,
    FRONTMATTER_PARSED_KEY,
)
from cell_capture.core.exceptions import CacheIdError

logger = logging.getLogger(__name__)


def parse_frontmatter(metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Return the document's frontmatter as a dict.

    Prefers the already-parsed frontmatter in the metadata and falls back to
    the first YAML document of the raw frontmatter. Unparseable frontmatter is
    logged and treated as empty.
    """
    parsed = metadata.get(FRONTMATTER_PARSED_KEY)
    if isinstance(parsed, Mapping):
        return dict(parsed)

    raw = metadata.get(FRONTMATTER_KEY)
    if not raw:
        return {}
    try:
        first = next(yaml.safe_load_all(raw), None)
    except yaml.YAMLError as e:
        logger.warning("failed to parse frontmatter, reason: %s", e)
        return {}
    if not isinstance(first, Mapping):
        return {}
    return dict(first)


def merge_frontmatter(
    metadata: Mapping[str, Any], frontmatter: Mapping[str, Any]
) -> dict[str, Any]:
    """Copy of `metadata` with the parsed frontmatter attached."""
    return {**metadata, FRONTMATTER_PARSED_KEY: dict(frontmatter)}


def runme_section(frontmatter: Mapping[str, Any]) -> Mapping[str, Any]:
    """The ``runme`` block of a frontmatter mapping (empty if missing)."""
    section = frontmatter.get("runme")
    return section if isinstance(section, Mapping) else {}


def document_cache_id(metadata: Mapping[str, Any]) -> str:
    """Derive the cache id of a document from its metadata.

    The explicit cache id written by the serializer wins; documents that only
    carry an identity in their frontmatter use that instead.

    Raises:
        CacheIdError: If neither source yields an id.
    """
    explicit = metadata.get(CACHE_ID_KEY)
    if isinstance(explicit, str) and explicit:
        return explicit

    parsed = metadata.get(FRONTMATTER_PARSED_KEY)
    if isinstance(parsed, Mapping):
        doc_id = runme_section(parsed).get("id")
        if doc_id:
            return str(doc_id)

    raise CacheIdError("Could not resolve a cache id for the document")
