import re
from typing import Any, Dict, Iterable, List, Optional

from doctor_chat.models.message import GroundingReference
from doctor_chat.utils.logger import logger

DEFAULT_TITLE = "Google Maps"

# Only references that open a map are surfaced (clinics, hospitals).
MAP_URI_PATTERN = re.compile(
    r"google\.[a-z.]+/maps|maps\.google\.[a-z.]+|maps\.app\.goo\.gl|goo\.gl/maps",
    re.IGNORECASE,
)


def is_map_uri(uri: Optional[str]) -> bool:
    return bool(uri) and MAP_URI_PATTERN.search(uri) is not None


def filter_map_references(references: Iterable[GroundingReference]) -> List[GroundingReference]:
    """Keep map references only, in their original order."""
    return [ref for ref in references if is_map_uri(ref.uri)]


def _chunks(metadata: Dict[str, Any]) -> List[Dict[str, Any]]:
    chunks = metadata.get("grounding_chunks")
    if chunks is None:
        chunks = metadata.get("groundingChunks")
    return [chunk for chunk in chunks or [] if isinstance(chunk, dict)]


def _chunk_to_reference(chunk: Dict[str, Any]) -> Optional[GroundingReference]:
    # Maps grounding returns a "maps" source; older responses put map links under "web".
    for source_key in ("maps", "web"):
        source = chunk.get(source_key)
        if isinstance(source, dict) and source.get("uri"):
            return GroundingReference(
                title=source.get("title") or DEFAULT_TITLE,
                uri=source["uri"],
            )
    return None


def extract_map_references(metadata: Optional[Dict[str, Any]]) -> List[GroundingReference]:
    """
    Pull map references out of raw grounding metadata.
    Missing metadata or no map entries both mean "no grounding" and give an empty list.
    """
    if not metadata:
        return []

    references = []
    for chunk in _chunks(metadata):
        reference = _chunk_to_reference(chunk)
        if reference is not None:
            references.append(reference)

    map_references = filter_map_references(references)
    logger.debug(f"Grounding: {len(map_references)} map reference(s) out of {len(references)} chunk(s)")
    return map_references
