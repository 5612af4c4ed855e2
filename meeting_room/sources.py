"""Turn search-grounding metadata into SourceReference lists and inline citations.

Works on the grounding metadata objects returned by google-genai
(``candidate.grounding_metadata``); attributes are read defensively because
every field in that payload is optional.
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from meeting_room.models import SourceReference

logger = logging.getLogger(__name__)

DEFAULT_RELEVANCE = 0.5
MIN_RELEVANCE = 0.3


def _chunk_web(chunk: Any) -> tuple[str, str]:
    web = getattr(chunk, "web", None)
    if web is None:
        return "", ""
    return getattr(web, "uri", None) or "", getattr(web, "title", None) or ""


def _chunk_relevance(metadata: Any) -> dict[int, float]:
    """Best confidence score any grounding support assigns to each chunk index."""
    relevance: dict[int, float] = {}
    for support in getattr(metadata, "grounding_supports", None) or []:
        indices = getattr(support, "grounding_chunk_indices", None) or []
        scores = getattr(support, "confidence_scores", None) or []
        for i, chunk_index in enumerate(indices):
            if i < len(scores) and scores[i] is not None:
                relevance[chunk_index] = max(relevance.get(chunk_index, 0.0), float(scores[i]))
    return relevance


def _chunk_snippets(metadata: Any) -> dict[int, str]:
    snippets: dict[int, str] = {}
    for support in getattr(metadata, "grounding_supports", None) or []:
        segment = getattr(support, "segment", None)
        text = (getattr(segment, "text", None) or "").strip() if segment else ""
        if not text:
            continue
        for chunk_index in getattr(support, "grounding_chunk_indices", None) or []:
            snippets.setdefault(chunk_index, text)
    return snippets


def process_grounding_metadata(metadata: Any) -> list[SourceReference]:
    """Web chunks as sources, most relevant first. Chunks without a URI are skipped."""
    if metadata is None:
        return []
    chunks = getattr(metadata, "grounding_chunks", None) or []
    relevance = _chunk_relevance(metadata)
    snippets = _chunk_snippets(metadata)

    sources: list[SourceReference] = []
    for index, chunk in enumerate(chunks):
        uri, title = _chunk_web(chunk)
        if not uri:
            continue
        sources.append(SourceReference(
            url=uri,
            title=title or f"Source {index + 1}",
            snippet=snippets.get(index, ""),
            relevance_score=relevance.get(index, DEFAULT_RELEVANCE),
        ))

    sources.sort(key=lambda s: s.relevance_score or 0.0, reverse=True)
    return sources


def add_inline_citations(text: str, metadata: Any) -> str:
    """Insert markdown citation links after each grounded segment.

    Segment end indices are UTF-8 byte offsets, so insertion happens on the
    encoded text, last segment first so earlier offsets stay valid.
    """
    if metadata is None:
        return text
    supports = getattr(metadata, "grounding_supports", None) or []
    chunks = getattr(metadata, "grounding_chunks", None) or []
    if not supports or not chunks:
        return text

    def end_index(support: Any) -> int:
        segment = getattr(support, "segment", None)
        return (getattr(segment, "end_index", None) or 0) if segment else 0

    encoded = text.encode("utf-8")
    for support in sorted(supports, key=end_index, reverse=True):
        segment = getattr(support, "segment", None)
        end = getattr(segment, "end_index", None) if segment else None
        indices = getattr(support, "grounding_chunk_indices", None) or []
        if end is None or not indices or end > len(encoded):
            continue

        links = []
        for i in indices:
            if i >= len(chunks):
                continue
            uri, title = _chunk_web(chunks[i])
            if uri:
                links.append(f'[{i + 1}]({uri} "{title or f"Source {i + 1}"}")')
        if links:
            citation = (" " + ", ".join(links)).encode("utf-8")
            encoded = encoded[:end] + citation + encoded[end:]

    return encoded.decode("utf-8", errors="replace")


def extract_search_queries(metadata: Any) -> list[str]:
    if metadata is None:
        return []
    return list(getattr(metadata, "web_search_queries", None) or [])


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_sources(sources: list[SourceReference]) -> list[SourceReference]:
    """Keep sources with a title, an http(s) URL and relevance >= 0.3 when scored."""
    valid = []
    for source in sources:
        if not source.url or not source.title:
            continue
        if not _is_valid_url(source.url):
            logger.debug("Dropping source with invalid URL: %s", source.url)
            continue
        if source.relevance_score is not None and source.relevance_score < MIN_RELEVANCE:
            continue
        valid.append(source)
    return valid


def format_sources_for_display(sources: list[SourceReference]) -> str:
    if not sources:
        return "No sources"
    return "\n".join(
        f"{i}. [{s.title}]({s.url}) - {urlparse(s.url).hostname or 'unknown'}"
        for i, s in enumerate(sources, start=1)
    )


@dataclass
class SourceSummary:
    total_sources: int
    domains: list[str]
    average_relevance: float


def summarize_sources(sources: list[SourceReference]) -> SourceSummary:
    domains = list(dict.fromkeys(urlparse(s.url).hostname or "unknown" for s in sources))
    scores = [s.relevance_score if s.relevance_score is not None else DEFAULT_RELEVANCE for s in sources]
    return SourceSummary(
        total_sources=len(sources),
        domains=domains,
        average_relevance=sum(scores) / len(scores) if scores else 0.0,
    )
