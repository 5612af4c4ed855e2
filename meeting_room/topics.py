"""Debate topic derivation from an opening statement: model prompt, cleanup and a local fallback."""

import re
from collections import Counter

DEFAULT_TOPIC = "Open discussion"
_MAX_TOPIC_LEN = 120

_STOP_WORDS = frozenset({
    "的", "是", "在", "有", "和", "與", "或", "但", "然而", "因此", "所以", "如果", "那麼",
    "這個", "那個", "我們", "你們", "他們",
    "the", "a", "an", "and", "or", "but", "if", "then", "so", "of", "to", "in", "on", "for",
    "with", "at", "by", "from", "as", "is", "are", "was", "were", "be", "been", "it", "its",
    "this", "that", "these", "those", "we", "you", "they", "our", "your", "their", "i", "my",
    "should", "would", "could", "will", "can", "must", "not", "no", "do", "does", "than",
})
_NON_WORD_RE = re.compile(r"[^\w\s]", re.UNICODE)
_QUOTES = "\"'“”‘’「」『』"
_PREFIX_RE = re.compile(r"^(?:meeting topic|debate topic|topic|主題|會議主題)\s*[：:]\s*", re.IGNORECASE)


def build_topic_prompt(first_statement: str, context: str | None = None) -> str:
    lines = [
        "Read the opening statement below and write a concise, accurate title for the debate.",
        "",
        "Opening statement:",
        f'"{first_statement}"',
    ]
    if context:
        lines += ["", f"Meeting background: {context}"]
    lines += [
        "",
        "Requirements:",
        "1. No more than 12 words",
        "2. Capture the core issue under discussion",
        "3. Leave out overly specific details",
        "4. Suitable as the title of a debate",
        "",
        "Reply with the title only, no explanation.",
    ]
    return "\n".join(lines)


def clean_topic(raw: str) -> str:
    """Strip surrounding quotes and 'Topic:' style prefixes; DEFAULT_TOPIC when nothing is left."""
    topic = (raw or "").strip().splitlines()[0].strip() if (raw or "").strip() else ""
    topic = _PREFIX_RE.sub("", topic).strip()
    topic = topic.strip(_QUOTES).strip()
    return topic[:_MAX_TOPIC_LEN] or DEFAULT_TOPIC


def extract_keywords(text: str, limit: int = 5) -> list[str]:
    """Most frequent non-stop words, first occurrence breaks ties."""
    words = [
        w.lower() for w in _NON_WORD_RE.sub(" ", text or "").split()
        if len(w) > 1 and w.lower() not in _STOP_WORDS
    ]
    return [word for word, _ in Counter(words).most_common(limit)]


def local_topic(statement: str) -> str:
    keywords = extract_keywords(statement)
    if not keywords:
        return DEFAULT_TOPIC
    return "Discussion: " + ", ".join(keywords[:3])
