"""Debate brief inbox: folder scanning, front matter parsing, and archive logic."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import frontmatter

logger = logging.getLogger(__name__)


@dataclass
class BriefOptions:
    """Per-brief overrides read from front matter; None means not set."""

    personas: list[str] | None = None
    rounds: int | None = None
    threshold: float | None = None
    timeout: int | None = None


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def parse_file(file_path: Path) -> tuple[str, dict[str, Any]]:
    """Parse a markdown brief with optional YAML front matter.

    Returns:
        (topic, metadata) where topic is the body text. If there is no
        front matter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    return post.content.strip(), dict(post.metadata)


def brief_options(metadata: dict[str, Any]) -> BriefOptions:
    """Typed overrides from front matter keys personas, rounds, threshold, timeout.

    Raises:
        ValueError: If a value has the wrong type.
    """
    personas = metadata.get("personas")
    if isinstance(personas, str):
        personas = [p.strip() for p in personas.split(",") if p.strip()]
    elif personas is not None:
        personas = [str(p) for p in personas]

    return BriefOptions(
        personas=personas or None,
        rounds=int(metadata["rounds"]) if "rounds" in metadata else None,
        threshold=float(metadata["threshold"]) if "threshold" in metadata else None,
        timeout=int(metadata["timeout"]) if "timeout" in metadata else None,
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix.

    Args:
        file_path: Source file to archive.
        archive_dir: Destination directory.
        failed: If True, prefix filename with "FAILED_".

    Returns:
        Path to the archived file.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    logger.debug("Archived %s -> %s", file_path.name, dest)
    return dest
