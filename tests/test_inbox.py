"""Unit tests for meeting_room/inbox.py, no API calls."""

import textwrap
from pathlib import Path

import pytest

from meeting_room.inbox import archive_file, brief_options, ensure_dirs, parse_file, scan_inbox


def test_parse_file_no_frontmatter(tmp_path: Path) -> None:
    """File without frontmatter returns full content and empty metadata."""
    f = tmp_path / "brief.md"
    f.write_text("Should we adopt a four-day week?", encoding="utf-8")
    topic, metadata = parse_file(f)
    assert topic == "Should we adopt a four-day week?"
    assert metadata == {}


def test_parse_file_with_frontmatter(tmp_path: Path) -> None:
    """File with frontmatter returns metadata keys and body content."""
    f = tmp_path / "brief.md"
    f.write_text(
        textwrap.dedent("""\
            ---
            personas: ceo-001,cfo-001
            rounds: 2
            threshold: 0.8
            ---
            Move the data centre to renewable energy?
        """),
        encoding="utf-8",
    )
    topic, metadata = parse_file(f)
    assert topic == "Move the data centre to renewable energy?"
    assert metadata["personas"] == "ceo-001,cfo-001"
    assert metadata["rounds"] == 2
    assert metadata["threshold"] == 0.8


def test_brief_options_comma_string():
    options = brief_options({"personas": "ceo-001, cfo-001,", "rounds": "3"})
    assert options.personas == ["ceo-001", "cfo-001"]
    assert options.rounds == 3
    assert options.threshold is None
    assert options.timeout is None


def test_brief_options_list_and_numbers():
    options = brief_options({"personas": ["cto-001", "legal-001"], "threshold": 0.9, "timeout": 60000})
    assert options.personas == ["cto-001", "legal-001"]
    assert options.threshold == 0.9
    assert options.timeout == 60000


def test_brief_options_empty():
    options = brief_options({})
    assert options.personas is None
    assert options.rounds is None


def test_brief_options_bad_value():
    with pytest.raises(ValueError):
        brief_options({"rounds": "many"})


def test_archive_file_success(tmp_path: Path) -> None:
    """archive_file() moves file to archive dir with timestamp prefix."""
    inbox = tmp_path / "inbox"
    archive = tmp_path / "archive"
    ensure_dirs(inbox, archive)

    src = inbox / "my-brief.md"
    src.write_text("A topic", encoding="utf-8")

    dest = archive_file(src, archive)

    assert not src.exists()
    assert dest.exists()
    assert dest.parent == archive
    assert dest.name.endswith("_my-brief.md")
    assert not dest.name.startswith("FAILED_")


def test_archive_file_failed(tmp_path: Path) -> None:
    """archive_file(failed=True) prefixes filename with FAILED_."""
    inbox = tmp_path / "inbox"
    archive = tmp_path / "archive"
    ensure_dirs(inbox, archive)

    src = inbox / "broken.md"
    src.write_text("Bad brief", encoding="utf-8")

    dest = archive_file(src, archive, failed=True)

    assert not src.exists()
    assert dest.name.startswith("FAILED_")
    assert "broken.md" in dest.name


def test_scan_inbox_only_markdown(tmp_path: Path) -> None:
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    (inbox / "a.md").write_text("A", encoding="utf-8")
    (inbox / "notes.txt").write_text("ignored", encoding="utf-8")
    assert [p.name for p in scan_inbox(inbox)] == ["a.md"]


def test_scan_inbox_empty(tmp_path: Path) -> None:
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    assert scan_inbox(inbox) == []
