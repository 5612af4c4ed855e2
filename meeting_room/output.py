"""Rich console output and markdown transcript save for debates."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from meeting_room.models import ConsensusData, DebateResult, MeetingRoom, Persona, Statement
from meeting_room.voting import VotingStatistics

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_REASON_LABELS = {
    "consensus": "consensus reached",
    "max_rounds": "maximum rounds reached",
    "manual_stop": "stopped manually",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "debate"


def _score_bar(score: int) -> str:
    return "█" * score + "░" * (10 - score)


def print_statement(statement: Statement, color: str | None = None) -> None:
    """Print one persona statement as a panel."""
    console.print(
        Panel(
            Markdown(statement.content),
            title=f"[bold]{statement.persona_name}[/bold]",
            subtitle=f"Round {statement.round} | {_score_bar(statement.tendency_score)} {statement.tendency_score}/10",
            border_style=color or "dim",
        )
    )
    for i, source in enumerate(statement.sources, start=1):
        console.print(Text(f"  [{i}] {source.title} - {source.url}", style="dim"))


def print_consensus(consensus: ConsensusData, round_number: int | None = None) -> None:
    label = f"Round {round_number} consensus" if round_number is not None else "Consensus"
    status = "[green]reached[/green]" if consensus.consensus_reached else "[yellow]not reached[/yellow]"
    console.print(
        f"[bold]{label}:[/bold] support {consensus.support_rate:.0%}, "
        f"oppose {consensus.oppose_rate:.0%} (threshold {consensus.threshold:.0%}), {status}"
    )


def print_result(result: DebateResult) -> None:
    """Print the final result with a per-participant table."""
    console.print(Rule("[bold green]Debate Result[/bold green]"))
    console.print(
        Text(
            f"Topic: {result.topic} | "
            f"Ended: {_REASON_LABELS.get(result.reason, result.reason)} | "
            f"Rounds: {result.total_rounds} | "
            f"Duration: {result.duration_ms / 1000:.1f}s | "
            f"Consensus: {result.overall_consensus}",
            style="dim",
        )
    )
    print_consensus(result.consensus)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Persona")
    table.add_column("Statements", justify="right")
    table.add_column("Avg tendency", justify="right")
    table.add_column("Final score", justify="right")
    for p in result.participants:
        final = result.consensus.final_scores.get(p.persona_id)
        table.add_row(p.name, str(p.statements), f"{p.average_tendency:.1f}", "-" if final is None else str(final))
    console.print(table)

    if result.consensus.recommendation:
        console.print(Markdown(f"**Recommendation:** {result.consensus.recommendation}"))
    for step in result.consensus.next_steps or []:
        console.print(f"  - {step}")


def print_vote_summary(stats: VotingStatistics) -> None:
    top = f"{stats.top_option[1]} (avg {stats.top_option[2]:.1f})" if stats.top_option else "-"
    console.print(
        f"[bold]Final vote:[/bold] {stats.voted_participants}/{stats.total_participants} voted, "
        f"average {stats.average_score:.1f}, leading option: {top}"
    )


def print_personas(personas: list[Persona]) -> None:
    table = Table(title="Available personas", show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("Temp", justify="right")
    table.add_column("Focus")
    for p in personas:
        table.add_row(p.id, p.name, p.role, f"{p.temperature:.1f}", ", ".join(p.rag_focus))
    console.print(table)


def save_to_file(
    room: MeetingRoom,
    result: DebateResult,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Save the full debate transcript as a markdown file.

    Args:
        room: The debated room, statements included.
        result: The final DebateResult.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(room.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    consensus = result.consensus
    lines: list[str] = [
        f"# Meeting Room Debate: {room.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Participants:** {', '.join(p.name for p in room.participants)}",
        f"**Rounds:** {result.total_rounds} of {room.settings.max_rounds}",
        f"**Ended:** {_REASON_LABELS.get(result.reason, result.reason)}",
        f"**Duration:** {result.duration_ms / 1000:.1f}s",
        "",
        "---",
        "",
    ]

    if room.search_results and room.search_results[-1].results:
        lines += ["## Background Sources", ""]
        for i, source in enumerate(room.search_results[-1].results, start=1):
            lines.append(f"{i}. [{source.title}]({source.url})")
        lines.append("")

    for round_number in range(1, result.total_rounds + 1):
        statements = [s for s in room.statements if s.round == round_number]
        if not statements:
            continue
        lines += [f"## Round {round_number}", ""]
        for stmt in statements:
            lines += [f"### {stmt.persona_name} ({stmt.tendency_score}/10)", "", stmt.content, ""]
            if stmt.sources:
                lines.append("*Sources: " + ", ".join(f"[{s.title}]({s.url})" for s in stmt.sources) + "*")
                lines.append("")

    lines += [
        "## Consensus",
        "",
        f"- Support rate: {consensus.support_rate:.1%}",
        f"- Oppose rate: {consensus.oppose_rate:.1%}",
        f"- Threshold: {consensus.threshold:.0%}",
        f"- Reached: {'yes' if consensus.consensus_reached else 'no'}",
        f"- Overall: {result.overall_consensus}",
        "",
    ]
    if consensus.recommendation:
        lines += [f"**Recommendation:** {consensus.recommendation}", ""]
        lines += [f"- {step}" for step in consensus.next_steps or []]
        lines.append("")

    lines += ["## Participants", "", "| Persona | Statements | Avg tendency |", "|---|---|---|"]
    lines += [f"| {p.name} | {p.statements} | {p.average_tendency:.1f} |" for p in result.participants]
    lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
