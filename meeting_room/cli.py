"""Click CLI: config loading, provider selection, debate run, streaming output and persistence."""

import asyncio
import dataclasses
import logging
import sys
import time
import uuid
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from meeting_room.errors import DebateError
from meeting_room.events import EventKind, OrchestratorEvent
from meeting_room.generation import GenerationClient
from meeting_room.healthcheck import HealthStatus, run_health_checks
from meeting_room.inbox import archive_file, brief_options, ensure_dirs, parse_file, scan_inbox
from meeting_room.models import MeetingRoom, MeetingSettings, Persona
from meeting_room.orchestrator import DebateOrchestrator
from meeting_room.output import (
    console,
    print_consensus,
    print_personas,
    print_result,
    print_statement,
    print_vote_summary,
    save_to_file,
)
from meeting_room.providers.anthropic import AnthropicProvider
from meeting_room.providers.base import AIProvider, ProviderError
from meeting_room.providers.gemini import GeminiProvider
from meeting_room.providers.openai_provider import OpenAIProvider
from meeting_room.storage import AppState, StateFileError, default_state, load_state, save_state
from meeting_room.voting import ConsensusManager, VotingMethod, VotingStatistics

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "claude": AnthropicProvider,
}


@dataclasses.dataclass
class RunOptions:
    persona_ids: list[str]
    settings: MeetingSettings
    language: str
    output_dir: Path
    state_file: Path


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in config.available_providers:
        if name not in PROVIDER_CLASSES:
            logger.warning("Provider '%s' unknown, skipping", name)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[name](config.models[name])
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _pick_provider(providers: dict[str, AIProvider], preferred: str) -> AIProvider:
    """Preferred provider when available, else the first working one (gemini first: it can ground)."""
    if preferred in providers:
        return providers[preferred]
    fallback = providers.get("gemini") or next(iter(providers.values()))
    logger.warning("Provider '%s' unavailable, using '%s'", preferred, fallback.name())
    return fallback


def _check_and_filter_providers(all_providers: dict[str, AIProvider]) -> dict[str, AIProvider]:
    """Run health checks, print results, and ask what to do on failures.

    Returns the working providers. Exits if the user declines to continue or
    none pass.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, HealthStatus] = asyncio.run(run_health_checks(all_providers))

    failed_names: list[str] = []
    for name in sorted(results):
        status = results[name]
        if status.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({status.latency_sec:.1f}s)[/dim]")
            continue
        short_err = status.error.splitlines()[0][:120] if status.error else "unknown error"
        hint = " [dim](transient, may recover)[/dim]" if status.retryable else ""
        console.print(f"  [red]FAIL[/red] {name} ({status.kind.value}): {short_err}{hint}")
        failed_names.append(name)

    if not failed_names:
        console.print()
        return all_providers

    working = {n: p for n, p in all_providers.items() if n not in failed_names}
    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}")
    if not click.confirm(f"Continue with {', '.join(sorted(working))}?", default=True):
        sys.exit(0)

    console.print()
    return working


def _select_personas(available: list[Persona], persona_ids: list[str]) -> list[Persona]:
    """Resolve ids in the given order.

    Raises:
        ValueError: If an id is unknown.
    """
    by_id = {p.id: p for p in available}
    unknown = [pid for pid in persona_ids if pid not in by_id]
    if unknown:
        raise ValueError(f"Unknown persona id(s): {', '.join(unknown)}")
    return [dataclasses.replace(by_id[pid], is_active=True) for pid in persona_ids]


def _meeting_settings(
    base: MeetingSettings,
    rounds: int | None,
    threshold: float | None,
    timeout: int | None,
) -> MeetingSettings:
    overrides: dict = {}
    if rounds is not None:
        overrides["max_rounds"] = rounds
    if threshold is not None:
        overrides["consensus_threshold"] = threshold
    if timeout is not None:
        overrides["timeout_per_round"] = timeout or None
    return dataclasses.replace(base, **overrides)


def _final_vote(room: MeetingRoom) -> VotingStatistics | None:
    """Weighted vote over each participant's latest statement."""
    manager = ConsensusManager()
    session = manager.create_session(room.topic, VotingMethod.WEIGHTED, room.participants)
    manager.start_session(session.id)
    latest = {s.persona_id: s for s in room.statements}
    manager.submit_votes_from_statements(session.id, list(latest.values()))
    return manager.statistics(session.id)


def _autosave_due(last_saved: float | None, now: float, interval_sec: int) -> bool:
    """First round always saves; later rounds once interval_sec has passed (0 saves every round)."""
    return last_saved is None or now - last_saved >= interval_sec


def _autosave(state: AppState, room: MeetingRoom, state_file: Path) -> None:
    state.upsert_room(room)
    try:
        save_state(state, state_file)
    except OSError as exc:
        logger.warning("Auto-save to %s failed: %s", state_file, exc)


async def _stream_events(
    queue: asyncio.Queue[OrchestratorEvent],
    room: MeetingRoom,
    state: AppState,
    options: RunOptions,
    progress: Progress,
    task_id: int,
) -> None:
    """Render orchestrator events as they arrive; auto-save at round ends, at most every auto_save_interval."""
    colors = {p.id: p.color for p in room.participants}
    last_saved: float | None = None
    while True:
        event = await queue.get()
        try:
            if event.kind is EventKind.STATEMENT_ADDED:
                print_statement(event.payload, colors.get(event.payload.persona_id))
            elif event.kind is EventKind.PROGRESS:
                progress.update(task_id, description=f"Round {event.payload.current}/{event.payload.total}...")
            elif event.kind is EventKind.ROUND_COMPLETE:
                print_consensus(event.payload["consensus"], event.payload["round"])
                now = time.monotonic()
                if state.user_preferences.auto_save and _autosave_due(last_saved, now, room.settings.auto_save_interval):
                    _autosave(state, room, options.state_file)
                    last_saved = now
            elif event.kind is EventKind.ERROR:
                console.print(f"[bold red]Error:[/bold red] {event.payload['message']}: {event.payload['error']}")
        except Exception:
            logger.exception("Failed to render %s event", event.kind.value)
        finally:
            queue.task_done()


async def _run_single(
    topic: str,
    client: GenerationClient,
    config: AppConfig,
    state: AppState,
    options: RunOptions,
    slug_override: str | None = None,
) -> Path:
    """Run one debate and return the saved transcript path."""
    participants = _select_personas(state.available_personas, options.persona_ids)
    now = time.time()
    room = MeetingRoom(
        id=f"room_{uuid.uuid4().hex[:12]}",
        name=topic[:40] or "Untitled meeting",
        topic=topic,
        participants=participants,
        settings=options.settings,
        created_at=now,
        updated_at=now,
    )

    console.print(
        f"\n[bold cyan]Meeting Room[/bold cyan]: {len(participants)} personas, "
        f"up to {room.settings.max_rounds} rounds via {client.provider.name()}"
    )
    console.print(f"Participants: {', '.join(p.name for p in participants)}")
    console.print(f"Topic: [italic]{topic[:80] or '(derived from the first statement)'}[/italic]\n")

    orchestrator = DebateOrchestrator(
        client,
        turn_delay_sec=config.defaults.turn_delay_sec,
        language=options.language,
    )
    queue = orchestrator.subscribe()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Searching topic...", total=None)
        consumer = asyncio.create_task(_stream_events(queue, room, state, options, progress, task_id))
        try:
            await orchestrator.initialize(room)
            result = await orchestrator.start()
        finally:
            await queue.join()
            consumer.cancel()
            orchestrator.unsubscribe(queue)
            _autosave(state, room, options.state_file)

    if result is None:
        raise DebateError("Debate ended without a result")

    print_result(result)
    stats = _final_vote(room)
    if stats:
        print_vote_summary(stats)

    saved_path = save_to_file(room, result, options.output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    client: GenerationClient,
    config: AppConfig,
    state: AppState,
    cli_options: RunOptions,
    inbox_dir: Path,
    rounds_cli: int | None,
    threshold_cli: float | None,
    timeout_cli: int | None,
    personas_cli: list[str] | None,
) -> None:
    """Process every brief in the inbox folder, oldest first.

    Precedence for per-brief settings: CLI flag > front matter > config default.
    """
    archive_dir = config.inbox.archive_dir
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            topic, meta = parse_file(file_path)
            brief = brief_options(meta)
            options = dataclasses.replace(
                cli_options,
                persona_ids=personas_cli or brief.personas or cli_options.persona_ids,
                settings=_meeting_settings(
                    cli_options.settings,
                    rounds_cli if rounds_cli is not None else brief.rounds,
                    threshold_cli if threshold_cli is not None else brief.threshold,
                    timeout_cli if timeout_cli is not None else brief.timeout,
                ),
            )
            saved = await _run_single(topic, client, config, state, options, slug_override=file_path.stem)
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True), help="Read the topic from a .md file")
@click.option("--personas", default=None, help="Comma-separated persona ids (default: from config)")
@click.option("--rounds", default=None, type=click.IntRange(1, 20), help="Maximum debate rounds")
@click.option("--threshold", default=None, type=click.FloatRange(0.5, 1.0), help="Consensus threshold")
@click.option("--timeout", default=None, type=int, help="Per-speaker timeout in ms (0 disables)")
@click.option("--provider", "provider_name", default=None, help="Generation provider (default: from config)")
@click.option("--language", type=click.Choice(["en", "zh-TW"]), default=None, help="Prompt language")
@click.option("--output", "output_path", default=None, help="Transcript directory (default: from config)")
@click.option("--state-file", default=None, help="Persisted state JSON (default: from config)")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Process all .md briefs in the inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None, help="Override inbox folder path")
@click.option("--list-personas", is_flag=True, default=False, help="List available personas and exit")
@click.option("--skip-health-check", is_flag=True, default=False, help="Skip the API connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    topic_file: str | None,
    personas: str | None,
    rounds: int | None,
    threshold: float | None,
    timeout: int | None,
    provider_name: str | None,
    language: str | None,
    output_path: str | None,
    state_file: str | None,
    use_inbox: bool,
    inbox_dir_override: str | None,
    list_personas: bool,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """Meeting Room -- multi-persona AI debate with consensus detection.

    \b
    Examples:
      meeting-room "Should we move our data centre to renewable energy?"
      meeting-room "Adopt a four-day work week?" --personas ceo-001,cfo-001,legal-001 --rounds 3
      meeting-room --file brief.md --threshold 0.8 --language zh-TW
      meeting-room --inbox
      meeting-room --list-personas
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    state_path = Path(state_file) if state_file else config.defaults.state_file
    try:
        state = load_state(state_path, default_state(config.personas, config.preferences))
    except StateFileError as exc:
        console.print(f"[bold red]State error:[/bold red] {exc}")
        sys.exit(1)
    if not state.available_personas:
        state.available_personas = list(config.personas)

    if list_personas:
        print_personas(state.available_personas)
        return

    if timeout is not None and 0 < timeout < 30_000:
        console.print("[bold red]Error:[/bold red] --timeout must be 0 or at least 30000 ms.")
        sys.exit(1)

    all_providers = _build_all_providers(config)
    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        all_providers = _check_and_filter_providers(all_providers)

    provider = _pick_provider(all_providers, provider_name or config.defaults.provider)
    effective_language = language or state.user_preferences.language or config.defaults.language
    client = GenerationClient(
        provider,
        generation=config.generation,
        retry=config.retry,
        cache_config=config.cache,
        language=effective_language,
    )

    persona_ids = [p.strip() for p in personas.split(",") if p.strip()] if personas else None
    base_settings = state.user_preferences.default_meeting_settings or config.meeting
    options = RunOptions(
        persona_ids=persona_ids or list(config.defaults.default_panel),
        settings=_meeting_settings(base_settings, rounds, threshold, timeout),
        language=effective_language,
        output_dir=Path(output_path) if output_path else config.defaults.output_dir,
        state_file=state_path,
    )

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        asyncio.run(
            _run_inbox(
                client=client,
                config=config,
                state=state,
                cli_options=dataclasses.replace(options, settings=base_settings),
                inbox_dir=inbox_dir,
                rounds_cli=rounds,
                threshold_cli=threshold,
                timeout_cli=timeout,
                personas_cli=persona_ids,
            )
        )
        return

    if topic_file:
        topic_text, _ = parse_file(Path(topic_file))
    elif topic is not None:
        topic_text = topic.strip()
    else:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument, --file, or --inbox.")
        sys.exit(1)

    try:
        asyncio.run(_run_single(topic_text, client, config, state, options))
    except (DebateError, ProviderError, ValueError) as exc:
        console.print(f"[bold red]Debate failed:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
