"""CLI entry point for Lisa.

Runs an interview in the terminal:

    lisa "Add user authentication"
    lisa --resume
    lisa --list-providers
"""

import asyncio
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from lisa import __version__
from lisa.config import ConfigFileError, LisaSettings, get_settings, load_project_config
from lisa.context import load_context_files
from lisa.errors import InterviewError, classify_error
from lisa.exploration import explore_codebase
from lisa.logging import configure_logging
from lisa.orchestrator import (
    InterviewConfig,
    InterviewOrchestrator,
    OrchestratorEvent,
    create_orchestrator_from_state,
)
from lisa.prd import PRDValidationError, write_prd
from lisa.prompt import ask_free_text, ask_question, render_ai_text
from lisa.providers import (
    PROVIDER_NAMES,
    ProviderNotAvailableError,
    ProviderNotFoundError,
    build_default_registry,
    get_validated_provider,
)
from lisa.state import StateFileError, StateStore
from lisa.telemetry import create_metrics, setup_telemetry

console = Console()


def _print_error(error: object) -> None:
    console.print()
    console.print(classify_error(error).format(), style="red", markup=False)


def _on_event(event: OrchestratorEvent) -> None:
    if event.type == "phase_change" and event.phase:
        console.print(f"[dim]Phase: {event.phase}[/dim]")


@click.command()
@click.argument("feature", required=False)
@click.option("-r", "--resume", is_flag=True, help="Resume the interrupted interview")
@click.option(
    "-f",
    "--first-principles",
    is_flag=True,
    help="Challenge the feature's assumptions before discussing details",
)
@click.option(
    "-c",
    "--context",
    "context_files",
    multiple=True,
    type=click.Path(),
    help="Reference file to include (repeatable)",
)
@click.option(
    "-p",
    "--provider",
    type=click.Choice(PROVIDER_NAMES),
    default=None,
    help="AI provider (default: defaultProvider from lisa/config.yaml)",
)
@click.option(
    "--no-explore",
    is_flag=True,
    help="Do not summarize the current project for the AI",
)
@click.option("--list-providers", is_flag=True, help="Show installed AI providers")
@click.version_option(__version__, prog_name="lisa")
def main(
    feature: str | None,
    resume: bool,
    first_principles: bool,
    context_files: tuple[str, ...],
    provider: str | None,
    no_explore: bool,
    list_providers: bool,
) -> None:
    """Interview an AI assistant to turn FEATURE into a PRD."""
    load_dotenv()
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json, settings.log_file)

    if list_providers:
        asyncio.run(_list_providers(settings))
        return

    if not resume and not feature:
        raise click.UsageError("FEATURE is required unless --resume is given")

    try:
        exit_code = asyncio.run(
            _run_interview(
                base_dir=Path.cwd(),
                settings=settings,
                feature=feature,
                resume=resume,
                first_principles=first_principles,
                context_files=list(context_files),
                provider_name=provider,
                explore=not no_explore,
            )
        )
    except KeyboardInterrupt:
        _print_error(InterviewError.user_cancelled())
        raise SystemExit(130) from None

    if exit_code:
        raise SystemExit(exit_code)


async def _list_providers(settings: LisaSettings) -> None:
    registry = build_default_registry(settings.response_timeout_seconds)
    table = Table(title="AI Providers")
    table.add_column("Name")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Version")

    for name in registry.list():
        provider = registry.get(name)
        available = await provider.is_available()
        version = await provider.get_version() if available else None
        table.add_row(
            name,
            provider.display_name,
            "[green]installed[/green]" if available else "[red]not found[/red]",
            version or "-",
        )
    console.print(table)


async def _run_interview(
    base_dir: Path,
    settings: LisaSettings,
    feature: str | None,
    resume: bool,
    first_principles: bool,
    context_files: list[str],
    provider_name: str | None,
    explore: bool = True,
) -> int:
    """Run one interview to completion. Returns the process exit code."""
    store = StateStore(base_dir)
    try:
        project = load_project_config(base_dir)
    except ConfigFileError as e:
        _print_error(e)
        return 1

    state = None
    if resume:
        try:
            state = await store.load()
        except StateFileError as e:
            _print_error(e)
            return 1
        if state is None:
            console.print("[yellow]No interview to resume.[/yellow]")
            console.print('Start one with: lisa "<feature description>"')
            return 1
        console.print(
            f"Resuming: [bold]{escape(state.feature)}[/bold] "
            f"({len(state.history)} answer(s) so far)"
        )

    name = state.provider if state else (provider_name or project.default_provider)
    paths = list(state.context_files) if state else context_files
    context = load_context_files(paths, base_dir)
    for failed in context.failed:
        console.print(f"[yellow]Skipping context file:[/yellow] {escape(failed.error)}")

    registry = build_default_registry(settings.response_timeout_seconds)
    try:
        provider = await get_validated_provider(registry, name)
    except (ProviderNotFoundError, ProviderNotAvailableError) as e:
        _print_error(e)
        return 1

    codebase_summary = None
    if explore:
        with console.status("Analyzing codebase..."):
            exploration = await asyncio.to_thread(explore_codebase, base_dir)
        codebase_summary = exploration.summary

    tracer, meter = setup_telemetry(settings)
    options = {
        "retry": settings.retry_config(),
        "tracer": tracer,
        "metrics": create_metrics(meter),
    }
    if state is not None:
        orchestrator = create_orchestrator_from_state(
            state,
            registry,
            store,
            codebase_summary=codebase_summary,
            context_content=context.content or None,
            **options,
        )
    else:
        config = InterviewConfig(
            feature=feature or "",
            provider=name,
            first_principles=first_principles,
            context_files=[f.path for f in context.loaded],
            codebase_summary=codebase_summary,
            context_content=context.content or None,
        )
        orchestrator = InterviewOrchestrator(config, registry, store, **options)
    orchestrator.on_event(_on_event)

    try:
        with console.status(f"Starting {provider.display_name}..."):
            turn = await orchestrator.initialize()

        while not turn.is_complete:
            render_ai_text(console, turn.response.text)
            question = turn.response.question
            answer = (
                ask_question(console, question)
                if question is not None
                else ask_free_text(console)
            )
            with console.status(f"Waiting for {provider.display_name}..."):
                turn = await orchestrator.send_user_response(answer)

        render_ai_text(console, turn.response.text)
        result = await orchestrator.complete()
        if not result.success or result.completion is None:
            console.print(result.error, style="red", markup=False)
            return 1

        output_dir = base_dir / project.output_directory
        written = write_prd(result.completion, output_dir, orchestrator.state.feature)
        await store.clear()
    except InterviewError as e:
        _print_error(e)
        return 1
    except PRDValidationError as e:
        console.print(str(e), style="red", markup=False)
        console.print('Your answers are saved. Run "lisa --resume" to continue.')
        return 1
    finally:
        await orchestrator.cleanup()

    console.print()
    console.print(
        Panel(
            f"[bold]{escape(written.markdown_path.stem)}[/bold]\n\n"
            f"Markdown: {escape(str(written.markdown_path))}\n"
            f"JSON:     {escape(str(written.json_path))}",
            title="PRD generated",
            border_style="green",
        )
    )
    return 0
