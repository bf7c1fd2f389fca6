"""Main CLI application using Typer."""
import asyncio
import contextlib
import signal

import httpx
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..backends import process_runtime
from ..backends.adapters.remote import build_completions_url
from ..generation import GenerationController, GenerationState
from ..session import ChatSession, Role, SessionStore, attachment_from_path, group_sessions_by_date
from ..settings import DEFAULT_MODELS, Backend, save_settings
from .logs import configure_logging
from .providers import get_settings, get_store

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="openllama",
    help="Streaming chat client for local and OpenAI-compatible language models",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

EXIT_WORDS = ("exit", "quit", "q", "/quit", "/exit")


def _print_session(session: ChatSession) -> None:
    console.print(f"[bold cyan]{session.title}[/bold cyan] [dim]({session.model_id}, {session.id})[/dim]")
    for message in session.messages:
        label = "You" if message.role is Role.USER else "Assistant"
        style = "bold yellow" if message.role is Role.USER else "bold green"
        console.print(f"[{style}]{label}:[/{style}] ", end="")
        console.print(message.content, markup=False, highlight=False)
        for attachment in message.attachments:
            console.print(f"[dim]  [{attachment.kind.value}] {attachment.name}[/dim]")
    console.print()


async def _stream_reply(controller: GenerationController, session_id: str, text: str) -> None:
    """Submit ``text`` and print the reply as it streams; Ctrl-C stops it."""
    loop = asyncio.get_running_loop()
    printed = 0

    def on_fragment(session, message, stats) -> None:
        nonlocal printed
        console.print(message.content[printed:], end="", markup=False, highlight=False)
        printed = len(message.content)

    unsubscribe = controller.subscribe(on_fragment)
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, controller.stop)

    console.print("[bold green]Assistant:[/bold green] ", end="")
    try:
        reply = await controller.submit(session_id, text)
    finally:
        unsubscribe()
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
    console.print()

    if reply is None:
        console.print("[dim](no response)[/dim]")
    stats = controller.stats
    if stats is not None:
        console.print(
            f"[dim]{stats.tokens_per_second} T/s | {stats.token_count} chunks | {stats.elapsed_seconds}s[/dim]"
        )
    if controller.last_outcome is GenerationState.CANCELLED:
        console.print("[yellow]Stopped.[/yellow]")
    console.print()


@app.command()
def chat(
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Backend: api, local or mock (default: saved settings / OPENLLAMA_BACKEND)"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model id for new sessions"
    ),
    session_id: str | None = typer.Option(
        None,
        "--session",
        "-s",
        help="Resume an existing session by id"
    ),
    store_backend: str | None = typer.Option(
        None,
        "--store",
        help="Storage: 'memory' (session-only) or 'sqlite' (persistent)"
    ),
    store_path: str | None = typer.Option(
        None,
        "--store-path",
        help="Path for SQLite database (only with --store sqlite)"
    ),
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning or error"
    ),
):
    """Interactive chat. Ctrl-C while a reply streams stops it."""
    configure_logging(log_level)

    async def _chat():
        store = get_store(store_backend, store_path)
        try:
            await store.connect()
            settings = await get_settings(store, backend=backend, default_model=model)
            sessions = SessionStore(store)
            await sessions.load()
            controller = GenerationController(sessions, settings)

            session = sessions.get(session_id) if session_id else None
            if session_id and session is None:
                console.print(f"[yellow]Session {session_id} not found, starting a new one[/yellow]")
            if session is None:
                session = await sessions.create_session(settings.default_model)

            console.print("[bold cyan]OpenLlama Chat[/bold cyan]")
            console.print(f"[dim]Backend: {settings.backend.value} | Model: {session.model_id}[/dim]")
            console.print(
                "[dim]Commands: /attach <path>, /new, /rename <title>, /sessions, /switch <id>, /stats, /quit[/dim]\n"
            )
            if session.messages:
                _print_session(session)

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ")
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                stripped = user_input.strip()
                if stripped.lower() in EXIT_WORDS:
                    console.print("[dim]Goodbye![/dim]")
                    break

                if stripped.startswith("/attach "):
                    path = stripped[len("/attach "):].strip()
                    try:
                        attachment = attachment_from_path(path)
                    except OSError as e:
                        console.print(f"[red]Error: {e}[/red]")
                        continue
                    controller.stage_attachment(attachment)
                    console.print(f"[dim]Attached {attachment.name} ({attachment.kind.value})[/dim]")
                    continue

                if stripped == "/new":
                    session = await sessions.create_session(settings.default_model)
                    console.print(f"[dim]New session {session.id}[/dim]\n")
                    continue

                if stripped == "/sessions":
                    _print_sessions_table(sessions.sessions)
                    continue

                if stripped.startswith("/rename "):
                    title = stripped[len("/rename "):].strip()
                    await sessions.rename(session.id, title)
                    console.print(f"[dim]Renamed to {title}[/dim]")
                    continue

                if stripped.startswith("/switch "):
                    target = sessions.get(stripped[len("/switch "):].strip())
                    if target is None:
                        console.print("[red]Error: no such session[/red]")
                        continue
                    session = target
                    _print_session(session)
                    continue

                if stripped == "/stats":
                    stats = controller.stats
                    if stats is None:
                        console.print("[dim]No generation yet[/dim]")
                    else:
                        console.print(
                            f"[dim]{stats.tokens_per_second} T/s, {stats.token_count} chunks, "
                            f"{stats.elapsed_seconds}s[/dim]"
                        )
                    continue

                if not stripped and not controller.staged_attachments:
                    continue

                await _stream_reply(controller, session.id, user_input)

        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            process_runtime().unload()
            await store.disconnect()

    asyncio.run(_chat())


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Message to send"),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Backend: api, local or mock"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model id"
    ),
    attach: list[str] = typer.Option(
        [],
        "--attach",
        "-a",
        help="File to attach (repeatable)"
    ),
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning or error"
    ),
):
    """Send one message in a throwaway session and stream the reply."""
    configure_logging(log_level)

    async def _ask():
        store = get_store("memory")
        user_store = get_store()
        try:
            await user_store.connect()
            settings = await get_settings(user_store, backend=backend, default_model=model)
        finally:
            await user_store.disconnect()

        sessions = SessionStore(store)
        controller = GenerationController(sessions, settings)
        for path in attach:
            controller.stage_attachment(attachment_from_path(path))
        session = await sessions.create_session(settings.default_model)
        await _stream_reply(controller, session.id, prompt)

    try:
        asyncio.run(_ask())
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def _print_sessions_table(all_sessions: list[ChatSession]) -> None:
    if not all_sessions:
        console.print("[yellow]No sessions yet[/yellow]")
        return

    for group, members in group_sessions_by_date(all_sessions).items():
        if not members:
            continue
        table = Table(title=group, show_header=True, header_style="bold cyan", title_justify="left")
        table.add_column("ID", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Model", style="yellow")
        table.add_column("Messages", justify="right")
        table.add_column("Updated", style="green")
        for session in members:
            table.add_row(
                session.id,
                session.title,
                session.model_id,
                str(len(session.messages)),
                session.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)


@app.command()
def sessions(
    store_path: str | None = typer.Option(
        None,
        "--store-path",
        help="Path for SQLite database"
    ),
    delete: str | None = typer.Option(
        None,
        "--delete",
        "-d",
        help="Delete the session with this id"
    ),
):
    """List saved sessions grouped by date."""
    async def _sessions():
        store = get_store("sqlite", store_path)
        try:
            await store.connect()
            session_store = SessionStore(store)
            await session_store.load()

            if delete:
                if await session_store.delete(delete):
                    console.print(f"[green]Deleted session {delete}[/green]")
                else:
                    console.print(f"[yellow]No session {delete}[/yellow]")
                return

            _print_sessions_table(session_store.sessions)
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_sessions())


@app.command()
def models():
    """Show the built-in model catalogue."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Backend", style="yellow", width=8)
    table.add_column("Context", justify="right", style="green")
    table.add_column("Description", style="dim")

    for model in DEFAULT_MODELS:
        table.add_row(
            model.id,
            model.name,
            model.backend.value,
            f"{model.context_window:,}",
            model.description,
        )

    console.print(table)


@app.command()
def configure(
    backend: str | None = typer.Option(None, "--backend", "-b", help="api, local or mock"),
    api_url: str | None = typer.Option(None, "--api-url", help="OpenAI-compatible API base URL"),
    api_key: str | None = typer.Option(None, "--api-key", help="API key"),
    model: str | None = typer.Option(None, "--model", "-m", help="Default model id"),
    system_prompt: str | None = typer.Option(None, "--system-prompt", help="System prompt"),
    temperature: float | None = typer.Option(None, "--temperature", "-t", help="Sampling temperature"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Maximum tokens to generate"),
    seed: int | None = typer.Option(None, "--seed", help="Sampling seed (-1 for random)"),
    store_path: str | None = typer.Option(None, "--store-path", help="Path for SQLite database"),
):
    """Save generation settings and show the result."""
    async def _configure():
        store = get_store("sqlite", store_path)
        try:
            await store.connect()
            settings = await get_settings(
                store,
                backend=backend,
                api_url=api_url,
                api_key=api_key,
                default_model=model,
                system_prompt=system_prompt,
                temperature=temperature,
                max_tokens=max_tokens,
                seed=seed,
            )
            await save_settings(store, settings)

            table = Table(show_header=False, box=None)
            table.add_column("Setting", style="bold cyan", width=18)
            table.add_column("Value")
            for name, value in settings.model_dump(mode="json").items():
                if name == "api_key":
                    value = "SET" if value else "NOT SET"
                table.add_row(name, str(value))
            console.print(table)
            console.print("[green]Settings saved[/green]")
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_configure())


@app.command()
def health():
    """Check configuration and that the API endpoint is reachable."""
    async def _health():
        all_healthy = True

        store = get_store()
        try:
            await store.connect()
            console.print(f"[green]+[/green] Store ({store.backend_type}): OK")
            settings = await get_settings(store)
        except Exception as e:
            console.print(f"[red]x[/red] Store: FAILED ({e})")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

        console.print(f"[green]+[/green] Backend: {settings.backend.value}")
        if settings.api_key:
            console.print("[green]+[/green] API key: SET")
        else:
            console.print("[yellow]![/yellow] API key: NOT SET")

        if settings.backend is Backend.API:
            url = build_completions_url(settings.api_url).removesuffix("/chat/completions") + "/models"
            try:
                async with httpx.AsyncClient(timeout=5.0) as client:
                    response = await client.get(
                        url, headers={"Authorization": f"Bearer {settings.api_key or 'no-key'}"}
                    )
                if response.is_success:
                    console.print(f"[green]+[/green] Endpoint {url}: OK")
                else:
                    console.print(f"[red]x[/red] Endpoint {url}: HTTP {response.status_code}")
                    all_healthy = False
            except httpx.HTTPError as e:
                console.print(f"[red]x[/red] Endpoint {url}: FAILED ({e})")
                all_healthy = False

        if not all_healthy:
            raise typer.Exit(code=1)

    asyncio.run(_health())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
