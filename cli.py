"""Terminal chat driver using Typer."""
from dotenv import load_dotenv

# before Settings reads the environment
load_dotenv()

import asyncio
import logging
import sys
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from catalog import ModelCatalog, load_catalog
from errors import InvalidModelError, SessionError
from remote import GeminiRemote, RemoteModel
from session import Session
from settings import Settings

app = typer.Typer(
    name="gemini-chat",
    help="Chat with Gemini models from the terminal",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /models     - Show available models
  /switch <n> - Switch to model number n (clears history)
  /clear      - Clear chat history
  /stream     - Toggle streaming mode
  /help       - Show this help
  /exit       - Exit the program
"""


def build_remote(settings: Settings) -> RemoteModel:
    return GeminiRemote.from_settings(settings)


def _configure_logging(settings: Settings, verbose: bool) -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    if verbose:
        level = min(level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _models_table(catalog: ModelCatalog, current: Optional[str] = None) -> Table:
    table = Table(title="Available models")
    table.add_column("#", style="cyan")
    table.add_column("Name")
    table.add_column("Id", style="dim")
    for key, info in catalog.items():
        marker = " (current)" if info.id == current else ""
        table.add_row(key, f"{info.name}{marker}", info.id)
    return table


class ChatShell:
    """Line-oriented prompt loop over a single session."""

    def __init__(self, session: Session, stream: bool = False):
        self.session = session
        self.stream = stream

    def show_help(self) -> None:
        console.print(HELP_TEXT, markup=False)
        console.print(f"Current model: {self.session.model}\n")

    def show_models(self) -> None:
        console.print(_models_table(self.session.list_models(), self.session.model))
        console.print("[dim]Use /switch <number> to change model[/dim]\n")

    def handle_command(self, line: str) -> bool:
        """Run a slash command. Returns False when the loop should stop."""
        cmd, *args = line.split()
        cmd = cmd.lower()

        if cmd in ("/exit", "/quit"):
            console.print("[dim]Goodbye![/dim]")
            return False
        if cmd == "/help":
            self.show_help()
        elif cmd == "/models":
            self.show_models()
        elif cmd == "/switch":
            if not args:
                console.print("\n[yellow]Usage: /switch <number>[/yellow]\n")
                return True
            try:
                info = self.session.select_model(args[0])
            except InvalidModelError:
                console.print(
                    "\n[yellow]Invalid model number. Use /models to see available options.[/yellow]\n"
                )
            else:
                key = self.session.list_models().key_of(info.id)
                console.print(f"\nSwitched to {info.id} (#{key})\nChat history cleared.\n")
        elif cmd == "/clear":
            self.session.clear()
            console.print("\nChat history cleared.\n")
        elif cmd == "/stream":
            self.stream = not self.stream
            console.print(f"\nStreaming mode: {'ON' if self.stream else 'OFF'}\n")
        else:
            console.print("\n[yellow]Unknown command. Type /help for available commands.[/yellow]\n")
        return True

    async def send(self, text: str) -> None:
        try:
            if self.stream:
                turn = await self.session.stream_turn(text)
                console.print("\n[bold blue]Assistant:[/bold blue] ", end="")
                async for fragment in turn:
                    console.print(fragment, end="", markup=False, highlight=False, soft_wrap=True)
                console.print("\n")
            else:
                with console.status("[dim]Thinking...[/dim]"):
                    reply = await self.session.send_turn(text)
                console.print(
                    f"\n[bold blue]Assistant:[/bold blue] {escape(reply.text)}\n",
                    highlight=False,
                )
        except SessionError as e:
            console.print(f"\n[red]Error: {escape(str(e))}[/red]\n")

    async def run(self) -> None:
        console.print("[bold cyan]Gemini AI Chat[/bold cyan]")
        console.print(f"Current model: {self.session.model}")
        console.print("[dim]Type /help for commands[/dim]\n")

        while True:
            try:
                line = console.input("[bold yellow]You:[/bold yellow] ")
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Goodbye![/dim]")
                return

            text = line.strip()
            if not text:
                continue
            if text.startswith("/"):
                if not self.handle_command(text):
                    return
            else:
                await self.send(text)


@app.command()
def chat(
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Model number or id to start with (default: DEFAULT_MODEL)"
    ),
    stream: bool = typer.Option(
        False,
        "--stream",
        "-s",
        help="Start with streaming mode on"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log at INFO even if LOG_LEVEL is higher"
    ),
):
    """Interactive chat session."""
    settings = Settings()
    _configure_logging(settings, verbose)

    try:
        catalog = load_catalog(settings)
        session = Session(
            build_remote(settings),
            catalog=catalog,
            model=model or settings.DEFAULT_MODEL,
        )
    except (SessionError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    logger.info(f"Starting chat with {session.model}")
    try:
        asyncio.run(ChatShell(session, stream=stream).run())
    except KeyboardInterrupt:
        # Ctrl-C while a turn is awaiting its reply
        console.print("\n[dim]Goodbye![/dim]")


@app.command()
def models():
    """List the model catalog."""
    settings = Settings()
    try:
        catalog = load_catalog(settings)
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    console.print(_models_table(catalog, settings.DEFAULT_MODEL))


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP chat API."""
    settings = Settings()
    uvicorn.run(
        "main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    app()
