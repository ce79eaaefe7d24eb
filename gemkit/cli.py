"""Command line interface for gemkit."""

import logging

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import GemConfig, load_config
from .debug import set_debug
from .run.orchestrator import GemOrchestrator

# Load .env before reading configs so ${VARS} in YAML can resolve
load_dotenv(override=True)

app = typer.Typer(
    name="gemkit",
    help="Run one benchmark on many remote machines at once",
    no_args_is_help=True,
)

console = Console()


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_or_exit(config: str) -> GemConfig:
    try:
        return load_config(config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from None


def _nodes_table(cfg: GemConfig) -> Table:
    table = Table(title="Nodes")
    table.add_column("Name")
    table.add_column("Target")
    table.add_column("Port", justify="right")
    table.add_column("Remote dir")
    for node in cfg.nodes:
        table.add_row(
            node.display_name, f"{node.user}@{node.host}", str(node.port), node.dir
        )
    return table


@app.command()
def validate(
    config: str = typer.Option(..., "--config", "-c", help="Path to config YAML file"),
) -> None:
    """Validate a configuration file and list its nodes."""
    cfg = _load_or_exit(config)
    console.print(_nodes_table(cfg))
    console.print(
        f"[dim]Payload: {cfg.payload_dir}  Command: bin/{cfg.command} {cfg.args_string}[/]"
    )
    console.print(
        f"[dim]Budget: {cfg.max_iterations} x {cfg.timeout_seconds}s per phase, "
        f"mode: {cfg.concurrency_mode}[/]"
    )
    console.print("[green]✓ Configuration is valid[/]")


@app.command()
def run(
    config: str = typer.Option(..., "--config", "-c", help="Path to config YAML file"),
    debug: bool = typer.Option(
        False, "--debug", help="Enable debug output for detailed command tracing"
    ),
) -> None:
    """Stage the payload on every node and run the benchmark."""

    # Set global debug state
    set_debug(debug)
    _setup_logging(debug)

    cfg = _load_or_exit(config)
    console.print(
        f"[blue]Running benchmark on {len(cfg.nodes)} nodes:[/] "
        f"{', '.join(n.display_name for n in cfg.nodes)}"
    )

    orchestrator = GemOrchestrator(cfg)
    try:
        orchestrator.start()
        orchestrator.wait()
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted, stopping remote nodes...[/]")
        orchestrator.stop()
        console.print("[yellow]Benchmark stopped[/]")
        return
    except Exception as e:
        console.print(f"[red]✗ Benchmark failed:[/] {escape(str(e))}")
        raise typer.Exit(1) from None

    console.print("[green]✓ Benchmark completed[/]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
