import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from wirecalc._document import export_document, load_document, parse_document, save_document
from wirecalc._engine import Workspace
from wirecalc._errors import WirecalcError
from wirecalc._io import export_results_to_toml
from wirecalc._registry import definitions
from wirecalc._results import ErrorValue, Result, format_result
from wirecalc._store import Position

from .config import ConfigError, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Wirecalc CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Turn expected failures into a red message and exit code 1."""
    try:
        yield
    except WirecalcError as e:
        err_console.print(f"[red]✗ {e.kind}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except (ConfigError, OSError) as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _resolve_document(path: Path | None) -> Path:
    if path is not None:
        return path
    with _reporting_errors():
        config = get_config()
    if config.document is None:
        err_console.print("[red]✗ No document given and none configured in pyproject.toml[/red]")
        raise typer.Exit(code=1)
    return config.document


def _load(path: Path) -> Workspace:
    err_console.print(f"[cyan]Loading document from:[/cyan] {path}")
    with _reporting_errors():
        return load_document(path)


def _styled(value: Result) -> str:
    text = escape(format_result(value))
    if isinstance(value, ErrorValue):
        return f"[red]{text}[/red]"
    return text


def _results_table(workspace: Workspace, highlight: frozenset[int] = frozenset()) -> Table:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Type")
    table.add_column("Name", style="bold")
    table.add_column("Inputs")
    table.add_column("Value", justify="right")

    for module in workspace:
        inputs = []
        for index, value in enumerate(workspace.resolve_inputs(module.id)):
            conn = workspace.connection_into(module.id, index)
            wired = f" [dim]← {conn.source_module_id}[/dim]" if conn is not None else ""
            inputs.append(f"{_styled(value)}{wired}")
        if module.display is not None:
            value_text = _styled(module.display)
        elif module.output_values:
            value_text = ", ".join(_styled(value) for value in module.output_values)
        else:
            value_text = "[dim]-[/dim]"
        marker = "[yellow]*[/yellow] " if module.id in highlight else ""
        table.add_row(
            f"{marker}{module.id}",
            str(module.type),
            escape(module.name),
            "  ".join(inputs) or "[dim]-[/dim]",
            value_text,
        )
    return table


def _print_changes(changed: frozenset[int]) -> None:
    if changed:
        ids = ", ".join(str(module_id) for module_id in sorted(changed))
        err_console.print(f"[cyan]Changed modules:[/cyan] {ids}")
    else:
        err_console.print("[dim]No results changed[/dim]")


def _save(workspace: Workspace, path: Path) -> None:
    with _reporting_errors():
        save_document(workspace, path)
    err_console.print(f"[cyan]Saved document to:[/cyan] {path}")


DocumentArg = Annotated[
    Path | None,
    typer.Argument(help="Path to the graph document (defaults to the one configured in pyproject.toml)"),
]


@app.command()
def types() -> None:
    """List the available module types."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Type", style="bold")
    table.add_column("Label")
    table.add_column("Category")
    table.add_column("Inputs", justify="right", style="yellow")
    table.add_column("Outputs", justify="right", style="green")

    for definition in definitions():
        table.add_row(
            str(definition.type),
            definition.label,
            str(definition.category),
            str(definition.input_arity),
            str(definition.output_arity),
        )

    out_console.print(table)


@app.command()
def example(
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Path to write the example document to"),
    ],
) -> None:
    """Write a small example graph (15.5 + 25.3 shown on a display)."""
    workspace = Workspace()
    workspace.load_example()
    _save(workspace, output)
    err_console.print("[green]✓ Example document written[/green]")


@app.command()
def check(document: DocumentArg = None) -> None:
    """Validate a document without writing anything."""
    err_console.print()
    path = _resolve_document(document)
    workspace = _load(path)
    stats = workspace.stats()

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Modules", justify="right", style="yellow")
    table.add_column("Connections", justify="right", style="green")
    table.add_row(str(stats.modules), str(stats.connections))

    err_console.print(Panel(table, title=f"[bold]{escape(path.name)}[/bold]", border_style="cyan"))
    err_console.print()
    err_console.print("[green]✓ Document is valid[/green]")


@app.command()
def calc(
    document: DocumentArg = None,
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file (defaults to the one configured in pyproject.toml)"),
    ] = None,
) -> None:
    """Recompute every module and print the results."""
    err_console.print()
    path = _resolve_document(document)
    workspace = _load(path)

    err_console.print("[cyan]Recomputing all modules...[/cyan]")
    workspace.recompute_all()
    err_console.print()
    out_console.print(Panel(_results_table(workspace), title="[bold]Results[/bold]", border_style="cyan"))

    if output is None:
        with _reporting_errors():
            output = get_config().output
    if output is not None:
        err_console.print(f"[cyan]Exporting results to:[/cyan] {output}")
        with _reporting_errors():
            export_results_to_toml(workspace, output)

    errors = [module for module in workspace if _has_error(module.output_values, module.display)]
    if errors:
        err_console.print(f"[yellow]⚠ {len(errors)} module(s) produced an error value[/yellow]")
    err_console.print("[green]✓ Calculation complete[/green]")


def _has_error(outputs: tuple[Result, ...], display: Result | None) -> bool:
    return any(isinstance(value, ErrorValue) for value in (*outputs, display))


@app.command()
def add(
    document: Annotated[Path, typer.Argument(help="Path to the graph document")],
    module_type: Annotated[str, typer.Argument(help="Module type tag, see `wirecalc types`")],
    *,
    x: Annotated[float, typer.Option("--x", help="Horizontal position")] = 0.0,
    y: Annotated[float, typer.Option("--y", help="Vertical position")] = 0.0,
    name: Annotated[str | None, typer.Option("--name", help="Module name")] = None,
) -> None:
    """Add a module to a document."""
    workspace = _load(document)
    with _reporting_errors():
        module = workspace.add_module(module_type, Position(x, y), name)
    err_console.print(f"[green]✓ Added module {module.id}[/green] ({module.type})")
    _save(workspace, document)


@app.command()
def remove(
    document: Annotated[Path, typer.Argument(help="Path to the graph document")],
    module_id: Annotated[int, typer.Argument(help="Id of the module to remove")],
) -> None:
    """Remove a module and its connections from a document."""
    workspace = _load(document)
    with _reporting_errors():
        changed = workspace.remove_module(module_id)
    err_console.print(f"[green]✓ Removed module {module_id}[/green]")
    _print_changes(changed)
    _save(workspace, document)


@app.command()
def connect(
    document: Annotated[Path, typer.Argument(help="Path to the graph document")],
    source: Annotated[int, typer.Argument(help="Source module id")],
    source_port: Annotated[int, typer.Argument(help="Source output port index")],
    target: Annotated[int, typer.Argument(help="Target module id")],
    target_port: Annotated[int, typer.Argument(help="Target input port index")],
) -> None:
    """Connect an output port to an input port."""
    workspace = _load(document)
    with _reporting_errors():
        changed = workspace.connect(source, source_port, target, target_port)
    err_console.print(f"[green]✓ Connected {source}[{source_port}] → {target}[{target_port}][/green]")
    _print_changes(changed)
    _save(workspace, document)


@app.command()
def disconnect(
    document: Annotated[Path, typer.Argument(help="Path to the graph document")],
    source: Annotated[int, typer.Argument(help="Source module id")],
    source_port: Annotated[int, typer.Argument(help="Source output port index")],
    target: Annotated[int, typer.Argument(help="Target module id")],
    target_port: Annotated[int, typer.Argument(help="Target input port index")],
) -> None:
    """Remove a connection (no-op if it does not exist)."""
    workspace = _load(document)
    before = workspace.stats().connections
    changed = workspace.disconnect(source, source_port, target, target_port)
    if workspace.stats().connections == before:
        err_console.print("[yellow]No such connection[/yellow]")
        return
    err_console.print(f"[green]✓ Disconnected {source}[{source_port}] → {target}[{target_port}][/green]")
    _print_changes(changed)
    _save(workspace, document)


@app.command(name="set")
def set_value(
    document: Annotated[Path, typer.Argument(help="Path to the graph document")],
    module_id: Annotated[int, typer.Argument(help="Module id")],
    value: Annotated[float, typer.Argument(help="New value")],
    *,
    port: Annotated[
        int | None,
        typer.Option("--port", help="Input port index; omit to set a source module's value"),
    ] = None,
) -> None:
    """Set a source's value or an input port's local value."""
    workspace = _load(document)
    with _reporting_errors():
        if port is None:
            changed = workspace.set_setting(module_id, value)
        else:
            changed = workspace.set_local_input(module_id, port, value)
    _print_changes(changed)
    out_console.print(_results_table(workspace, highlight=changed))
    _save(workspace, document)


@app.command()
def export(
    document: DocumentArg = None,
    *,
    indent: Annotated[
        int,
        typer.Option("--indent", help="JSON indentation spaces"),
    ] = 2,
) -> None:
    """Print a document in canonical form (recomputed, current field names)."""
    path = _resolve_document(document)
    workspace = _load(path)
    typer.echo(export_document(workspace, indent=indent))


@app.command()
def diff(
    file1: Annotated[
        Path,
        typer.Argument(help="Path to the first document"),
    ],
    file2: Annotated[
        Path,
        typer.Argument(help="Path to the second document"),
    ],
) -> None:
    """Compare the graphs of two documents, ignoring timestamps."""
    with _reporting_errors():
        doc1 = parse_document(file1.read_bytes())
        doc2 = parse_document(file2.read_bytes())

    ignored = {"version", "exported_at", "saved_at"}
    if doc1.model_dump(exclude=ignored) == doc2.model_dump(exclude=ignored):
        err_console.print("[green]✓ The documents describe the same graph.[/green]")
        raise typer.Exit(0)

    err_console.print("[red]✗ The documents differ.[/red]")
    raise typer.Exit(1)


def main() -> None:
    app()
