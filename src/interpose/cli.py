"""interpose CLI - inspect and dry-run interception rules."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from interpose.config import load_rules_file
from interpose.engine.executor import build_response
from interpose.engine.resolver import resolve
from interpose.rules.models import InterceptedRequest, PatchAction, ReplaceAction, Rule, StatusAction
from interpose.rules.validation import RuleValidationError

app = typer.Typer(
    name="interpose",
    help="Rule-driven interception of outgoing HTTP calls",
    no_args_is_help=True,
)
console = Console()


@app.command()
def version() -> None:
    """Show the installed interpose version."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version

    try:
        current_version = pkg_version("interpose")
    except PackageNotFoundError:
        current_version = "0.0.0+unknown"

    console.print(f"interpose {current_version}")


def _load(rules_file: Path):
    if not rules_file.exists():
        console.print(f"[red]Error: {rules_file} does not exist[/red]")
        raise typer.Exit(1)
    try:
        return load_rules_file(rules_file)
    except RuleValidationError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)


def _describe_action(rule: Rule) -> str:
    action = rule.action
    if isinstance(action, (ReplaceAction, StatusAction)):
        detail = f"{action.type.value} {action.status_code} {action.body.response_type.value}"
    elif isinstance(action, PatchAction):
        detail = f"patch {len(action.patches)} field(s)"
    else:
        detail = "delay"
    if action.delay:
        detail += f" after {action.delay:g}ms"
    return detail


@app.command()
def validate(
    rules_file: Path = typer.Argument(..., help="YAML or JSON rules file"),
) -> None:
    """Validate a rules file and list its rules in evaluation order."""
    rule_file = _load(rules_file)

    table = Table(title=f"{rules_file.name} ({'enabled' if rule_file.enabled else 'disabled'})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Name", style="bold white")
    table.add_column("Method", style="cyan")
    table.add_column("URL", style="cyan")
    table.add_column("Action", style="green")
    table.add_column("On", justify="center")
    for index, rule in enumerate(rule_file.rules, start=1):
        pattern = rule.matcher.url
        table.add_row(
            str(index),
            escape(rule.name),
            rule.matcher.method or "*",
            escape(f"{pattern.type.value}: {pattern.value}"),
            _describe_action(rule),
            "yes" if rule.enabled else "no",
        )
    console.print(table)
    console.print(f"[green]{len(rule_file.rules)} rule(s) valid[/green]")


@app.command()
def check(
    rules_file: Path = typer.Argument(..., help="YAML or JSON rules file"),
    url: str = typer.Argument(..., help="Request URL to test"),
    method: str = typer.Option("GET", "--method", "-m", help="Request method"),
) -> None:
    """Show which rule would intercept a request, and what it would return."""
    rule_file = _load(rules_file)
    if not rule_file.enabled:
        console.print("[yellow]Interception is disabled in this rules file: no rule applies[/yellow]")
        return

    request = InterceptedRequest.observe(url, method)
    warnings: list[str] = []
    rule = resolve(request, rule_file.rules, on_error=warnings.append)
    for message in warnings:
        console.print(f"Warning: {message}", style="yellow", markup=False)

    if rule is None:
        console.print(f"No rule matches {request.method} {escape(request.url)}; the request passes through")
        return

    console.print(f"[bold]{request.method} {escape(request.url)}[/bold] -> rule [cyan]{escape(rule.name)}[/cyan]")
    console.print(f"Action: {_describe_action(rule)}")
    if isinstance(rule.action, (ReplaceAction, StatusAction)):
        response = build_response(rule.action)
        headers = "\n".join(f"{name}: {value}" for name, value in response.headers.items())
        console.print(f"Status: {response.status_code} {response.status_text}")
        console.print(Panel(Text(headers), title="Headers", expand=False))
        console.print(Panel(Text(response.body or "(empty)"), title="Body", expand=False))


def main():
    """Entry point for the CLI."""
    app()
