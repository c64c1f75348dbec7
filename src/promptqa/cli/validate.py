"""promptqa validate - Parse a prompt file without executing it.

Shows how every step was classified and which fields were extracted, and
reports steps that would fail at run time (missing endpoint, missing
credentials, placeholders nothing stores) without touching the API or a
browser.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from promptqa.engine.context import PLACEHOLDER_PATTERN
from promptqa.engine.errors import PromptFileError
from promptqa.engine.prompt_executor import CLICK_LABEL_PATTERN, URL_PATTERN
from promptqa.engine.prompt_parser import ActionKind, PromptDocument, load_prompt_file

console = Console(stderr=True)

# ── Severity ordering ─────────────────────────────────────────────────────

_SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}

_API_ACTIONS = {
    ActionKind.API_LOGIN,
    ActionKind.API_GET,
    ActionKind.API_CREATE,
    ActionKind.API_POST,
    ActionKind.API_DELETE,
}


# ── Validation helpers ────────────────────────────────────────────────────


def _validate_prompt(document: PromptDocument) -> list[dict[str, Any]]:
    """Validate a parsed prompt. Returns list of issue dicts."""
    issues: list[dict[str, Any]] = []

    if not document.steps:
        issues.append({"severity": "error", "step": "", "message": "No steps found (expected '### Step N:' or 'N.' headers)"})
        return issues

    stored: set[str] = set()
    for step in document.steps:
        label = f"step {step.ordinal}"
        details = step.details

        if step.action == ActionKind.UNKNOWN:
            issues.append({
                "severity": "warning",
                "step": label,
                "message": f"Action not recognized, step will be skipped: {step.description!r}",
            })

        if step.action in _API_ACTIONS and not details.endpoint:
            issues.append({"severity": "error", "step": label, "message": "API step has no 'Endpoint:' or 'URL:'"})

        if step.action == ActionKind.UI_NAVIGATE and not details.endpoint and not URL_PATTERN.search(details.raw_text):
            issues.append({"severity": "error", "step": label, "message": "Navigation step has no URL"})

        if step.action == ActionKind.UI_LOGIN and not (details.username and details.password):
            issues.append({"severity": "error", "step": label, "message": "UI login step needs 'Username:' and 'Password:'"})

        if step.action == ActionKind.UI_CLICK and not CLICK_LABEL_PATTERN.search(details.raw_text):
            issues.append({"severity": "error", "step": label, "message": "Click step has no quoted label (Click '...')"})

        for name in PLACEHOLDER_PATTERN.findall(details.endpoint or ""):
            if name not in stored:
                issues.append({
                    "severity": "warning",
                    "step": label,
                    "message": f"{{{{{name}}}}} is not stored by any earlier step",
                })

        if details.store_as:
            stored.add(details.store_as)

    for miss in document.misses:
        issues.append({
            "severity": "info",
            "step": f"line {miss.line_number}",
            "message": f"Ignored ({miss.reason}): {miss.text}",
        })

    return issues


def _steps_table(document: PromptDocument) -> Table:
    table = Table(title="Parsed Steps", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Action", style="bold")
    table.add_column("Description")
    table.add_column("Details", style="dim")

    for step in document.steps:
        fields = step.details.as_dict()
        fields.pop("raw_text", None)
        if "password" in fields:
            fields["password"] = "***"
        details_str = ", ".join(f"{k}={v}" for k, v in fields.items())
        action_style = "yellow" if step.action == ActionKind.UNKNOWN else ""
        table.add_row(
            str(step.ordinal),
            f"[{action_style}]{step.action.value}[/{action_style}]" if action_style else step.action.value,
            step.description,
            details_str,
        )
    return table


# ── Command ───────────────────────────────────────────────────────────────


def validate(
    prompt: Path = typer.Argument(
        ...,
        help="Path to the prompt file.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat warnings as errors (exit code 1).",
    ),
) -> None:
    """Parse a prompt file and report problems without running it. Zero side effects."""
    try:
        document = load_prompt_file(prompt)
    except PromptFileError as exc:
        console.print(
            Panel(
                f"[red]{exc}[/red]",
                title="[red]Prompt Not Found[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    if document.steps:
        console.print(_steps_table(document))
    healing = {True: "YES", False: "NO", None: "not set"}[document.self_healing]
    console.print(f"  [dim]Self-Healing directive:[/dim] {healing}")

    issues = _validate_prompt(document)
    _print_issues(issues)

    total_errors = sum(1 for i in issues if i["severity"] == "error")
    total_warnings = sum(1 for i in issues if i["severity"] == "warning")

    # ── Summary ────────────────────────────────────────────────────────
    console.print()
    if total_errors == 0 and total_warnings == 0:
        console.print(Panel(f"[bold green]{len(document.steps)} step(s) parsed. No errors or warnings.[/bold green]", border_style="green"))
    elif total_errors > 0:
        console.print(
            Panel(
                f"[bold red]Validation failed.[/bold red]  "
                f"{total_errors} error(s), {total_warnings} warning(s)\n\n"
                "Fix the errors above before running the prompt.",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    elif strict:
        console.print(
            Panel(
                f"[bold yellow]Validation warnings found (--strict mode).[/bold yellow]  "
                f"{total_warnings} warning(s)",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)
    else:
        console.print(
            Panel(
                f"[yellow]Validation passed with {total_warnings} warning(s).[/yellow]  "
                "Use [bold]--strict[/bold] to fail on warnings.",
                border_style="yellow",
            )
        )


def _print_issues(issues: list[dict[str, Any]]) -> None:
    for issue in sorted(issues, key=lambda i: _SEVERITY_ORDER.get(i["severity"], 99)):
        sev = issue["severity"]
        where = issue.get("step", "")
        sev_label = {
            "error": "[bold red]ERROR[/bold red]",
            "warning": "[yellow]WARN[/yellow]",
            "info": "[dim]INFO[/dim]",
        }.get(sev, sev)
        where_str = f"[dim] ({where})[/dim]" if where else ""
        console.print(f"      {sev_label}{where_str}  {issue['message']}")
