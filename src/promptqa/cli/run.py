"""promptqa run - Execute a prompt file.

This is the primary command. It resolves config, parses the prompt, drives
the API client and a Playwright browser step by step, and prints Rich output
with per-step results, the self-healing log and a summary panel. A markdown
report is written to the run's evidence directory.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import json
import logging
import random
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from promptqa.config import PromptQAConfig, PromptQAConfigError, current_environment
from promptqa.engine.api_runner import APIClient
from promptqa.engine.context import VariableStore
from promptqa.engine.errors import PromptFileError, StepExecutionError
from promptqa.engine.prompt_executor import PromptExecutor
from promptqa.engine.report_generator import ReportGenerator, RunResult, StepReport
from promptqa.engine.ui_runner import BrowserSession, UIDriver

console = Console(stderr=True)

logger = logging.getLogger("promptqa.cli.run")


def _resolve_project_dir() -> Path:
    """Find the .promptqa/ project directory, searching upward from cwd."""
    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / ".promptqa"
        if candidate.is_dir():
            return candidate
    return current / ".promptqa"


def _build_config(
    env: Optional[str],
    headless: Optional[bool],
    self_healing: Optional[bool],
    project_dir: Path,
) -> PromptQAConfig:
    """Build a PromptQAConfig, merging with config.yaml if present."""
    config_path = project_dir / "config.yaml"

    if config_path.is_file():
        config = PromptQAConfig.from_file(config_path)
    else:
        config = PromptQAConfig.for_environment(current_environment())
        config.project_dir = project_dir
        config.prompts_dir = project_dir / "prompts"
        config.evidence_dir = project_dir / "evidence"

    # CLI options override config file values
    if env:
        config.use_environment(env)
    if headless is not None:
        config.headless = headless
    if self_healing is not None:
        config.self_healing = self_healing

    return config


def _resolve_prompt_path(prompt: Path, config: PromptQAConfig) -> Path:
    """Fall back to the project's prompts dir for bare prompt names."""
    if prompt.is_file() or prompt.is_absolute():
        return prompt
    for candidate in (config.prompts_dir / prompt, config.prompts_dir / f"{prompt}.prompt"):
        if candidate.is_file():
            return candidate
    return prompt


def _generate_run_id() -> str:
    ts = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d-%H%M%S")
    suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=4))
    return f"PQA-RUN-{ts}-{suffix}"


def _print_run_header(prompt: Path, config: PromptQAConfig, run_id: str) -> None:
    info_lines = [
        f"[bold]Prompt:[/bold]        {prompt}",
        f"[bold]Environment:[/bold]   {config.environment}",
        f"[bold]Base URL:[/bold]      {config.base_url}",
        f"[bold]API URL:[/bold]       {config.api_base_url}",
        f"[bold]Headless:[/bold]      {config.headless}",
        f"[bold]Run ID:[/bold]        {run_id}",
    ]
    console.print()
    console.print(
        Panel(
            "\n".join(info_lines),
            title="[bold cyan]promptqa Run[/bold cyan]",
            border_style="cyan",
        )
    )
    console.print()


def _print_step_result(step: StepReport, total_steps: int) -> None:
    """Print a single step result line."""
    if step.passed:
        icon = "[bold green]✓[/bold green]"
        status = "[green]PASS[/green]"
    else:
        icon = "[bold red]✗[/bold red]"
        status = "[red]FAIL[/red]"

    console.print(
        f"  {icon} Step {step.ordinal}/{total_steps}: {step.description}  {status}"
        f"  [dim]{step.duration_seconds:.1f}s  {step.action}[/dim]"
    )
    if step.error and not step.passed:
        error_short = step.error if len(step.error) <= 120 else step.error[:117] + "..."
        console.print(f"    [dim red]{escape(error_short)}[/dim red]")
    elif step.notes:
        console.print(f"    [dim]{escape(step.notes)}[/dim]")


def _print_healing_table(result: RunResult) -> None:
    if not result.healing_records:
        return
    console.print()
    table = Table(title="Healed Selectors", border_style="yellow")
    table.add_column("Original")
    table.add_column("Healed", style="bold")
    table.add_column("Strategy")
    for record in result.healing_records:
        table.add_row(record.original_reference, record.healed_reference, record.strategy)
    console.print(table)


def _print_summary_panel(result: RunResult, report_path: Path | None) -> None:
    """Print the final summary panel."""
    if result.passed:
        border = "green"
        verdict = "[bold green]ALL STEPS PASSED[/bold green]"
    else:
        border = "red"
        verdict = "[bold red]RUN FAILED[/bold red]"

    passed_steps = sum(1 for s in result.step_reports if s.passed)
    summary_lines = [
        verdict,
        "",
        f"  Steps:     {passed_steps}/{result.total_steps} passed",
        f"  Healed:    {len(result.healing_records)}",
        f"  Duration:  {result.duration_seconds:.1f}s",
        f"  Run ID:    {result.run_id}",
    ]
    if report_path is not None:
        summary_lines.append(f"  Report:    {report_path}")

    console.print()
    console.print(Panel("\n".join(summary_lines), border_style=border))
    console.print()


def _write_junit_xml(
    junit_path: Path,
    prompt_name: str,
    step_reports: list[StepReport],
    duration: float,
) -> None:
    """Write a JUnit XML report for CI integration."""
    import xml.etree.ElementTree as ET

    testsuite = ET.Element("testsuite")
    testsuite.set("name", f"promptqa-{prompt_name}")
    testsuite.set("tests", str(len(step_reports)))
    testsuite.set("time", f"{duration:.2f}")

    failures = 0
    for step in step_reports:
        testcase = ET.SubElement(testsuite, "testcase")
        testcase.set("name", f"Step {step.ordinal}: {step.description}")
        testcase.set("classname", f"promptqa.{prompt_name}")
        testcase.set("time", f"{step.duration_seconds:.2f}")

        if not step.passed:
            failures += 1
            failure = ET.SubElement(testcase, "failure")
            failure.set("message", step.error or "Step failed")
            failure.text = step.error or ""

    testsuite.set("failures", str(failures))

    tree = ET.ElementTree(testsuite)
    ET.indent(tree, space="  ")
    tree.write(str(junit_path), xml_declaration=True, encoding="unicode")


def _result_as_json(result: RunResult, report_path: Path | None) -> str:
    data = dataclasses.asdict(result)
    data["report_path"] = str(report_path) if report_path else None
    return json.dumps(data, indent=2, default=str)


def run(
    prompt: Path = typer.Argument(
        ...,
        help="Path to the prompt file, or a prompt name under the project's prompts dir.",
    ),
    env: Optional[str] = typer.Option(
        None,
        "--env",
        "-e",
        help="Target environment (default: $PROMPTQA_ENV or parabank).",
    ),
    self_healing: Optional[bool] = typer.Option(
        None,
        "--self-healing/--no-self-healing",
        help="Force self-healing locators on or off (a prompt directive can still enable it).",
    ),
    headless: Optional[bool] = typer.Option(
        None,
        "--headless/--no-headless",
        help="Run browser in headless mode (default) or visible.",
    ),
    junit_xml: Optional[Path] = typer.Option(
        None,
        "--junit-xml",
        help="Path to write JUnit XML report (for CI integration).",
    ),
    output_format: str = typer.Option(
        "text",
        "--output",
        "-o",
        help="Output format: text or json.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Run a prompt file against the API and a real browser.

    Steps run in order; the first failing step stops the run.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")

    if output_format not in ("text", "json"):
        console.print(
            Panel(
                f"[red]Invalid output format:[/red] {output_format}\n\n"
                "Valid formats: text, json",
                title="[red]Config Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    project_dir = _resolve_project_dir()
    try:
        config = _build_config(env, headless, self_healing, project_dir)
    except PromptQAConfigError as exc:
        console.print(
            Panel(
                f"[red]{escape(str(exc))}[/red]",
                title="[red]Config Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    prompt = _resolve_prompt_path(prompt, config)
    run_id = _generate_run_id()
    run_dir = config.evidence_dir / run_id

    if output_format == "text":
        _print_run_header(prompt, config, run_id)

    store = VariableStore()
    api = APIClient(config.api_base_url, store=store, timeout=config.api_timeout)
    session = BrowserSession(
        headless=config.headless,
        slow_mo=config.slow_mo,
        viewport=config.viewport,
        timeout_ms=config.timeout_ms,
    )

    started_at = dt.datetime.now(dt.timezone.utc)
    start = time.monotonic()
    failure: Exception | None = None
    executor: PromptExecutor | None = None
    ui: UIDriver | None = None

    try:
        page = session.start()
        ui = UIDriver(page, store=store, timeout_ms=config.timeout_ms, screenshot_dir=run_dir)
        executor = PromptExecutor(api, store, ui=ui, self_healing=config.self_healing)
        executor.load_prompt(prompt)
        if output_format == "text":
            console.print(f"[bold]Running {len(executor.steps)} step(s)...[/bold]\n")
        executor.execute()
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        session.stop()
        api.close()
        raise typer.Exit(code=1)
    except PromptFileError as exc:
        session.stop()
        api.close()
        console.print(
            Panel(
                f"[red]{escape(str(exc))}[/red]",
                title="[red]Prompt Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)
    except StepExecutionError as exc:
        failure = exc
    except Exception as exc:
        logger.exception("Unexpected error during run")
        failure = exc

    try:
        if failure is not None and config.screenshot_on_failure and ui is not None:
            try:
                ui.take_screenshot("failure")
            except Exception as exc:
                logger.warning("Failure screenshot not captured: %s", exc)

        duration = time.monotonic() - start
        step_reports = executor.step_reports if executor is not None else []
        result = RunResult(
            run_id=run_id,
            prompt_name=prompt.stem,
            environment=config.environment,
            passed=failure is None,
            start_time=started_at.isoformat(timespec="seconds"),
            end_time=dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds"),
            duration_seconds=round(duration, 2),
            step_reports=list(step_reports),
            healing_records=list(executor.healing_log()) if executor is not None else [],
            variables=store.snapshot(),
            self_healing=executor.self_healing if executor is not None else config.self_healing,
            total_steps=len(executor.steps) if executor is not None else 0,
        )
    finally:
        session.stop()
        api.close()

    report_path: Path | None = None
    try:
        run_dir.mkdir(parents=True, exist_ok=True)
        report_path = run_dir / "report.md"
        report_path.write_text(ReportGenerator().generate(result), encoding="utf-8")
    except OSError as exc:
        report_path = None
        console.print(f"[yellow]Warning: Failed to write report: {exc}[/yellow]")

    if output_format == "json":
        typer.echo(_result_as_json(result, report_path))
    else:
        for step in result.step_reports:
            _print_step_result(step, result.total_steps or len(result.step_reports))
        if failure is not None and not isinstance(failure, StepExecutionError):
            console.print(
                Panel(
                    f"[red]Unexpected error:[/red] {escape(str(failure))}\n\n"
                    "Run with [bold]--verbose[/bold] for full traceback.",
                    title="[red]Infrastructure Error[/red]",
                    border_style="red",
                )
            )
        elif failure is not None:
            console.print()
            console.print(
                Panel(
                    f"[red]{escape(str(failure))}[/red]",
                    title="[red]Step Failed[/red]",
                    border_style="red",
                )
            )
        _print_healing_table(result)
        _print_summary_panel(result, report_path)

    if junit_xml:
        try:
            _write_junit_xml(junit_xml, prompt.stem, result.step_reports, result.duration_seconds)
            if output_format == "text":
                console.print(f"[dim]JUnit XML written to: {junit_xml}[/dim]\n")
        except OSError as exc:
            console.print(f"[yellow]Warning: Failed to write JUnit XML: {exc}[/yellow]")

    # Exit code: 0 = all pass, 1 = any fail
    if not result.passed:
        raise typer.Exit(code=1)
