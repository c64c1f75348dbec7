"""promptqa Report Generator -- Produces run report artifacts in markdown format.

Generates structured markdown reports from run results, including
step-by-step results, the self-healing log and the final variable store
contents.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from promptqa.engine.self_healing import HealingRecord


def _table_cell(text: str) -> str:
    """Flatten *text* onto one line and escape pipes for a markdown table cell."""
    return " ".join(text.split()).replace("|", "\\|")


@dataclasses.dataclass
class StepReport:
    """Report for a single executed step."""

    ordinal: int
    description: str
    action: str
    passed: bool
    duration_seconds: float
    error: str | None = None
    notes: str = ""


@dataclasses.dataclass
class RunResult:
    """Complete result of a promptqa run."""

    run_id: str
    prompt_name: str
    environment: str
    passed: bool
    start_time: str
    end_time: str
    duration_seconds: float
    step_reports: list[StepReport]
    healing_records: list[HealingRecord] = dataclasses.field(default_factory=list)
    variables: dict[str, Any] = dataclasses.field(default_factory=dict)
    self_healing: bool = False
    total_steps: int | None = None  # parsed steps; step_reports stops at the first failure


class ReportGenerator:
    """Generates markdown reports from run results."""

    def generate(self, result: RunResult) -> str:
        """Generate a complete report in markdown format.

        Args:
            result: The RunResult to report on.

        Returns:
            Complete markdown report as a string.
        """
        sections = [
            self._header(result),
            self._summary(result),
            self._step_results_table(result),
            self._healing_section(result),
            self._variables_section(result),
        ]
        return "\n\n".join(s for s in sections if s)

    def _header(self, r: RunResult) -> str:
        verdict = "PASS" if r.passed else "FAIL"
        return (
            f"# promptqa Report: {r.prompt_name}\n"
            f"\n"
            f"**Run ID:** {r.run_id}\n"
            f"**Environment:** {r.environment}\n"
            f"**Self-Healing:** {'enabled' if r.self_healing else 'disabled'}\n"
            f"**Date:** {r.start_time}\n"
            f"**Verdict:** {verdict}"
        )

    def _summary(self, r: RunResult) -> str:
        passed_count = sum(1 for s in r.step_reports if s.passed)
        total_count = r.total_steps if r.total_steps is not None else len(r.step_reports)
        not_run = max(total_count - len(r.step_reports), 0)
        lines = [
            "## Summary",
            f"- Steps: {passed_count}/{total_count} passed",
        ]
        if not_run:
            lines.append(f"- Not run: {not_run}")
        lines += [
            f"- Healed selectors: {len(r.healing_records)}",
            f"- Duration: {r.duration_seconds:.1f}s",
        ]
        return "\n".join(lines)

    def _step_results_table(self, r: RunResult) -> str:
        lines = [
            "## Step Results",
            "| Step | Action | Description | Result | Duration | Notes |",
            "|------|--------|-------------|--------|----------|-------|",
        ]
        for step in r.step_reports:
            result_str = "PASS" if step.passed else "FAIL"
            notes = " ".join((step.error or step.notes or "").split())
            if len(notes) > 80:
                notes = notes[:77] + "..."
            notes = _table_cell(notes)
            lines.append(
                f"| {step.ordinal} | {step.action} | {_table_cell(step.description)} | {result_str} "
                f"| {step.duration_seconds:.1f}s | {notes} |"
            )
        return "\n".join(lines)

    def _healing_section(self, r: RunResult) -> str:
        if not r.healing_records:
            return "## Self-Healing\n\nNo selector healing occurred."
        lines = [
            "## Self-Healing",
            "| # | Original | Healed | Strategy | Time |",
            "|---|----------|--------|----------|------|",
        ]
        for index, rec in enumerate(r.healing_records, start=1):
            lines.append(
                f"| {index} | `{_table_cell(rec.original_reference)}` | `{_table_cell(rec.healed_reference)}` "
                f"| {rec.strategy} | {rec.timestamp.isoformat(timespec='seconds')} |"
            )
        return "\n".join(lines)

    def _variables_section(self, r: RunResult) -> str:
        if not r.variables:
            return "## Test Context\n\nNo variables stored."
        lines = ["## Test Context", ""]
        for name, value in r.variables.items():
            lines.append(f"- **{name}**: `{json.dumps(value, default=str)}`")
        return "\n".join(lines)
