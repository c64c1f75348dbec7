"""promptqa Prompt Executor -- runs parsed prompt steps against API and UI.

Steps run strictly in parse order, one at a time. Each step is dispatched
by its ActionKind to a handler that drives the APIClient or the UIDriver,
reading and writing the shared VariableStore. The first failing step aborts
the run: its exception is re-raised unchanged after the step is recorded.
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Callable

from promptqa.engine.api_runner import APIClient, APIResponse
from promptqa.engine.context import VariableStore
from promptqa.engine.errors import (
    AssertionFailedError,
    MissingCredentialsError,
    MissingEndpointError,
    MissingTargetError,
    StepExecutionError,
    UIDriverUnavailableError,
    UndefinedVariableError,
)
from promptqa.engine.prompt_parser import (
    ActionKind,
    PromptDocument,
    Step,
    load_prompt_file,
    parse_prompt_document,
)
from promptqa.engine.report_generator import StepReport
from promptqa.engine.self_healing import HealingRecord
from promptqa.engine.ui_runner import UIDriver

logger = logging.getLogger("promptqa.engine.prompt_executor")

URL_PATTERN = re.compile(r"https?://[^\s]+")
CLICK_LABEL_PATTERN = re.compile(r"Click\s+[\"`']([^\"`']+)[\"`']", re.IGNORECASE)
_BOLD_VARIABLE = re.compile(r"\*\*(\w+)\*\*")

# Conventional login form controls
USERNAME_INPUT = 'input[name="username"]'
PASSWORD_INPUT = 'input[name="password"]'
SUBMIT_FALLBACK = 'button[type="submit"]'
RESULTS_TABLE = "table"


def _first_field(body: dict[str, Any], *keys: str) -> Any:
    """First capturable value among *keys*; None and the empty string count as absent."""
    for key in keys:
        value = body.get(key)
        if value is not None and value != "":
            return value
    return None


class PromptExecutor:
    """Loads a prompt and executes its steps.

    Example::

        store = VariableStore()
        api = APIClient(config.api_base_url, store=store)
        executor = PromptExecutor(api, store, ui=UIDriver(page, store))
        executor.load_prompt("prompts/create-account.prompt")
        executor.execute()
    """

    def __init__(
        self,
        api: APIClient,
        store: VariableStore,
        ui: UIDriver | None = None,
        self_healing: bool = False,
    ) -> None:
        self._api = api
        self._store = store
        self._ui = ui
        self._self_healing = False
        self._document = PromptDocument(steps=[], misses=[])
        self.step_reports: list[StepReport] = []

        self._handlers: dict[ActionKind, Callable[[Step], str]] = {
            ActionKind.API_LOGIN: self._execute_api_get,
            ActionKind.API_GET: self._execute_api_get,
            ActionKind.API_CREATE: self._execute_api_post,
            ActionKind.API_POST: self._execute_api_post,
            ActionKind.API_DELETE: self._execute_api_delete,
            ActionKind.UI_NAVIGATE: self._execute_ui_navigate,
            ActionKind.UI_LOGIN: self._execute_ui_login,
            ActionKind.UI_CLICK: self._execute_ui_click,
            ActionKind.UI_VERIFY: self._execute_ui_verify,
        }

        if self_healing:
            self.enable_self_healing()

    # -- Loading ---------------------------------------------------------

    @property
    def steps(self) -> list[Step]:
        return list(self._document.steps)

    @property
    def document(self) -> PromptDocument:
        return self._document

    @property
    def self_healing(self) -> bool:
        return self._self_healing

    def enable_self_healing(self) -> None:
        self._self_healing = True
        if self._ui is not None:
            self._ui.enable_self_healing()
        logger.info("Self-healing ENABLED")

    def load_prompt(self, path: Path | str) -> PromptDocument:
        logger.info("Loading prompt: %s", path)
        return self._load(load_prompt_file(path))

    def load_text(self, content: str) -> PromptDocument:
        return self._load(parse_prompt_document(content))

    def _load(self, document: PromptDocument) -> PromptDocument:
        self._document = document
        self.step_reports = []
        if document.self_healing and not self._self_healing:
            logger.info("Self-Healing detected in prompt: ENABLED")
            self.enable_self_healing()
        for miss in document.misses:
            logger.debug("Line %d ignored (%s): %s", miss.line_number, miss.reason, miss.text)
        logger.info("Parsed %d steps", len(document.steps))
        return document

    # -- Execution -------------------------------------------------------

    def execute(self) -> list[StepReport]:
        """Run every loaded step in order; the first failure propagates."""
        logger.info("=== Starting Prompt Execution ===")
        try:
            for step in self._document.steps:
                self.execute_step(step)
            logger.info("=== Prompt Execution Complete ===")
        finally:
            self._store.log_snapshot()
            for line in self.healing_summary():
                logger.info("[Self-Healing] %s", line)
        return list(self.step_reports)

    def execute_step(self, step: Step) -> StepReport:
        logger.info("[Step %d] %s", step.ordinal, step.description)
        logger.info("[Action] %s", step.action.value)
        start = time.monotonic()

        handler = self._handlers.get(step.action)
        try:
            if handler is None:
                logger.warning("Unknown action type for step %d: %s", step.ordinal, step.description)
                notes = "skipped: unknown action"
            else:
                notes = handler(step)
        except Exception as exc:
            if isinstance(exc, StepExecutionError) and exc.step is None:
                exc.attach_step(step)
            report = self._report(step, start, passed=False, error=str(exc))
            logger.error("[Step %d] Failed: %s", step.ordinal, exc)
            self.step_reports.append(report)
            raise

        report = self._report(step, start, passed=True, notes=notes)
        self.step_reports.append(report)
        logger.info("[Step %d] Completed", step.ordinal)
        return report

    @staticmethod
    def _report(step: Step, start: float, passed: bool, error: str | None = None, notes: str = "") -> StepReport:
        return StepReport(
            ordinal=step.ordinal,
            description=step.description,
            action=step.action.value,
            passed=passed,
            duration_seconds=round(time.monotonic() - start, 2),
            error=error,
            notes=notes,
        )

    def healing_log(self) -> tuple[HealingRecord, ...]:
        if self._ui is None or self._ui.healer is None:
            return ()
        return self._ui.healer.healing_log()

    def healing_summary(self) -> list[str]:
        """Healing summary lines for the run; empty when self-healing is off."""
        if self._ui is None or self._ui.healer is None:
            return []
        return self._ui.healer.summary_lines()

    # -- API handlers ----------------------------------------------------

    def _resolve_endpoint(self, step: Step, verb: str) -> str:
        endpoint = step.details.endpoint
        if not endpoint:
            raise MissingEndpointError(f"No endpoint specified for API {verb}")
        return self._store.resolve_placeholders(endpoint)

    @staticmethod
    def _status_note(response: APIResponse) -> str:
        if not response.ok:
            logger.warning("API call returned HTTP %d", response.status)
        return f"HTTP {response.status}"

    def _execute_api_get(self, step: Step) -> str:
        endpoint = self._resolve_endpoint(step, "GET")
        response = self._api.get(endpoint)
        store_as = step.details.store_as
        if store_as:
            value = self._capture_get(response.body, store_as)
            self._store_captured(store_as, value)
        return self._status_note(response)

    def _execute_api_post(self, step: Step) -> str:
        endpoint = self._resolve_endpoint(step, "POST")
        response = self._api.post(endpoint)
        store_as = step.details.store_as
        if store_as:
            value = self._capture_post(response.body, store_as)
            self._store_captured(store_as, value)
        return self._status_note(response)

    def _execute_api_delete(self, step: Step) -> str:
        endpoint = self._resolve_endpoint(step, "DELETE")
        response = self._api.delete(endpoint)
        return self._status_note(response)

    def _capture_get(self, body: Any, store_as: str) -> Any:
        """Value for a GET store target: named field, else ``id``."""
        if isinstance(body, str):
            if "<" not in body:
                return None
            return self._api.extract_from_xml(body, store_as) or self._api.extract_from_xml(body, "id")
        if isinstance(body, list):
            body = next((item for item in body if isinstance(item, dict)), None)
        if isinstance(body, dict):
            return _first_field(body, store_as, "id")
        return None

    def _capture_post(self, body: Any, store_as: str) -> Any:
        """Value for a POST store target: named field, else ``id``, else the body."""
        if isinstance(body, str):
            if "<" not in body:
                return None
            return self._api.extract_from_xml(body, store_as) or self._api.extract_from_xml(body, "id")
        if isinstance(body, dict):
            value = _first_field(body, store_as, "id")
            if value is not None:
                return value
        return body

    def _store_captured(self, store_as: str, value: Any) -> None:
        if value is None or value == "":
            logger.warning("Nothing to store into %s: response has no matching field or id", store_as)
            return
        self._store.set(store_as, value)

    # -- UI handlers -----------------------------------------------------

    def _require_ui(self) -> UIDriver:
        if self._ui is None:
            raise UIDriverUnavailableError("UI driver not initialized -- no browser page for this run")
        return self._ui

    def _execute_ui_navigate(self, step: Step) -> str:
        ui = self._require_ui()
        url = step.details.endpoint
        if not url:
            match = URL_PATTERN.search(step.details.raw_text)
            url = match.group(0) if match else None
        if not url:
            raise MissingTargetError("No URL specified for navigation")
        url = self._store.resolve_placeholders(url)
        ui.navigate_to(url)
        return url

    def _execute_ui_login(self, step: Step) -> str:
        ui = self._require_ui()
        username = step.details.username
        password = step.details.password
        if not username or not password:
            raise MissingCredentialsError("Username or password not specified")

        ui.fill(USERNAME_INPUT, username)
        ui.fill(PASSWORD_INPUT, password)

        try:
            ui.click_button("Submit")
        except Exception:
            logger.debug("No 'Submit' button; trying 'Log In'")
            try:
                ui.click_button("Log In")
            except Exception:
                logger.debug("No 'Log In' button; trying %s", SUBMIT_FALLBACK)
                ui.click(SUBMIT_FALLBACK)
        return f"logged in as {username}"

    def _execute_ui_click(self, step: Step) -> str:
        ui = self._require_ui()
        match = CLICK_LABEL_PATTERN.search(step.details.raw_text)
        if not match:
            raise MissingTargetError("No quoted label found to click (expected Click '<label>')")
        label = match.group(1)
        try:
            ui.click_link(label)
        except Exception:
            logger.debug("No link named %r; trying a button", label)
            ui.click_button(label)
        return f"clicked {label}"

    def _execute_ui_verify(self, step: Step) -> str:
        ui = self._require_ui()
        variable_match = _BOLD_VARIABLE.search(step.details.raw_text)

        if variable_match:
            name = variable_match.group(1)
            if not self._store.has(name):
                raise UndefinedVariableError(name, f"Variable {name} to verify not found in test context")
            value = str(self._store.get(name))
            if not ui.is_value_in_table(RESULTS_TABLE, value) and not ui.is_text_present(value):
                raise AssertionFailedError(f"Value {value} from variable {name} not found on page")
            logger.info("[Verification] %s = %s found on page", name, value)
            return f"{name} = {value} found"

        if step.details.validate_text:
            ui.verify_text_present(step.details.validate_text)
            return f'"{step.details.validate_text}" present'

        logger.warning("Step %d has nothing to verify", step.ordinal)
        return "nothing to verify"
