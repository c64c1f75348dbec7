"""Shared fixtures for promptqa unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from promptqa.engine.context import VariableStore


# ---------------------------------------------------------------------------
# Fake Playwright page / locator for resolution tests
# ---------------------------------------------------------------------------

class FakeLocator:
    """Minimal stand-in for a Playwright Locator."""

    def __init__(self, page: FakePage, expression: str) -> None:
        self._page = page
        self.expression = expression

    def count(self) -> int:
        if self.expression in self._page.raising:
            raise RuntimeError(f"Invalid selector: {self.expression}")
        return self._page.counts.get(self.expression, 0)

    @property
    def first(self) -> FakeLocator:
        return self

    def evaluate(self, script: str) -> dict[str, Any]:
        return self._page.labels.get(self.expression, {"tag": "div", "id": "", "className": ""})


class FakePage:
    """Answers locator queries from an expression -> match-count map.

    Every query is appended to ``queries`` so tests can assert query order.
    Role queries are keyed as ``role=<role>``.
    """

    def __init__(
        self,
        counts: dict[str, int] | None = None,
        raising: set[str] | None = None,
        labels: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.counts = counts or {}
        self.raising = raising or set()
        self.labels = labels or {}
        self.queries: list[str] = []

    def locator(self, expression: str) -> FakeLocator:
        self.queries.append(expression)
        return FakeLocator(self, expression)

    def get_by_role(self, role: str, **kwargs: Any) -> FakeLocator:
        expression = f"role={role}"
        self.queries.append(expression)
        return FakeLocator(self, expression)


@pytest.fixture
def fake_page_factory():
    """Build a FakePage from keyword arguments."""

    def _make(**kwargs: Any) -> FakePage:
        return FakePage(**kwargs)

    return _make


# ---------------------------------------------------------------------------
# Fixture: variable store
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> VariableStore:
    return VariableStore()


# ---------------------------------------------------------------------------
# Fixture: mocked requests.Session
# ---------------------------------------------------------------------------

def _make_response(status: int = 200, json_body: Any = None, text: str = "", content_type: str | None = None) -> MagicMock:
    """Build a MagicMock shaped like a requests.Response."""
    response = MagicMock()
    response.status_code = status
    if json_body is not None:
        response.headers = {"Content-Type": content_type or "application/json"}
        response.json.return_value = json_body
        response.text = ""
    else:
        response.headers = {"Content-Type": content_type or "application/xml"}
        response.json.side_effect = ValueError("not json")
        response.text = text
    return response


@pytest.fixture
def mock_session() -> MagicMock:
    """A MagicMock session with a real headers dict; returns 200 {} by default."""
    session = MagicMock()
    session.headers = {}
    session.request.return_value = _make_response(200, json_body={})
    return session


@pytest.fixture
def make_response():
    """Factory for requests.Response-shaped mocks."""
    return _make_response


# ---------------------------------------------------------------------------
# Fixture: temporary project directory with .promptqa/ structure
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary .promptqa/ project directory with a config.yaml."""
    promptqa_dir = tmp_path / ".promptqa"
    for sub in ("prompts", "evidence"):
        (promptqa_dir / sub).mkdir(parents=True)

    config_data = {
        "environment": "contactlist",
        "headless": True,
        "viewport": {"width": 1280, "height": 720},
        "timeout_ms": 15000,
    }
    (promptqa_dir / "config.yaml").write_text(
        yaml.dump(config_data, default_flow_style=False), encoding="utf-8"
    )

    return promptqa_dir


# ---------------------------------------------------------------------------
# Fixture: sample config YAML string
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid promptqa config.yaml as a string."""
    return """\
environment: parabank
headless: false
slow_mo: 50
viewport:
  width: 1920
  height: 1080
timeout_ms: 10000
api_timeout: 5
self_healing: true
screenshot_on_failure: false
prompts_dir: my_prompts
evidence_dir: my_evidence
"""


# ---------------------------------------------------------------------------
# Fixture: sample prompt text
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_prompt() -> str:
    """A Parabank API -> UI prompt covering every action kind."""
    return """\
# Self-Healing: YES

Create an account via API and confirm it in the UI.

### Step 1: Login via API
HTTP Method: GET
Endpoint: /login/john/demo
Store the customer id into variable `customerId`

### Step 2: Create account via API
HTTP Method: POST
Endpoint: /createAccount?customerId={{customerId}}&newAccountType=0
Store the response id into variable `newAccountId`

### Step 3: Launch the Parabank application
URL: https://parabank.parasoft.com/parabank/index.htm

### Step 4: Login via UI
Username: john
Password: demo

### Step 5: Click Accounts Overview
Click 'Accounts Overview'

### Step 6: Verify the new account is listed
Verify **newAccountId** appears in the accounts table
"""


@pytest.fixture
def prompt_file(tmp_path: Path, sample_prompt: str) -> Path:
    path = tmp_path / "create-account.prompt"
    path.write_text(sample_prompt, encoding="utf-8")
    return path
