"""promptqa engine -- core prompt-driven testing modules.

Provides the complete prompt execution engine:
- VariableStore: cross-step state shared by every step of a run
- SelfHealingLocator: primary locator + ordered fallback strategies
- APIClient: HTTP calls for API steps (requests)
- BrowserSession / UIDriver: Playwright lifecycle and page interactions
- Prompt parser: prompt text to typed Step objects
- PromptExecutor: runs parsed steps against API and UI, fail-fast
- ReportGenerator: Markdown report generation from run results
"""

from promptqa.engine.api_runner import APIClient, APIResponse
from promptqa.engine.context import VariableStore
from promptqa.engine.errors import (
    AssertionFailedError,
    MissingCredentialsError,
    MissingEndpointError,
    MissingTargetError,
    PromptFileError,
    PromptQAError,
    ResolutionExhaustedError,
    StepExecutionError,
    UIDriverUnavailableError,
    UndefinedVariableError,
)
from promptqa.engine.prompt_executor import PromptExecutor
from promptqa.engine.prompt_parser import (
    ActionKind,
    ParseMiss,
    PromptDocument,
    Step,
    StepDetails,
    parse_prompt,
    parse_prompt_document,
)
from promptqa.engine.report_generator import ReportGenerator, RunResult, StepReport
from promptqa.engine.self_healing import (
    AcceptanceRule,
    HealingRecord,
    HealingStrategy,
    SelfHealingLocator,
)
from promptqa.engine.ui_runner import BrowserSession, UIDriver

__all__ = [
    "APIClient",
    "APIResponse",
    "AcceptanceRule",
    "ActionKind",
    "AssertionFailedError",
    "BrowserSession",
    "HealingRecord",
    "HealingStrategy",
    "MissingCredentialsError",
    "MissingEndpointError",
    "MissingTargetError",
    "ParseMiss",
    "PromptDocument",
    "PromptExecutor",
    "PromptFileError",
    "PromptQAError",
    "ReportGenerator",
    "ResolutionExhaustedError",
    "RunResult",
    "SelfHealingLocator",
    "Step",
    "StepDetails",
    "StepExecutionError",
    "StepReport",
    "UIDriver",
    "UIDriverUnavailableError",
    "UndefinedVariableError",
    "VariableStore",
    "parse_prompt",
    "parse_prompt_document",
]
