"""promptqa Prompt Parser -- natural-language prompt text to typed steps.

A prompt is free-form text. Step headers (``### Step 3: Create account via
API`` or ``3. Create account via API``) open a new step; the lines that
follow, up to the next header, are that step's detail block. Each step's
action kind is classified from its header text, and structured fields
(method, endpoint, credentials, store target, assertion text) are pulled
out of its detail block by independent, best-effort patterns.

Everything here is a pure function of the input text: nothing raises on
odd input. Lines that cannot be attached to a step are reported as
ParseMiss entries instead.
"""

from __future__ import annotations

import dataclasses
import enum
import re
from pathlib import Path
from typing import Any

from promptqa.engine.errors import PromptFileError


class ActionKind(str, enum.Enum):
    API_LOGIN = "API_LOGIN"
    API_GET = "API_GET"
    API_CREATE = "API_CREATE"
    API_POST = "API_POST"  # alias of API_CREATE, never produced by the classifier
    API_DELETE = "API_DELETE"
    UI_NAVIGATE = "UI_NAVIGATE"
    UI_LOGIN = "UI_LOGIN"
    UI_CLICK = "UI_CLICK"
    UI_VERIFY = "UI_VERIFY"
    UNKNOWN = "UNKNOWN"


@dataclasses.dataclass(frozen=True)
class StepDetails:
    """Fields extracted from a step's detail block. None = not specified."""

    method: str | None = None
    endpoint: str | None = None
    username: str | None = None
    password: str | None = None
    store_as: str | None = None
    validate_text: str | None = None
    raw_text: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}


@dataclasses.dataclass(frozen=True)
class Step:
    """One parsed prompt step. ``ordinal`` is the number written in the prompt."""

    ordinal: int
    description: str
    action: ActionKind
    details: StepDetails


@dataclasses.dataclass(frozen=True)
class ParseMiss:
    """A content line that belongs to no step."""

    line_number: int
    text: str
    reason: str


@dataclasses.dataclass
class PromptDocument:
    steps: list[Step]
    misses: list[ParseMiss]
    self_healing: bool | None = None


# -- Patterns ----------------------------------------------------------------

_HEADING_STEP = re.compile(r"^#{1,3}\s*Step\s*(\d+)[:.]?\s*(.*)", re.IGNORECASE)
_NUMBERED_STEP = re.compile(r"^(\d+)\.\s*(.*)")

_SELF_HEALING = re.compile(r"^#?\s*Self-Healing:\s*(YES|NO)", re.IGNORECASE | re.MULTILINE)

_METHOD = re.compile(r"HTTP\s+Method:\s*(\w+)", re.IGNORECASE)
_ENDPOINT = re.compile(r"(?:Endpoint|URL):\s*([^\s]+)", re.IGNORECASE)
_USERNAME = re.compile(r"Username:\s*([^\s]+)", re.IGNORECASE)
_PASSWORD = re.compile(r"Password:\s*([^\s]+)", re.IGNORECASE)
_STORE_AS = re.compile(
    r"Store.*?(?:into\s+variable|in\s+a?\s+(?:global\s+)?variable\s+called?)"
    r"\s*[→\-]*\s*[`\"]?(\w+)[`\"]?",
    re.IGNORECASE,
)
_VALIDATE_TEXT = re.compile(
    r"(?:Check|Verify|Validate|Ensure).*?[\"`']([^\"`']+)[\"`']",
    re.IGNORECASE,
)

# (required substrings, any-of substrings, action) -- first match wins
_ACTION_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...], ActionKind], ...] = (
    (("login", "api"), (), ActionKind.API_LOGIN),
    (("create", "api"), (), ActionKind.API_CREATE),
    (("retrieve", "api"), (), ActionKind.API_GET),
    (("delete", "api"), (), ActionKind.API_DELETE),
    ((), ("launch", "open", "navigate"), ActionKind.UI_NAVIGATE),
    (("login", "ui"), (), ActionKind.UI_LOGIN),
    ((), ("click",), ActionKind.UI_CLICK),
    ((), ("verify", "validate", "check"), ActionKind.UI_VERIFY),
)


# -- Line classification -----------------------------------------------------


def parse_step_header(line: str) -> tuple[int, str] | None:
    """Return (ordinal, header text) when *line* opens a new step."""
    trimmed = line.strip()
    match = _HEADING_STEP.match(trimmed) or _NUMBERED_STEP.match(trimmed)
    if not match:
        return None
    return int(match.group(1)), match.group(2) or ""


def is_detail_line(line: str) -> bool:
    """Blank lines, headings and horizontal rules are not step details."""
    trimmed = line.strip()
    return bool(trimmed) and not trimmed.startswith("#") and not trimmed.startswith("---")


def determine_action(description: str) -> ActionKind:
    """Classify a step header into an ActionKind (UNKNOWN if nothing fits)."""
    lower = description.lower()
    for required, any_of, action in _ACTION_RULES:
        if required and not all(word in lower for word in required):
            continue
        if any_of and not any(word in lower for word in any_of):
            continue
        return action
    return ActionKind.UNKNOWN


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def parse_step_details(details_text: str) -> StepDetails:
    """Extract every recognizable field from a step's detail block."""
    method = _first_group(_METHOD, details_text)
    return StepDetails(
        method=method.upper() if method else None,
        endpoint=_first_group(_ENDPOINT, details_text),
        username=_first_group(_USERNAME, details_text),
        password=_first_group(_PASSWORD, details_text),
        store_as=_first_group(_STORE_AS, details_text),
        validate_text=_first_group(_VALIDATE_TEXT, details_text),
        raw_text=details_text,
    )


def detect_self_healing(content: str) -> bool | None:
    """Read the ``Self-Healing: YES|NO`` directive; None when absent."""
    match = _SELF_HEALING.search(content)
    if not match:
        return None
    return match.group(1).upper() == "YES"


# -- Documents ---------------------------------------------------------------


def _build_step(ordinal: int, description: str, detail_lines: list[str]) -> Step:
    return Step(
        ordinal=ordinal,
        description=description,
        action=determine_action(description),
        details=parse_step_details("\n".join(detail_lines)),
    )


def parse_prompt_document(content: str) -> PromptDocument:
    """Split prompt text into steps, in source order."""
    steps: list[Step] = []
    misses: list[ParseMiss] = []
    header: tuple[int, str] | None = None
    detail_lines: list[str] = []

    for line_number, line in enumerate(content.splitlines(), start=1):
        step_header = parse_step_header(line)
        if step_header is not None:
            if header is not None:
                steps.append(_build_step(header[0], header[1], detail_lines))
            header = step_header
            detail_lines = []
        elif is_detail_line(line):
            if header is None:
                if _SELF_HEALING.match(line.strip()):
                    continue
                misses.append(ParseMiss(line_number, line.strip(), "text before first step header"))
            else:
                detail_lines.append(line.strip())

    if header is not None:
        steps.append(_build_step(header[0], header[1], detail_lines))

    return PromptDocument(steps=steps, misses=misses, self_healing=detect_self_healing(content))


def parse_prompt(content: str) -> list[Step]:
    return parse_prompt_document(content).steps


def load_prompt_file(path: Path | str) -> PromptDocument:
    """Read and parse a prompt file."""
    prompt_path = Path(path)
    if not prompt_path.is_file():
        raise PromptFileError(f"Prompt file not found: {prompt_path}")
    try:
        content = prompt_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PromptFileError(f"Cannot read prompt file {prompt_path}: {exc}") from exc
    return parse_prompt_document(content)
