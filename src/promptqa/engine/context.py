"""promptqa Variable Store -- cross-step state for one test run.

API captures, UI assertions and later endpoints all read and write the same
store. One instance is created per run and handed to every component that
needs it; there is no module-level instance.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from promptqa.engine.errors import UndefinedVariableError

logger = logging.getLogger("promptqa.engine.context")

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def _display(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


class VariableStore:
    """Name -> value mapping shared by every step of a run. Last write wins."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._started = time.monotonic()

    def set(self, name: str, value: Any) -> None:
        self._data[name] = value
        logger.info("Set %s = %s", name, _display(value))

    def get(self, name: str, default: Any = None) -> Any:
        """Return the stored value, or *default* when *name* was never set."""
        if name not in self._data:
            logger.debug("Get %s -> <absent>", name)
            return default
        value = self._data[name]
        logger.debug("Get %s = %s", name, _display(value))
        return value

    def has(self, name: str) -> bool:
        return name in self._data

    def remove(self, name: str) -> None:
        logger.info("Removing %s", name)
        self._data.pop(name, None)

    def clear(self) -> None:
        logger.info("Clearing all context data")
        self._data.clear()
        self._started = time.monotonic()

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of every current entry (for reporting)."""
        return dict(self._data)

    def execution_time(self) -> float:
        """Seconds elapsed since the store was created or last cleared."""
        return time.monotonic() - self._started

    def resolve_placeholders(self, text: str) -> str:
        """Replace every ``{{name}}`` in *text* with the stored value.

        Raises UndefinedVariableError for the first name that is not in the
        store -- an unresolved placeholder is never replaced with "".
        """

        def _sub(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in self._data:
                raise UndefinedVariableError(name)
            return str(self._data[name])

        resolved = PLACEHOLDER_PATTERN.sub(_sub, text)
        if resolved != text:
            logger.debug("Resolved placeholders: %s -> %s", text, resolved)
        return resolved

    def log_snapshot(self) -> None:
        """Log every entry -- the end-of-run context dump."""
        logger.info("=== Test Context Data ===")
        for name, value in self._data.items():
            logger.info("%s: %s", name, _display(value))

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __len__(self) -> int:
        return len(self._data)
