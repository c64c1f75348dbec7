"""promptqa Self-Healing Locator -- resilient element resolution.

Resolves a possibly-stale locator plus a human description to one element:

1. The primary locator is tried as-is; any match is returned untouched.
2. Otherwise a fixed, ordered chain of fallback strategies proposes
   candidate locators, from "same reference, different spelling" to
   "loose structural guess". The first candidate a strategy accepts wins.
3. Every fallback win is appended to the healing log.

Strategies that may match too broadly carry an AcceptanceRule capping the
match count, so a generic candidate is rejected rather than bound to the
wrong element.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import logging
import re
from typing import TYPE_CHECKING, Any

from promptqa.engine.errors import ResolutionExhaustedError

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("promptqa.engine.self_healing")

# Reads id / class / tag of the healed element in one round-trip
_ELEMENT_LABEL_SCRIPT = """
(el) => ({
  tag: el.tagName ? el.tagName.toLowerCase() : '',
  id: el.id || '',
  className: typeof el.className === 'string' ? el.className : '',
})
"""


# -- Acceptance Rules --------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class AcceptanceRule:
    """Inclusive match-count window a candidate must fall into."""

    min_matches: int = 1
    max_matches: int | None = None

    def accepts(self, count: int) -> bool:
        if count < self.min_matches:
            return False
        return self.max_matches is None or count <= self.max_matches


DEFAULT_ACCEPTANCE = AcceptanceRule(min_matches=1)
PARTIAL_ATTRIBUTE_ACCEPTANCE = AcceptanceRule(min_matches=1, max_matches=5)
STRUCTURAL_LOOSENING_ACCEPTANCE = AcceptanceRule(min_matches=1, max_matches=10)


# -- Data Types --------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Candidate:
    """A locator proposed by a strategy.

    Either a selector expression passed to ``page.locator()``, or an ARIA
    role queried through ``page.get_by_role()``.
    """

    expression: str
    role: str | None = None

    @classmethod
    def for_role(cls, role: str) -> Candidate:
        return cls(expression=f"role={role}", role=role)

    def locate(self, page: Page) -> Locator:
        if self.role is not None:
            return page.get_by_role(self.role)  # type: ignore[arg-type]
        return page.locator(self.expression)


@dataclasses.dataclass(frozen=True)
class HealingRecord:
    """A primary locator that was substituted by a fallback."""

    original_reference: str
    healed_reference: str
    strategy: str
    timestamp: dt.datetime


class StrategyOutcome(str, enum.Enum):
    NOT_APPLICABLE = "not_applicable"
    NO_MATCH = "no_match"
    HEALED = "healed"


@dataclasses.dataclass
class StrategyAttempt:
    """Diagnostics for one strategy within one resolve() call."""

    strategy: str
    outcome: StrategyOutcome
    tried: list[str] = dataclasses.field(default_factory=list)


# -- Strategies --------------------------------------------------------------


class HealingStrategy:
    """Base class: a named, stateless source of candidate locators."""

    name: str = ""
    description: str = ""
    acceptance: AcceptanceRule = DEFAULT_ACCEPTANCE

    def candidates(self, reference: str, description: str) -> list[Candidate]:
        raise NotImplementedError

    def applies_to(self, reference: str, description: str) -> bool:
        return bool(self.candidates(reference, description))


class CssVariationStrategy(HealingStrategy):
    """Re-spell the id / class / tag fragments of the primary reference."""

    name = "css_variations"
    description = 'Try different CSS selector formats (#id, [id="..."], [id*="..."])'

    _ID = re.compile(r"#([\w-]+)")
    _CLASS = re.compile(r"\.([\w-]+)")
    _TAG = re.compile(r"^(\w+)")

    def candidates(self, reference: str, description: str) -> list[Candidate]:
        id_match = self._ID.search(reference)
        class_match = self._CLASS.search(reference)
        tag_match = self._TAG.search(reference)

        variations: list[str] = []
        if id_match:
            elem_id = id_match.group(1)
            variations += [f"#{elem_id}", f'[id="{elem_id}"]', f'[id*="{elem_id}"]']
        if class_match:
            cls = class_match.group(1)
            variations += [f".{cls}", f'[class*="{cls}"]']
        if tag_match:
            tag = tag_match.group(1)
            if id_match:
                variations.append(f"{tag}#{id_match.group(1)}")
            if class_match:
                variations.append(f"{tag}.{class_match.group(1)}")
        return [Candidate(v) for v in variations]


class TextMatchStrategy(HealingStrategy):
    """Search by visible text, aria-label, title and placeholder."""

    name = "text"
    description = "Search by visible text, aria-label, placeholder"

    _ROLE_WORDS = re.compile(r"element|button|link|field|input", re.IGNORECASE)
    MIN_TEXT_LENGTH = 2

    def search_texts(self, description: str) -> list[str]:
        texts: list[str] = []
        for text in (description, self._ROLE_WORDS.sub("", description).strip()):
            if len(text) < self.MIN_TEXT_LENGTH or text in texts:
                continue
            texts.append(text)
        return texts

    def candidates(self, reference: str, description: str) -> list[Candidate]:
        found: list[Candidate] = []
        for text in self.search_texts(description):
            found += [
                Candidate(f"text={text}"),
                Candidate(f'text="{text}"'),
                Candidate(f':has-text("{text}")'),
                Candidate(f'button:has-text("{text}")'),
                Candidate(f'a:has-text("{text}")'),
                Candidate(f'[aria-label="{text}"]'),
                Candidate(f'[title="{text}"]'),
                Candidate(f'[placeholder="{text}"]'),
            ]
        return found


class RoleMatchStrategy(HealingStrategy):
    """Map keywords in the description to ARIA roles."""

    name = "role"
    description = "Use ARIA roles (button, link, textbox)"

    # Ordered: keyword found in the description -> roles to query
    ROLE_MAPPING: dict[str, tuple[str, ...]] = {
        "button": ("button",),
        "link": ("link",),
        "input": ("textbox",),
        "checkbox": ("checkbox",),
        "radio": ("radio",),
        "select": ("combobox",),
        "heading": ("heading",),
    }

    def candidates(self, reference: str, description: str) -> list[Candidate]:
        desc_lower = description.lower()
        found: list[Candidate] = []
        for keyword, roles in self.ROLE_MAPPING.items():
            if keyword in desc_lower:
                found += [Candidate.for_role(role) for role in roles]
        return found


class PartialAttributeStrategy(HealingStrategy):
    """Substring / prefix matches on attributes named in the reference."""

    name = "partial_attribute"
    description = 'Match partial attribute values ([name*="..."])'
    acceptance = PARTIAL_ATTRIBUTE_ACCEPTANCE

    _ATTR = re.compile(r'\[(\w+)="([^"]+)"\]')
    _NAME = re.compile(r'name="([^"]+)"')
    _TYPE = re.compile(r'type="([^"]+)"')

    def candidates(self, reference: str, description: str) -> list[Candidate]:
        partials: list[str] = []
        attr_match = self._ATTR.search(reference)
        if attr_match:
            attr, value = attr_match.groups()
            partials += [f'[{attr}*="{value}"]', f'[{attr}^="{value}"]']
        name_match = self._NAME.search(reference)
        if name_match:
            partials.append(f'[name*="{name_match.group(1)}"]')
        type_match = self._TYPE.search(reference)
        if type_match:
            partials.append(f'[type="{type_match.group(1)}"]')
        return [Candidate(p) for p in partials]


class StructuralLooseningStrategy(HealingStrategy):
    """Drop parent/child constraints from the reference."""

    name = "structural_loosening"
    description = "Simplify selectors by removing parent paths"
    acceptance = STRUCTURAL_LOOSENING_ACCEPTANCE

    _CHILD_COMBINATOR = re.compile(r"\s*>\s*")

    def candidates(self, reference: str, description: str) -> list[Candidate]:
        patterns = [
            self._CHILD_COMBINATOR.sub(" ", reference).strip(),
            reference.split(">")[0].strip(),
            reference.split(" ")[0].strip(),
        ]
        loosened: list[str] = []
        for pattern in patterns:
            if pattern and pattern != reference and pattern not in loosened:
                loosened.append(pattern)
        return [Candidate(p) for p in loosened]


# Fixed priority: most intent-preserving first, loosest guess last
DEFAULT_STRATEGIES: tuple[HealingStrategy, ...] = (
    CssVariationStrategy(),
    TextMatchStrategy(),
    RoleMatchStrategy(),
    PartialAttributeStrategy(),
    StructuralLooseningStrategy(),
)


# -- Resolver ----------------------------------------------------------------


class SelfHealingLocator:
    """Finds elements through the primary locator or a fallback strategy.

    One instance per page per run; the healing log lives as long as the
    instance (or until clear_log()).
    """

    def __init__(
        self,
        page: Page,
        strategies: tuple[HealingStrategy, ...] = DEFAULT_STRATEGIES,
    ) -> None:
        self._page = page
        self._strategies = strategies
        self._healing_log: list[HealingRecord] = []
        self.last_attempts: list[StrategyAttempt] = []

    @property
    def strategies(self) -> tuple[HealingStrategy, ...]:
        return self._strategies

    def resolve(self, primary_reference: str, description: str) -> Locator:
        """Return the first element matching the primary reference or a fallback.

        Raises:
            ResolutionExhaustedError: when the primary reference and every
                strategy fail.
        """
        logger.info("Attempting to locate: %s", description)
        logger.debug("Primary selector: %s", primary_reference)
        self.last_attempts = []

        try:
            primary = self._page.locator(primary_reference)
            if primary.count() > 0:
                logger.info("Primary selector worked: %s", primary_reference)
                return primary.first
        except Exception as exc:
            logger.debug("Primary selector errored: %s (%s)", primary_reference, exc)

        logger.info("Primary selector failed: %s -- trying fallback strategies", primary_reference)

        for index, strategy in enumerate(self._strategies, start=1):
            logger.info("Strategy %d: %s - %s", index, strategy.name, strategy.description)
            attempt, locator = self._try_strategy(strategy, primary_reference, description)
            self.last_attempts.append(attempt)
            if locator is not None:
                self._record_healing(primary_reference, self._label_for(locator), strategy.name)
                return locator

        raise ResolutionExhaustedError(description, primary_reference)

    def _try_strategy(
        self,
        strategy: HealingStrategy,
        reference: str,
        description: str,
    ) -> tuple[StrategyAttempt, Locator | None]:
        candidates = strategy.candidates(reference, description)
        if not candidates:
            logger.info("Strategy %s not applicable for selector: %s", strategy.name, reference)
            return StrategyAttempt(strategy.name, StrategyOutcome.NOT_APPLICABLE), None

        attempt = StrategyAttempt(strategy.name, StrategyOutcome.NO_MATCH)
        for candidate in candidates:
            attempt.tried.append(candidate.expression)
            try:
                locator = candidate.locate(self._page)
                count = locator.count()
            except Exception as exc:
                logger.debug("Candidate errored: %s (%s)", candidate.expression, exc)
                continue
            if strategy.acceptance.accepts(count):
                logger.info(
                    "%s succeeded: %s (found %d elements)",
                    strategy.name, candidate.expression, count,
                )
                attempt.outcome = StrategyOutcome.HEALED
                return attempt, locator.first
            logger.debug(
                "Candidate rejected: %s (found %d elements - too generic or none)",
                candidate.expression, count,
            )

        logger.info("Strategy %s failed", strategy.name)
        return attempt, None

    @staticmethod
    def _label_for(locator: Locator) -> str:
        """Short readable selector for the healed element: #id, .class, tag."""
        try:
            info: dict[str, Any] = locator.evaluate(_ELEMENT_LABEL_SCRIPT)
        except Exception:
            return "unknown"
        if info.get("id"):
            return f"#{info['id']}"
        class_name = (info.get("className") or "").split()
        if class_name:
            return f".{class_name[0]}"
        return info.get("tag") or "unknown"

    def _record_healing(self, original: str, healed: str, strategy: str) -> None:
        record = HealingRecord(
            original_reference=original,
            healed_reference=healed,
            strategy=strategy,
            timestamp=dt.datetime.now(dt.timezone.utc),
        )
        self._healing_log.append(record)
        logger.info(
            "HEALED SELECTOR: original=%s healed=%s strategy=%s time=%s",
            original, healed, strategy, record.timestamp.isoformat(),
        )

    # -- Healing log -----------------------------------------------------

    def healing_log(self) -> tuple[HealingRecord, ...]:
        return tuple(self._healing_log)

    def clear_log(self) -> None:
        self._healing_log = []

    def summary_lines(self) -> list[str]:
        """Human-readable healing summary, one line per entry."""
        if not self._healing_log:
            return ["No selector healing occurred in this test"]
        lines = [f"Total healed selectors: {len(self._healing_log)}"]
        for index, entry in enumerate(self._healing_log, start=1):
            lines.append(
                f"Healing #{index}: {entry.original_reference} -> {entry.healed_reference} "
                f"({entry.strategy}, {entry.timestamp.isoformat()})"
            )
        return lines
