"""promptqa -- prompt-driven API + UI test harness with self-healing locators."""

__version__ = "0.1.0"
