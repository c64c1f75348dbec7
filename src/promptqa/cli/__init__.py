"""promptqa command-line interface."""
