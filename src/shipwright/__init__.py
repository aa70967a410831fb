"""shipwright - retrying task execution and self-verification for automated delivery."""

__version__ = "0.1.0"
