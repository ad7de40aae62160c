"""Remote execution-sandbox orchestration for coding agents."""

__version__ = "0.1.0"
