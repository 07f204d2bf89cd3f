"""DAMP - local PHP development environment orchestrator."""

__version__ = "0.1.0"
