"""restsum: find REST API endpoints in a codebase and summarize them with AI."""

__version__ = "1.0.1"
