"""AutoPR: turn AI code recommendations into GitHub pull requests via the Gemini CLI."""

__version__ = "1.0.0"
