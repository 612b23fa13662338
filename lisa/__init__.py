"""
Lisa - Structured feature interviews driven by AI command-line tools.

This package runs a turn-based interview against one of several AI CLIs
(Claude Code, Codex, GitHub Copilot, Cursor, OpenCode), extracts structured
questions and the final PRD from their output, and checkpoints progress so an
interrupted interview can be resumed.
"""

__version__ = "0.1.0"
