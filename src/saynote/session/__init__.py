"""Edit sessions: interpreter, executor, link validation, history and auto-save wired together."""

from saynote.session.session import CommandOutcome, EditSession, Notice

__all__ = ["CommandOutcome", "EditSession", "Notice"]
