"""Decision history kept as frontmatter markdown records."""

from thinktwice.history.journal import DecisionJournal

__all__ = ["DecisionJournal"]
