"""Evidence-backed documentation pipeline: stages, ledgers and gates."""

__version__ = "0.1.0"
