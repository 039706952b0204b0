"""Two-tier email triage: local heuristics first, batched LLM classification after."""

__version__ = "0.1.0"
