"""notion-agent: natural-language content placement for Notion."""

__version__ = "0.1.0"
