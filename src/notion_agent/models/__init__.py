"""Pydantic data models for notion-agent."""

from notion_agent.models.command import Action, Command, PlacementType
from notion_agent.models.document import Block, DocumentStructure, Section

__all__ = ["Action", "Block", "Command", "DocumentStructure", "PlacementType", "Section"]
