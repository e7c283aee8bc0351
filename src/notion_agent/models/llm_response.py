"""Schema for the command-extraction response returned by the LLM."""

from typing import Optional

from pydantic import BaseModel, Field


class LLMCommandRecord(BaseModel):
    """
    One partially-typed command as the LLM reports it.

    Field names follow the JSON the extraction prompt asks for. Every field
    except `action` is optional; normalization into a Command happens in the
    parser.
    """

    action: str = Field(..., description="Action verb")
    primaryTarget: Optional[str] = Field(default=None, description="Destination page")
    secondaryTarget: Optional[str] = Field(default=None, description="Parent page, or move destination")
    content: Optional[str] = Field(default=None)
    oldContent: Optional[str] = Field(default=None)
    newContent: Optional[str] = Field(default=None)
    formatType: Optional[str] = Field(default=None)
    language: Optional[str] = Field(default=None)
    sectionTarget: Optional[str] = Field(default=None)
    placement: Optional[str] = Field(default=None)
    isUrl: Optional[bool] = Field(default=None)
    commentText: Optional[str] = Field(default=None)

    model_config = {"extra": "ignore"}


class LLMCommandResponse(BaseModel):
    """Top-level object: must carry a `commands` array."""

    commands: list[LLMCommandRecord] = Field(..., description="Extracted commands in textual order")

    model_config = {"extra": "ignore"}
