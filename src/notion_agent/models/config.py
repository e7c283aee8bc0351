"""Configuration models for notion-agent."""

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pathlib import Path
from typing import Literal, Optional
import yaml
import os
import stat


class LLMConfig(BaseModel):
    """Configuration for the LLM API used by the model-backed parser tier."""

    endpoint: HttpUrl = Field(
        ...,
        description="LLM API endpoint URL (OpenAI-compatible, e.g. https://api.openai.com/v1)"
    )

    api_key: str = Field(
        ...,
        description="API key for authentication"
    )

    model: str = Field(
        ...,
        description="Model identifier (e.g., 'gpt-4o-mini')"
    )

    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for command extraction"
    )

    model_config = {"frozen": True}


class NotionConfig(BaseModel):
    """Configuration for the Notion API connection."""

    api_token: str = Field(
        ...,
        description="Internal integration token"
    )

    api_version: str = Field(
        default="2022-06-28",
        description="Value sent in the Notion-Version header"
    )

    base_url: HttpUrl = Field(
        default="https://api.notion.com/v1",
        description="Notion API base URL"
    )

    root_page_id: Optional[str] = Field(
        default=None,
        description="Parent page for pages created without an explicit parent"
    )

    @field_validator('api_token')
    @classmethod
    def validate_api_token(cls, v: str) -> str:
        """Reject blank tokens early."""
        if not v.strip():
            raise ValueError(
                "Notion api_token is empty\n"
                "Create an integration at https://www.notion.so/my-integrations and paste its token"
            )
        return v.strip()

    model_config = {"frozen": True}


class AgentConfig(BaseModel):
    """Behaviour of the command pipeline."""

    default_page: str = Field(
        default="Inbox",
        min_length=1,
        description="Page used when an instruction names no destination"
    )

    offline: bool = Field(
        default=False,
        description="Skip the model-backed parser tier entirely"
    )

    match_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum target-resolver score accepted as a match"
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for a command on transient failures"
    )

    backoff_base: float = Field(
        default=1.0,
        ge=0.0,
        description="Seconds of backoff per attempt number (linear)"
    )

    call_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Upper bound in seconds on any single external call"
    )

    section_fallback: Literal["append", "error"] = Field(
        default="append",
        description="What to do when a requested section is missing"
    )

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for notion-agent."""

    llm: Optional[LLMConfig] = Field(default=None, description="LLM API settings (optional in offline mode)")
    notion: NotionConfig = Field(..., description="Notion API settings")
    agent: AgentConfig = Field(default_factory=AgentConfig, description="Pipeline settings")

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Validates file permissions before loading.
        Raises PermissionError if file is group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If file permissions are too open
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at {path}\n\n"
                f"Please create the file with the following format:\n\n"
                f"llm:\n"
                f"  endpoint: https://api.openai.com/v1\n"
                f"  api_key: YOUR_API_KEY_HERE\n"
                f"  model: gpt-4o-mini\n\n"
                f"notion:\n"
                f"  api_token: YOUR_NOTION_TOKEN_HERE\n\n"
                f"agent:\n"
                f"  default_page: Inbox\n"
            )

        # Must be 600
        mode = os.stat(path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {path}"
            )

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping at the top level")

        return cls(**data)

    model_config = {"frozen": True}
