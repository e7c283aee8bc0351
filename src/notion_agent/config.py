"""Configuration management with lazy validation."""

from pathlib import Path
from functools import cached_property
from typing import Optional

from notion_agent.models.config import Config, LLMConfig, NotionConfig, AgentConfig
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "notion-agent" / "config.yaml"


class ConfigManager:
    """
    Configuration manager with lazy section access.

    Example:
        >>> config_mgr = ConfigManager.load_default()
        >>> notion_config = config_mgr.notion
        >>> agent_config = config_mgr.agent
    """

    def __init__(self, config: Config):
        """
        Initialize config manager with loaded config.

        Args:
            config: Loaded and validated Config instance
        """
        self._config = config

    @classmethod
    def load_default(cls) -> "ConfigManager":
        """
        Load configuration from default path (~/.config/notion-agent/config.yaml).

        Raises:
            FileNotFoundError: If config file doesn't exist
            PermissionError: If config file has wrong permissions
            ValueError: If config is invalid
        """
        return cls.load_from_path(DEFAULT_CONFIG_PATH)

    @classmethod
    def load_from_path(cls, path: Path) -> "ConfigManager":
        """
        Load configuration from specific path.

        Args:
            path: Path to config.yaml file

        Returns:
            ConfigManager instance with loaded config

        Raises:
            FileNotFoundError: If config file doesn't exist
            PermissionError: If config file has wrong permissions
            ValueError: If config is invalid
        """
        logger.info("config_loading", path=str(path))

        try:
            config = Config.load(path)
            logger.info("config_loaded", path=str(path))
            return cls(config)

        except FileNotFoundError as e:
            logger.error("config_not_found", path=str(path), error=str(e))
            raise

        except PermissionError as e:
            logger.error("config_permission_error", path=str(path), error=str(e))
            raise

        except Exception as e:
            logger.error("config_validation_error", path=str(path), error=str(e))
            raise ValueError(f"Configuration validation failed: {e}") from e

    @property
    def config(self) -> Config:
        return self._config

    @cached_property
    def llm(self) -> Optional[LLMConfig]:
        """
        Get LLM configuration.

        Returns None when no `llm` section is present; the agent then runs
        with the model-backed tier disabled.
        """
        if self._config.llm is None:
            logger.info("llm_config_absent")
        return self._config.llm

    @cached_property
    def notion(self) -> NotionConfig:
        return self._config.notion

    @cached_property
    def agent(self) -> AgentConfig:
        """
        Get pipeline configuration (uses defaults if not specified).

        Offline mode is forced on when no LLM section is configured.
        """
        agent_config = self._config.agent
        if self._config.llm is None and not agent_config.offline:
            agent_config = agent_config.model_copy(update={"offline": True})
        return agent_config
