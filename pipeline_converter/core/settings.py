"""
Centralized application settings using Pydantic.

All environment variables are read once at startup and validated.
Command-line flags override these values per invocation; nothing else
in the codebase reads the environment directly.
"""

from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from pipeline_converter.core.config import DEFAULT_MODEL


class ConversationSettings(BaseSettings):
    """Conversation service and session pool configuration."""

    CONVERSATION_ENDPOINT_URL: str = "http://localhost:8080/v1/chat/completions"
    CONVERSATION_API_KEY: Optional[SecretStr] = None
    CONVERSATION_MODEL: str = DEFAULT_MODEL
    CONVERSATION_TIMEOUT_SECONDS: float = 120.0
    CONVERSATION_VERIFY_SSL: bool = True
    MAX_PARALLEL_SESSIONS: int = 3
    CONVERTER_AGENT_FILE: Optional[str] = None
    VALIDATOR_AGENT_FILE: Optional[str] = None
    ENABLE_VALIDATION_TOOLS: bool = True

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class PathsSettings(BaseSettings):
    """Default input and output locations."""

    INPUT_DIRECTORY: str = "."
    OUTPUT_DIRECTORY: str = "./output"
    SOURCE_FILTER: Optional[str] = None

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class ConversionSettings(BaseSettings):
    """What gets written for each converted pipeline."""

    CREATE_WORKFLOWS_SUBDIRECTORY: bool = True
    GENERATE_VALIDATION_REPORTS: bool = True
    APPLY_IMPROVED_WORKFLOWS: bool = True
    SKIP_VALIDATION: bool = False

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class ValidationSettings(BaseSettings):
    """Validation toolset and console reporting."""

    CHECK_SECURITY: bool = True
    CHECK_ACTION_VERSIONS: bool = True
    MAX_ISSUES_IN_CONSOLE: int = 5

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class AppSettings(BaseSettings):
    """General application settings."""

    LOG_LEVEL: str = "WARNING"
    LOG_JSON: bool = False
    VERBOSE: bool = False

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


# Singleton instances - loaded once at module import
conversation_settings = ConversationSettings()
paths_settings = PathsSettings()
conversion_settings = ConversionSettings()
validation_settings = ValidationSettings()
app_settings = AppSettings()
