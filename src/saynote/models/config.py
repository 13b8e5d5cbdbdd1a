"""Configuration models for saynote."""

import os
import stat
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, HttpUrl, field_validator

from saynote.models.blocks import DEFAULT_PAGE_ICON, DEFAULT_PAGE_TITLE


class LLMConfig(BaseModel):
    """Configuration for the NLU (LLM) API connection."""

    endpoint: HttpUrl = Field(
        ...,
        description="LLM API endpoint URL (OpenAI or Ollama compatible)"
    )

    api_key: str = Field(
        default="",
        description="API key for authentication (empty for local servers)"
    )

    model: str = Field(
        ...,
        description="Model identifier (e.g., 'gpt-4o-mini', 'llama3')"
    )

    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Per-request timeout in seconds"
    )

    max_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Retries on transient network errors"
    )

    model_config = {"frozen": True}


class InterpreterConfig(BaseModel):
    """Configuration for transcript interpretation."""

    use_llm: bool = Field(
        default=True,
        description="Ask the LLM when the local grammar does not recognize a command"
    )

    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Upper bound on one interpretation; slower answers fall back to plain text"
    )

    model_config = {"frozen": True}


class HistoryConfig(BaseModel):
    """Configuration for undo/redo history."""

    max_entries: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum snapshots kept per stack and page"
    )

    persist: bool = Field(
        default=True,
        description="Persist undo/redo stacks so they survive restarts"
    )

    model_config = {"frozen": True}


class EditorConfig(BaseModel):
    """Configuration for edit sessions."""

    autosave_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Debounce delay before an edit is persisted"
    )

    default_page_title: str = Field(
        default=DEFAULT_PAGE_TITLE,
        min_length=1,
        description="Title for pages created without one"
    )

    default_page_icon: str = Field(
        default=DEFAULT_PAGE_ICON,
        min_length=1,
        description="Icon for pages created without one"
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Configuration for local storage."""

    data_dir: str = Field(
        default="~/.local/share/saynote",
        description="Directory holding pages.json and persisted history"
    )

    @field_validator('data_dir')
    @classmethod
    def expand_data_dir(cls, v: str) -> str:
        """Expand ~ and reject paths that exist but are not directories."""
        path = Path(v).expanduser()
        if path.exists() and not path.is_dir():
            raise ValueError(
                f"Data directory is not a directory: {path}\n"
                f"Please provide a valid directory path"
            )
        return str(path)

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for saynote."""

    llm: Optional[LLMConfig] = Field(default=None, description="LLM API settings (None disables NLU)")
    interpreter: InterpreterConfig = Field(default_factory=InterpreterConfig, description="Interpreter settings")
    history: HistoryConfig = Field(default_factory=HistoryConfig, description="Undo/redo settings")
    editor: EditorConfig = Field(default_factory=EditorConfig, description="Edit session settings")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="Local storage settings")

    @property
    def data_path(self) -> Path:
        return Path(self.storage.data_dir)

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Validates file permissions before loading when the file holds an
        API key. Raises PermissionError if such a file is group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If file permissions are too open for a secret
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
                f"editor:\n"
                f"  autosave_delay_seconds: 1.0\n\n"
                f"storage:\n"
                f"  data_dir: ~/.local/share/saynote\n"
            )

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        check_permissions(path, data)
        return cls(**data)

    model_config = {"frozen": True}


def check_permissions(path: Path, data: dict) -> None:
    """Reject a group/world-accessible config file that contains an API key.

    Raises:
        PermissionError: If the file holds ``llm.api_key`` and is not mode 600
    """
    llm = data.get("llm") if isinstance(data, dict) else None
    if not isinstance(llm, dict) or not llm.get("api_key"):
        return

    mode = os.stat(path).st_mode
    if mode & (stat.S_IRWXG | stat.S_IRWXO):
        raise PermissionError(
            f"Config file has overly permissive permissions: {oct(mode)}\n"
            f"Run: chmod 600 {path}"
        )
