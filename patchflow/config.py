"""YAML configuration for patchflow sessions and the CLI."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from patchflow.models import StrictAnchorMode

DEFAULT_CONFIG_FILE = "patchflow.yaml"
CONFIG_SECTION = "patchflow"


class PatchflowConfig(BaseModel):
    """Settings shared by the parser, merger, stores and history."""

    model_config = ConfigDict(extra="forbid")

    file_tag: str = Field("FILE", min_length=1, description="Tag that opens a file block, e.g. FILE")
    anchor_mode: StrictAnchorMode = StrictAnchorMode.EXACT_THEN_NORMALIZED
    store: Literal["local", "git", "github"] = "local"
    root: str = "."
    repository: Optional[str] = Field(None, description="owner/name for the github store")
    branch: Optional[str] = None
    token_env_var: str = "GITHUB_TOKEN"
    commit_message: str = "patchflow: {operation} {path}"
    logs_root: str = "logs"
    history_file: Optional[str] = None
    history_limit: int = Field(50, ge=0, description="Entries kept in history_file; 0 keeps everything")

    @field_validator("file_tag")
    @classmethod
    def _strip_brackets(cls, value: str) -> str:
        tag = value.strip().strip("[]").strip()
        if not tag:
            raise ValueError("file_tag must not be blank")
        return tag

    @field_validator("repository")
    @classmethod
    def _check_repository(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value.count("/") != 1:
            raise ValueError("repository must look like 'owner/name'")
        return value

    def format_commit_message(self, path: str, operation: str) -> str:
        return self.commit_message.format(path=path, operation=operation)

    def with_overrides(self, **overrides: Any) -> "PatchflowConfig":
        """Return a validated copy with every non-``None`` override applied."""

        data = self.model_dump()
        data.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return PatchflowConfig(**data)
        except ValidationError as exc:
            raise ValueError(f"Invalid configuration override: {exc}") from exc


def _read_yaml(file_path: Path) -> Dict[str, Any]:
    try:
        with open(file_path, "r", encoding="utf-8") as config_file:
            data = yaml.safe_load(config_file) or {}
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Patchflow configuration file '{file_path}' not found.") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in '{file_path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"'{file_path}' must contain a mapping at the top level.")
    return data


def load_config(file_path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> PatchflowConfig:
    """Load and validate the ``patchflow`` section of a YAML file."""

    path = Path(file_path)
    data = _read_yaml(path)
    section = data.get(CONFIG_SECTION)
    if section is None:
        raise ValueError(f"'{CONFIG_SECTION}' section missing in {path}.")
    if not isinstance(section, dict):
        raise ValueError(f"'{CONFIG_SECTION}' section in {path} must be a mapping.")
    try:
        return PatchflowConfig(**section)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration in {path}: {exc}") from exc


def load_config_or_default(file_path: Optional[Union[str, Path]] = None) -> PatchflowConfig:
    """Like :func:`load_config`, but a missing default file yields defaults.

    An explicitly named file that does not exist is still an error.
    """

    if file_path is not None:
        return load_config(file_path)
    default_path = Path(DEFAULT_CONFIG_FILE)
    if not default_path.exists():
        return PatchflowConfig()
    return load_config(default_path)


__all__ = [
    "CONFIG_SECTION",
    "DEFAULT_CONFIG_FILE",
    "PatchflowConfig",
    "load_config",
    "load_config_or_default",
]
