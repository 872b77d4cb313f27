"""Authorization engine configuration with Pydantic v2 validation.

Loads and validates an ``ops-authz.yaml`` file into a typed
:class:`AuthzConfig` object.  Unknown keys are allowed to support future
schema additions without breakage.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load_string("audit: {backend: jsonl, log_path: /var/log/authz.jsonl}")
>>> config.audit.log_path
PosixPath('/var/log/authz.jsonl')
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


class MatrixConfig(BaseModel):
    """Where the catalog, seed matrix and live matrix come from."""

    model_config = {"extra": "allow"}

    seed_path: Path | None = Field(default=None)
    store_path: Path | None = Field(default=None)
    strict: bool = Field(default=False)


class AuditConfig(BaseModel):
    """Configuration for the audit trail."""

    model_config = {"extra": "allow"}

    backend: Literal["memory", "jsonl"] = Field(default="memory")
    log_path: Path = Field(default=Path("./ops_authz_audit.jsonl"))


class LoggingConfig(BaseModel):
    """Root logger settings applied by the CLI."""

    model_config = {"extra": "allow"}

    level: str = Field(default="WARNING")
    format: str = Field(default="%(asctime)s %(levelname)s %(name)s: %(message)s")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'.")
        return level

    def apply(self) -> None:
        """Configure the root logger from these settings."""
        logging.basicConfig(level=getattr(logging, self.level), format=self.format)


class WorkflowConfig(BaseModel):
    """Configuration for the schedule approval guard."""

    model_config = {"extra": "allow"}

    resource: str = Field(default="schedules")


class AuthzConfig(BaseModel):
    """Top-level engine configuration schema.

    Loaded from ``ops-authz.yaml``.  All sections are optional and fall
    back to sensible defaults: the bundled seed matrix, an in-memory
    store and an in-memory audit trail.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)


class ConfigLoader:
    """Loads and validates engine YAML configuration."""

    def load(self, config_path: Path) -> AuthzConfig:
        """Load and validate an engine YAML file.

        Parameters
        ----------
        config_path:
            Path to the ``ops-authz.yaml`` file.

        Returns
        -------
        AuthzConfig

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ValueError:
            When the YAML content fails Pydantic validation.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Authz config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return AuthzConfig.model_validate(raw)

    def load_string(self, yaml_content: str) -> AuthzConfig:
        """Load and validate a YAML string directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return AuthzConfig.model_validate(raw)

    def defaults(self) -> AuthzConfig:
        """Return a default configuration with all defaults applied."""
        return AuthzConfig()
