"""Configuration management for gopin."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml
from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".gopin.yaml"
DEFAULT_MOD_DIR = ".gopin"


@dataclass
class GopinConfig:
    """Configuration for gopin."""

    moddir: str = DEFAULT_MOD_DIR
    go: str = "go"
    insecure: bool = False
    link: bool = False
    verbose: bool = False
    timeout: float | None = None

    def validate(self) -> None:
        """Validate the configuration."""
        if not self.moddir:
            console.print("⚠️ [yellow]Empty 'moddir' in configuration, using .gopin[/yellow]")
            self.moddir = DEFAULT_MOD_DIR
        if self.timeout is not None and self.timeout <= 0:
            console.print(
                f"⚠️ [yellow]Ignoring non-positive 'timeout' {self.timeout} in configuration[/yellow]",
            )
            self.timeout = None

    @property
    def mod_dir(self) -> Path:
        return Path(os.path.expanduser(self.moddir))

    @classmethod
    def load_from_file(cls, config_path: str | None = None) -> GopinConfig:
        """Load configuration from YAML file.

        Without an explicit path, ``.gopin.yaml`` in the working directory is
        used when present; a missing default file is not an error.
        """
        explicit = bool(config_path)
        if not config_path:
            config_path = DEFAULT_CONFIG_FILE
            if not os.path.exists(config_path):
                return cls()

        try:
            with open(config_path) as file:
                config_data = yaml.safe_load(file) or {}

            if not isinstance(config_data, dict):
                console.print(
                    f"❌ [bold red]Configuration file {config_path} must contain a mapping[/bold red]",
                )
                return cls()

            known = {f.name for f in fields(cls)}
            for key in sorted(set(config_data) - known):
                console.print(
                    f"⚠️ [yellow]Unknown configuration key '{key}' in {config_path}, ignoring[/yellow]",
                )
            config = cls(**{k: v for k, v in config_data.items() if k in known})
            config.validate()
            logger.info("Loaded configuration from %s", config_path)
            return config  # noqa: TRY300

        except FileNotFoundError:
            if explicit:
                console.print(
                    f"⚠️ [yellow]Configuration file not found: {config_path}[/yellow]",
                )
            return cls()
        except yaml.YAMLError:
            console.print(
                f"❌ [bold red]Invalid YAML in configuration file: {config_path}[/bold red]",
            )
            console.print_exception()
            return cls()
