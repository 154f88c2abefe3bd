"""Configuration parser for the shell.

Parses and validates the optional YAML configuration file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

CONFIG_ENV_VAR = "KUDASH_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "kudash" / "config.yaml"
RENDER_FORMATS = ('png', 'svg', 'pdf', 'jpg', 'gif')
PROMPT_FIELDS = ('user', 'host', 'cwd', 'sysname')


class CompletionConfig(BaseModel):
    """Tab completion thresholds.

    A command-position token is completed when at most ``command_threshold``
    candidates match; an argument-position token when at most
    ``argument_threshold`` directory entries match.
    """
    command_threshold: int = Field(default=2, ge=1)
    argument_threshold: int = Field(default=1, ge=1)


class PsvisConfig(BaseModel):
    """Process-tree reporter (kernel module) configuration."""
    module_name: str = "psvis"
    module_path: Optional[Path] = None
    proc_file: Path = Path("/proc/psvis")
    modules_file: Path = Path("/proc/modules")
    use_sudo: bool = True
    default_format: str = "png"

    @field_validator('default_format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Ensure the render format is one Graphviz can produce."""
        v = v.lower()
        if v not in RENDER_FORMATS:
            raise ValueError(f"Format must be one of {list(RENDER_FORMATS)}, got '{v}'")
        return v

    def get_module_path(self) -> Path:
        """Get the kernel module object file, defaulting to the package's module/ dir."""
        if self.module_path is not None:
            return Path(self.module_path).expanduser()
        return Path(__file__).resolve().parent.parent / "module" / f"{self.module_name}.ko"


class ShellConfig(BaseModel):
    """Top-level configuration."""
    sysname: str = "dash"
    buffer_size: int = Field(default=4096, ge=2)
    prompt: str = "{user}@{host}:{cwd} {sysname}> "
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    psvis: PsvisConfig = Field(default_factory=PsvisConfig)

    @field_validator('sysname')
    @classmethod
    def validate_sysname(cls, v: str) -> str:
        """Reject blank shell names (they prefix every error message)."""
        if not v.strip():
            raise ValueError("sysname must not be empty")
        return v.strip()

    @field_validator('prompt')
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        """Ensure the prompt template only uses the supported fields."""
        try:
            v.format(**{name: "" for name in PROMPT_FIELDS})
        except (AttributeError, KeyError, IndexError, ValueError) as e:
            raise ValueError(
                f"Invalid prompt template {v!r} (fields: {', '.join(PROMPT_FIELDS)}): {e}"
            ) from e
        return v


class ConfigParser:
    """Parse and validate shell configuration."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialize parser with config file path.

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self.config: Optional[ShellConfig] = None
        self._raw_config: Optional[Dict[str, Any]] = None

    def parse(self) -> ShellConfig:
        """Parse and validate configuration.

        Returns:
            Validated configuration object

        Raises:
            yaml.YAMLError: If YAML parsing fails
            pydantic.ValidationError: If validation fails
        """
        with open(self.config_path) as f:
            self._raw_config = yaml.safe_load(f) or {}

        self.config = ShellConfig(**self._raw_config)
        return self.config


def find_config_file() -> Optional[Path]:
    """Locate the configuration file.

    Looks at $KUDASH_CONFIG first, then ~/.config/kudash/config.yaml.

    Returns:
        Path to the config file, or None if there is none
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def load_config(config_path: Optional[Union[str, Path]] = None) -> ShellConfig:
    """Load and parse configuration file.

    Args:
        config_path: Path to config.yaml (searched for when None)

    Returns:
        Parsed configuration, or defaults when no file is found

    Example:
        >>> config = load_config("config.yaml")
        >>> config.sysname
        'dash'
    """
    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            return ShellConfig()

    return ConfigParser(config_path).parse()


def generate_sample_config(output_path: Path) -> None:
    """Generate a sample configuration file.

    Args:
        output_path: Path to write the sample config
    """
    sample_config = """# Name shown in the prompt and in error messages (e.g. "-dash: cd: ...")
sysname: dash

# Maximum line length accepted by the editor (including terminator)
buffer_size: 4096

# Prompt template; available fields: user, host, cwd, sysname
prompt: "{user}@{host}:{cwd} {sysname}> "

# Tab completion
completion:
  command_threshold: 2   # complete commands when this many or fewer match
  argument_threshold: 1  # complete file names only on a unique match

# Process tree visualizer (psvis builtin)
psvis:
  module_name: psvis
  #module_path: /path/to/psvis.ko  # default: <package>/module/psvis.ko
  proc_file: /proc/psvis
  modules_file: /proc/modules
  use_sudo: true
  default_format: png
"""

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(sample_config)
