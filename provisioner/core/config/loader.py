"""
Configuration loader: reads pipeline.yml into a PipelineConfig.

pipeline.yml is optional. Without one the built-in defaults are used,
resolved against the current directory. The platform can always be
overridden through the PLATFORM environment variable, so that a bare
``provision run`` is the whole invocation surface.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from provisioner.core.models.pipeline_config import PLATFORM_VARIABLE, PipelineConfig

logger = logging.getLogger(__name__)

# Default config filename
PIPELINE_CONFIG_FILE = "pipeline.yml"


class ConfigError(Exception):
    """Raised when pipeline configuration is invalid or missing."""


class PlatformMismatch(ConfigError):
    """Raised when two stages of one pipeline disagree on the platform."""


def find_pipeline_file(start_dir: Path | None = None) -> Path | None:
    """Search for pipeline.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to pipeline.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PIPELINE_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_pipeline(path: Path) -> PipelineConfig:
    """Load and validate a pipeline file, resolving its paths.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading pipeline config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "pipeline" key or be flat
    pipeline_data = data.get("pipeline", data)
    if not isinstance(pipeline_data, dict):
        raise ConfigError(f"'pipeline' in {path} must be a mapping")

    try:
        config = PipelineConfig.model_validate(pipeline_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid pipeline configuration: {e}") from e

    config = config.resolved(path.parent.resolve())
    logger.info("Loaded pipeline '%s' with %d tools", config.name, len(config.tools))
    return config


def load_config(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> tuple[PipelineConfig, Path]:
    """Load the effective pipeline configuration.

    Resolution order: explicit path, pipeline.yml found upwards from
    the cwd, built-in defaults. A PLATFORM environment variable
    overrides the configured platform.

    Returns:
        (config, project_root) with every config path absolute.

    Raises:
        ConfigError: If an explicit path is missing or any source is invalid.
    """
    if config_path is None:
        config_path = find_pipeline_file()

    if config_path is not None:
        config = load_pipeline(config_path)
        root = config_path.parent.resolve()
    else:
        logger.info("No %s found, using built-in defaults", PIPELINE_CONFIG_FILE)
        root = Path.cwd().resolve()
        config = PipelineConfig().resolved(root)

    environ = os.environ if environ is None else environ
    platform = environ.get(PLATFORM_VARIABLE)
    if platform and platform != config.platform:
        logger.info("Platform overridden by %s=%s", PLATFORM_VARIABLE, platform)
        try:
            config = PipelineConfig.model_validate(
                {**config.model_dump(), "platform": platform}
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid {PLATFORM_VARIABLE} value: {e}") from e

    return config, root
