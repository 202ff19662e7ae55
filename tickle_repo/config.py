"""
Repository configuration.

Settings are resolved from, in increasing order of precedence: built-in
defaults, an optional YAML file and environment variables.

Expected YAML format:
```yaml
repository:
  db_host: localhost
  db_port: 5432
  db_name: ticklerepo
  db_user: tickle
  pool_max_size: 10
  fetch_size: 50
  estimate_threshold: 1000000
```
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

# Environment variable -> config field
ENV_VARS = {
    "DB_HOST": "db_host",
    "DB_PORT": "db_port",
    "DB_NAME": "db_name",
    "DB_USER": "db_user",
    "DB_PASSWORD": "db_password",
    "DB_POOL_MIN_SIZE": "pool_min_size",
    "DB_POOL_MAX_SIZE": "pool_max_size",
    "DB_POOL_TIMEOUT": "pool_timeout",
    "TICKLE_FETCH_SIZE": "fetch_size",
    "TICKLE_ESTIMATE_THRESHOLD": "estimate_threshold",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}


class RepositoryConfig(BaseModel):
    """
    Settings for the connection pool and repository tuning knobs.

    Attributes:
        db_host: Database host
        db_port: Database port
        db_name: Database name
        db_user: Database user
        db_password: Database password (required to open a pool)
        pool_min_size: Minimum pool size
        pool_max_size: Maximum pool size
        pool_timeout: Connection timeout in seconds
        fetch_size: Rows fetched per round trip by streaming cursors
        estimate_threshold: Below this planner estimate, size estimates fall
            back to an exact count
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text"
    """

    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "ticklerepo"
    db_user: str = "tickle"
    db_password: str | None = None
    pool_min_size: int = Field(default=2, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    pool_timeout: float = Field(default=30.0, gt=0)
    fetch_size: int = Field(default=50, gt=0, le=10000)
    estimate_threshold: int = Field(default=1_000_000, ge=0)
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"


def load_config(config_path: str | Path | None = None) -> RepositoryConfig:
    """
    Load repository configuration.

    Args:
        config_path: Optional path to a YAML file with a 'repository' section

    Returns:
        Resolved RepositoryConfig

    Raises:
        FileNotFoundError: If config_path is given but does not exist
        ValueError: If the YAML file has no 'repository' section
    """
    values: dict[str, Any] = {}

    if config_path is not None:
        values.update(_load_yaml(Path(config_path)))

    for env_var, field_name in ENV_VARS.items():
        env_value = os.getenv(env_var)
        if env_value is not None and env_value != "":
            values[field_name] = env_value

    return RepositoryConfig(**values)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Repository configuration file not found: {path}")

    with open(path) as f:
        config = yaml.safe_load(f)

    if not config or "repository" not in config:
        raise ValueError("Configuration file must contain 'repository' section")

    section = config["repository"]
    if not isinstance(section, dict):
        raise ValueError("'repository' section must be a mapping")

    return section
