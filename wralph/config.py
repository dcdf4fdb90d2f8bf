"""Configuration management for wralph."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from wralph.models import Config, Secrets
from wralph.repo import RepoLayout
from wralph.utils.logger import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "WRALPH_"

SECRETS_TEMPLATE = """\
# wralph secrets - keep this file out of version control
# API token for the CI provider (e.g. a CircleCI personal API token)
ci_api_token: ""
"""


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigManager:
    """Configuration manager with hierarchical loading and environment variable support."""

    def __init__(self, layout: RepoLayout, user_config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            layout: Repository layout holding the project .wralph directory
            user_config_path: Override for ~/.wralph/config.yaml
        """
        self.layout = layout
        self._user_config_path = user_config_path or Path.home() / ".wralph" / "config.yaml"

    @property
    def project_config_path(self) -> Path:
        return self.layout.config_file

    def _expand_env_vars(self, data: Any) -> Any:
        """Recursively expand environment variables in configuration data.

        Supports formats:
        - ${VAR}
        - ${VAR:-default}
        - $VAR (simple format)
        """
        if isinstance(data, str):
            def replace_env_var(match):
                var_expr = match.group(1)
                if ":-" in var_expr:
                    var_name, default_value = var_expr.split(":-", 1)
                    return os.getenv(var_name, default_value)
                var_value = os.getenv(var_expr)
                if var_value is None:
                    logger.warning(f"Environment variable '{var_expr}' not found")
                    return match.group(0)
                return var_value

            data = re.sub(r'\$\{([^}]+)\}', replace_env_var, data)

            def replace_simple_var(match):
                var_name = match.group(1)
                var_value = os.getenv(var_name)
                if var_value is None:
                    logger.warning(f"Environment variable '{var_name}' not found")
                    return match.group(0)
                return var_value

            data = re.sub(r'\$([A-Z_][A-Z0-9_]*)', replace_simple_var, data)

        elif isinstance(data, dict):
            return {key: self._expand_env_vars(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [self._expand_env_vars(item) for item in data]

        return data

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load and parse a YAML configuration file.

        Args:
            path: Path to YAML file

        Returns:
            Parsed configuration data, empty when the file does not exist

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        if not path.exists():
            return {}

        logger.debug(f"Loading config file: {path}")

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to load config file {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        return self._expand_env_vars(data)

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply WRALPH_SECTION__KEY environment overrides.

        For example WRALPH_CI__MAX_RETRIES=3 sets ci.max_retries.
        """
        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            key_parts = key[len(ENV_PREFIX):].lower().split("__")

            current = config_data
            for part in key_parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]

            final_key = key_parts[-1]

            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif value.isdigit():
                current[final_key] = int(value)
            else:
                current[final_key] = value

            logger.debug(f"Applied env override: {'.'.join(key_parts)} = {current[final_key]}")

        return config_data

    def load_config(self) -> Config:
        """Load configuration from all sources.

        Loading order (later sources override earlier):
        1. Defaults (from the Config model)
        2. User configuration (~/.wralph/config.yaml)
        3. Project configuration (<repo>/.wralph/config.yaml)
        4. Environment variables

        Raises:
            ConfigError: If configuration is invalid
        """
        config_data: Dict[str, Any] = {}
        config_data = self._merge_configs(config_data, self._load_yaml_file(self._user_config_path))

        if not self.project_config_path.exists():
            logger.debug(f"Config file {self.project_config_path} not found, using defaults")
        config_data = self._merge_configs(config_data, self._load_yaml_file(self.project_config_path))

        config_data = self._apply_env_overrides(config_data)

        try:
            config = Config.model_validate(config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}")

        logger.debug("Configuration loaded successfully")
        return config

    def load_secrets(self) -> Secrets:
        """Load secrets from <repo>/.wralph/secrets.yaml.

        A missing or unparsable secrets file yields empty secrets; the missing
        token is reported when it is needed.
        """
        secrets_file = self.layout.secrets_file
        try:
            data = self._load_yaml_file(secrets_file)
        except ConfigError as e:
            logger.warning(f"Failed to parse {secrets_file}: {e}")
            return Secrets()

        try:
            return Secrets.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid secrets in {secrets_file}: {e}")
            return Secrets()

    def write_default_config(self, path: Optional[Path] = None) -> Path:
        """Write the default configuration to the project config file.

        Returns:
            Path to the configuration file

        Raises:
            ConfigError: If configuration cannot be written
        """
        config_path = path or self.project_config_path
        if config_path.exists():
            logger.warning(f"Configuration file already exists: {config_path}")
            return config_path

        config_data = Config().model_dump(mode="json")

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w") as f:
                f.write("# wralph configuration\n\n")
                yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to create configuration file {config_path}: {e}")

        logger.debug(f"Default configuration created: {config_path}")
        return config_path

    def write_secrets_template(self) -> Path:
        """Write an empty secrets template unless one already exists."""
        secrets_file = self.layout.secrets_file
        if secrets_file.exists():
            return secrets_file

        try:
            secrets_file.parent.mkdir(parents=True, exist_ok=True)
            secrets_file.write_text(SECRETS_TEMPLATE)
        except OSError as e:
            raise ConfigError(f"Failed to create secrets file {secrets_file}: {e}")

        return secrets_file

    def list_config_files(self) -> Dict[str, Optional[Path]]:
        """List configuration file paths that exist."""
        return {
            "user": self._user_config_path if self._user_config_path.exists() else None,
            "project": self.project_config_path if self.project_config_path.exists() else None,
            "secrets": self.layout.secrets_file if self.layout.secrets_file.exists() else None,
        }
