"""
Configuration loader — reads stackplane.yml into environment bundles.

This is the configuration collaborator: it turns an environment name into
a validated, read-only EnvironmentConfig. Environments come from the
built-in profiles (dev, staging, prod), overridden or extended by the
``environments:`` section of stackplane.yml when one is found.

Example stackplane.yml::

    project: aws-cdk-patterns
    tags:
      Owner: platform
    provisioner:
      deploy: cdk deploy {stack} --require-approval never --outputs-file {outputs_file}
      destroy: cdk destroy {stack} --force
    environments:
      qa:
        extends: staging
        compute:
          desired_count: 1
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from stackplane.adapters.command import CommandSettings
from stackplane.core.config.environments import BUILTIN_ENVIRONMENTS
from stackplane.core.errors import StackplaneError
from stackplane.core.models.config import EnvironmentConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "stackplane.yml"

# Fallbacks for environments that leave account or region unset
ENV_DEFAULT_ACCOUNT = "CDK_DEFAULT_ACCOUNT"
ENV_DEFAULT_REGION = "CDK_DEFAULT_REGION"


class ConfigError(StackplaneError):
    """Raised when configuration is invalid or missing."""


class NotFoundError(ConfigError):
    """Raised when an environment name is not defined."""

    def __init__(self, environment: str, available: list[str]):
        super().__init__(
            f"Unknown environment: {environment} "
            f"(available: {', '.join(available) or 'none'})"
        )
        self.environment = environment
        self.available = available


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for stackplane.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to stackplane.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_config(path: Path) -> dict[str, Any]:
    """Read and parse a config file into a mapping.

    Raises:
        ConfigError: If the file is missing, unreadable or not a YAML mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def load_environments(path: Path | None = None) -> dict[str, EnvironmentConfig]:
    """Load every environment: built-ins, plus those declared in the file.

    File environments replace built-ins of the same name. An environment
    may ``extends:`` another (file or built-in); the parent is deep-merged
    under the child.

    Raises:
        ConfigError: On an invalid file, an unknown or cyclic ``extends``,
            or an environment that fails validation.
    """
    if path is None:
        return dict(BUILTIN_ENVIRONMENTS)

    builtin_raw: dict[str, dict[str, Any]] = {
        name: env.model_dump() for name, env in BUILTIN_ENVIRONMENTS.items()
    }

    data = read_config(path)
    file_envs = data.get("environments") or {}
    if not isinstance(file_envs, dict):
        raise ConfigError(f"'environments' in {path} must be a mapping")

    project = data.get("project")
    shared_tags = data.get("tags") or {}
    if not isinstance(shared_tags, dict):
        raise ConfigError(f"'tags' in {path} must be a mapping")

    declared: dict[str, dict[str, Any]] = {}
    for name, body in file_envs.items():
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ConfigError(f"Environment '{name}' in {path} must be a mapping")
        declared[str(name)] = body

    resolved: dict[str, dict[str, Any]] = {}

    def resolve(name: str, chain: tuple[str, ...]) -> dict[str, Any]:
        if name in chain:
            raise ConfigError(f"Cyclic 'extends' in {path}: {' -> '.join([*chain, name])}")
        if name in resolved:
            return resolved[name]
        if name not in declared:
            if name in builtin_raw:
                return builtin_raw[name]
            raise ConfigError(f"Environment '{chain[-1]}' extends unknown environment '{name}'")

        body = dict(declared[name])
        parent = body.pop("extends", None)
        merged: dict[str, Any] = {}
        if parent:
            merged = copy.deepcopy(resolve(str(parent), (*chain, name)))
        merged = _deep_merge(merged, body)
        merged["name"] = name
        resolved[name] = merged
        return merged

    for name in declared:
        resolve(name, ())

    environments = dict(BUILTIN_ENVIRONMENTS)
    for name, body in resolved.items():
        if project and "project" not in declared[name]:
            body["project"] = project
        body["tags"] = {**shared_tags, **(body.get("tags") or {})}
        try:
            environments[name] = EnvironmentConfig.model_validate(body)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid environment '{name}' in {path}: {e}") from e

    if project or shared_tags:
        for name in BUILTIN_ENVIRONMENTS:
            if name not in resolved:
                environments[name] = environments[name].model_copy(
                    update={
                        "project": project or environments[name].project,
                        "tags": {**shared_tags, **environments[name].tags},
                    }
                )

    logger.info("Loaded %d environments from %s", len(environments), path)
    return environments


def lookup(environment: str, path: Path | None = None) -> EnvironmentConfig:
    """Return the configuration bundle for an environment.

    Args:
        environment: Environment name (e.g. 'dev').
        path: Optional stackplane.yml. Built-in profiles only when None.

    Raises:
        NotFoundError: If the environment is not defined.
        ConfigError: If the config file is invalid or no region can be resolved.
    """
    environments = load_environments(path)
    if environment not in environments:
        raise NotFoundError(environment, sorted(environments))
    return apply_defaults(environments[environment])


def apply_defaults(bundle: EnvironmentConfig) -> EnvironmentConfig:
    """Fill an unset account or region from CDK_DEFAULT_ACCOUNT / CDK_DEFAULT_REGION.

    Raises:
        ConfigError: If the environment still has no region.
    """
    updates = {}
    if not bundle.account and os.environ.get(ENV_DEFAULT_ACCOUNT):
        updates["account"] = os.environ[ENV_DEFAULT_ACCOUNT]
    if not bundle.region and os.environ.get(ENV_DEFAULT_REGION):
        updates["region"] = os.environ[ENV_DEFAULT_REGION]
    if updates:
        logger.debug("Environment %s: defaults from the environment: %s", bundle.name, updates)
        bundle = bundle.model_copy(update=updates)
    if not bundle.region:
        raise ConfigError(
            f"Environment '{bundle.name}' has no region: set 'region' in "
            f"{CONFIG_FILE} or export {ENV_DEFAULT_REGION}"
        )
    return bundle


def load_provisioner_settings(path: Path | None) -> CommandSettings | None:
    """Read the optional ``provisioner:`` section.

    Returns:
        CommandSettings, or None when there is no file or no section.
    """
    if path is None:
        return None
    section = read_config(path).get("provisioner")
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ConfigError(f"'provisioner' in {path} must be a mapping")
    try:
        return CommandSettings.model_validate(section)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid provisioner settings in {path}: {e}") from e


def _deep_merge(base: Any, override: Any) -> Any:
    if isinstance(base, dict) and isinstance(override, dict):
        result = copy.deepcopy(base)
        for key, value in override.items():
            if key in result:
                result[key] = _deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)
        return result
    return copy.deepcopy(override)
