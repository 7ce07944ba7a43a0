#!/usr/bin/env python3

import os
import json
import tomllib
from pathlib import Path
from typing import Optional

import logging
import sys

import toml
import yaml

from .exit_codes import ConfigError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr) # Default to stderr
    ]
)
logger = logging.getLogger("branchpromote")

CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']
LOCAL_CONFIG_FILENAMES = [
    '.branchpromote.json',
    '.branchpromote.toml',
    '.branchpromote.yaml',
    '.branchpromote.yml',
]


def get_config_path():
    """Get the path to the configuration file.

    Checks in order:
    1. BRANCHPROMOTE_CONFIG environment variable
    2. .branchpromote.{json,toml,yaml,yml} in the working directory
    3. ~/.branchpromote/ directory
    """
    if 'BRANCHPROMOTE_CONFIG' in os.environ:
        path = Path(os.environ['BRANCHPROMOTE_CONFIG'])
        if path.exists():
            return path
        logger.debug(f"BRANCHPROMOTE_CONFIG points at missing file {path}")

    # Pipeline-local config checked in next to the Jenkinsfile
    for filename in LOCAL_CONFIG_FILENAMES:
        path = Path.cwd() / filename
        if path.exists():
            return path

    home_dir = Path.home() / '.branchpromote'
    for filename in CONFIG_FILENAMES:
        path = home_dir / filename
        if path.exists() and path.stat().st_size > 10:  # Not empty/trivial
            return path

    # If no file exists, return default path for saving
    return home_dir / 'config.json'


def _read_config_file(config_path: Path) -> dict:
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    if suffix in ['.yaml', '.yml']:
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    with open(config_path, 'r') as f:
        return json.load(f)


def load_config(path: Optional[Path] = None):
    """Load configuration from file.

    Args:
        path: Explicit config file (overrides discovery)

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    config_path = Path(path) if path else get_config_path()

    # Start with default config
    config = get_default_config()

    if config_path.exists():
        try:
            file_config = _read_config_file(config_path)
        except (OSError, ValueError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config from {config_path}: {e}") from e

        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")

        config = merge_configs(config, file_config)
        logger.debug(f"Loaded configuration from {config_path}")
    elif path:
        raise ConfigError(f"Config file not found: {config_path}")

    # Apply environment variable overrides
    config = apply_env_overrides(config)

    return config


def save_config(config, path: Optional[Path] = None):
    """Save configuration to file.

    Returns:
        Path the configuration was written to
    """
    config_path = Path(path) if path else get_config_path()

    # Create directory if it doesn't exist
    config_path.parent.mkdir(parents=True, exist_ok=True)

    if config_path.suffix.lower() in ['.toml']:
        with open(config_path, 'w') as f:
            toml.dump(config, f)
    elif config_path.suffix.lower() in ['.yaml', '.yml']:
        with open(config_path, 'w') as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    else:
        # Default to JSON format
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def get_default_rules():
    """Default promotion table.

    Exact branch names come before prefix patterns. Evaluation is first
    match wins, so a branch matching both resolves to the earlier rule.
    """
    return [
        {
            "match": "dev",
            "environment": "dev",
            "credential_set": "kubeconfig-dev",
            "descriptor": "k8s/dev/deployment.yaml",
            "namespace": "dev",
        },
        {
            "match": "uat",
            "environment": "uat",
            "credential_set": "kubeconfig-uat",
            "descriptor": "k8s/uat/deployment.yaml",
            "namespace": "uat",
        },
        {
            "match": "main",
            "environment": "prod",
            "credential_set": "kubeconfig-prod",
            "descriptor": "k8s/prod/deployment.yaml",
            "namespace": "prod",
        },
        {
            "match": "master",
            "environment": "prod",
            "credential_set": "kubeconfig-prod",
            "descriptor": "k8s/prod/deployment.yaml",
            "namespace": "prod",
        },
        {
            "match": "release/*",
            "environment": "uat",
            "credential_set": "kubeconfig-uat",
            "descriptor": "k8s/uat/deployment.yaml",
            "namespace": "uat",
        },
        {
            "match": "hotfix/*",
            "environment": "prod",
            "credential_set": "kubeconfig-prod",
            "descriptor": "k8s/prod/deployment.yaml",
            "namespace": "prod",
        },
    ]


def get_default_config():
    """Get default configuration."""
    return {
        "general": {
            "source_dir": ".",
            "default_branch": "dev",
            # Checked in order after an explicit --branch
            "branch_env": [
                "BRANCH_NAME",
                "GIT_BRANCH",
                "CHANGE_BRANCH",
                "GITHUB_REF_NAME",
                "CI_COMMIT_REF_NAME",
            ],
            "sequence_env": "BUILD_NUMBER",
            "remote": "origin",
        },
        "automation": {
            "name": "ci-bot",
            "email": "ci-bot@example.com",
        },
        "image": {
            "registry": "",
            "repository": "app",
            "context": ".",
        },
        "rules": get_default_rules(),
        "commands": {
            "timeout_seconds": 1800,
            "build": "mvn -B clean compile",
            "package": "mvn -B package -DskipTests",
            "scan": "mvn -B sonar:sonar",
            "image_build": "docker build -t {image} {context}",
            "image_push": "docker push {image}",
            "apply": "kubectl --kubeconfig {credentials} apply -f {descriptor}",
            "rollout": (
                "kubectl --kubeconfig {credentials} -n {namespace} "
                "rollout status deployment/{resource} --timeout={timeout}s"
            ),
        },
        "scan": {
            "target_dir": ".",
            "report_path": "target/sonar/report-task.txt",
            "fail_on_findings": False,
        },
        "deploy": {
            "resource": "app",
            "rollout_timeout_seconds": 300,
        },
        "git": {
            "commit_message": "Promote {environment} to {tag}",
            "timeout_seconds": 60,
        },
        "logging": {
            "level": "INFO",
            "format": "%(levelname)s: %(message)s",
        },
    }


def configure_logging(config, verbose: bool = False):
    """Apply the logging section to the branchpromote logger."""
    settings = config.get("logging", {})
    level = "DEBUG" if verbose else str(settings.get("level", "INFO")).upper()
    logger.setLevel(getattr(logging, level, logging.INFO))
    fmt = settings.get("format")
    if fmt:
        for handler in logging.getLogger().handlers:
            handler.setFormatter(logging.Formatter(fmt))


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Lists (such as the rule table) are replaced, not appended.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            # Recursively merge nested dictionaries
            merged[key] = merge_configs(merged[key], value)
        else:
            # Override or add new key
            merged[key] = value

    return merged


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: BRANCHPROMOTE_SECTION_KEY
    For example: BRANCHPROMOTE_SCAN_FAIL_ON_FINDINGS=true
    """
    env_prefix = "BRANCHPROMOTE_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        # Convert value
        if value.lower() in ('true', 'yes', 'on'):
            typed_value = True
        elif value.lower() in ('false', 'no', 'off'):
            typed_value = False
        elif value.isdigit():
            typed_value = int(value)
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            # Find the longest key in current_level that is a prefix of the remaining key_parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts_from_key = config_key.split('_')
                if key_parts[i : i + len(config_key_parts_from_key)] == config_key_parts_from_key:
                    if len(config_key_parts_from_key) > best_match_len:
                        best_match_len = len(config_key_parts_from_key)
                        matched_key = config_key

            if matched_key:
                # If we are at the end of the env var, we have found the key to set
                if i + best_match_len == len(key_parts):
                    current_level[matched_key] = typed_value
                    break

                # Otherwise, we descend into the dictionary
                if isinstance(current_level[matched_key], dict):
                    current_level = current_level[matched_key]
                    i += best_match_len
                else:
                    # Path conflict, e.g., env var is longer but we found a non-dict value
                    break
            else:
                # No match found
                break

    return config
