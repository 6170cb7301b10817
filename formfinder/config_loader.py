import copy
import json
import logging
import os

import jsonschema

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FORMFINDER_CONFIG"
DEFAULT_CONFIG_PATH = "formfinder.json"


class ConfigLoader:
    DEFAULT_CONFIG = """{
      "profile": null,
      "region": null,
      "environments": {
        "960": "test",
        "012": "dev",
        "378": "uat",
        "233": "prod"
      },
      "cluster_match": "pre-award-{environment}",
      "service_match": "form-runner-adapter",
      "container": "fsd-form-runner-adapter",
      "working_dir": "/usr/src/app/digital-form-builder-adapter",
      "scan": {
        "key_prefix": "forms:cache:",
        "reference_paths": [
          "/proposal",
          "/are-you-applying-for-pillar-1---foundations-funding"
        ],
        "redis_uri_env": ["REDIS_URI", "REDIS_URL"],
        "redis_host_suffix": ".cache.amazonaws.com",
        "tls": true,
        "tls_verify": false,
        "designer_url": "https://form-designer.access-funding.test.communities.gov.uk/app/designer/{form_id}"
      }
    }"""

    SCHEMA = {
        "type": "object",
        "properties": {
            "profile": {"type": ["string", "null"]},
            "region": {"type": ["string", "null"]},
            "environments": {
                "type": "object",
                "minProperties": 1,
                "additionalProperties": {"type": "string", "minLength": 1},
            },
            "cluster_match": {"type": "string", "minLength": 1},
            "service_match": {"type": "string", "minLength": 1},
            "container": {"type": "string", "minLength": 1},
            "working_dir": {"type": "string", "minLength": 1},
            "scan": {
                "type": "object",
                "properties": {
                    "key_prefix": {"type": "string", "minLength": 1},
                    "reference_paths": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                    },
                    "redis_uri_env": {"type": "array", "items": {"type": "string"}},
                    "redis_host_suffix": {"type": ["string", "null"]},
                    "tls": {"type": "boolean"},
                    "tls_verify": {"type": "boolean"},
                    "designer_url": {"type": "string"},
                },
                "required": [
                    "key_prefix",
                    "reference_paths",
                    "redis_uri_env",
                    "tls",
                    "tls_verify",
                    "designer_url",
                ],
                "additionalProperties": False,
            },
        },
        "required": [
            "environments",
            "cluster_match",
            "service_match",
            "container",
            "working_dir",
            "scan",
        ],
        "additionalProperties": False,
    }

    def __init__(self, config_path=None):
        self.config_path = config_path or os.environ.get(
            CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH
        )

    def validate_schema(self, config):
        try:
            jsonschema.validate(instance=config, schema=self.SCHEMA)
        except jsonschema.exceptions.ValidationError as e:
            raise ConfigError(f"Configuration validation failed: {e.message}")

    def validate_environment_prefixes(self, config):
        prefixes = list(config.get("environments", {}))
        for prefix in prefixes:
            if not prefix.isdigit():
                raise ConfigError(f"Account prefix must be digits: '{prefix}'")
            for other in prefixes:
                if other != prefix and other.startswith(prefix):
                    raise ConfigError(
                        f"Ambiguous account prefixes: '{prefix}' and '{other}'"
                    )

    def fold_defaults_into_config(self, config):
        """Return the defaults with the user's config laid over them."""
        merged = json.loads(self.DEFAULT_CONFIG)
        for key, value in config.items():
            if key == "scan" and isinstance(value, dict):
                merged["scan"].update(value)
            else:
                merged[key] = copy.deepcopy(value)
        return merged

    def read_config_file(self):
        if not os.path.exists(self.config_path):
            logger.debug(
                f"No config found at {self.config_path}, using built-in defaults"
            )
            return {}

        with open(self.config_path, "r") as f:
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Failed to parse JSON config: {e}")

        if not isinstance(config, dict):
            raise ConfigError("Configuration validation failed: expected an object")
        logger.debug(f"Loaded configuration from {os.path.abspath(self.config_path)}")
        return config

    def load_config(self):
        """Load the configuration, folding the JSON file over the defaults."""
        config = self.fold_defaults_into_config(self.read_config_file())
        self.validate_schema(config)
        self.validate_environment_prefixes(config)
        return config
