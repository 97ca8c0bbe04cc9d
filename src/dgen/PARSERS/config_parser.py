# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Parsers for pipeline config files (TOML or YAML).

A config file holds a list of pipeline tables under ``config`` (or
``configs``)::

    [[config]]
    template = "/etc/dgen/nginx.tmpl"
    dest = "/etc/nginx/conf.d/default.conf"
    watch = true
    wait = "500ms:2s"
    notifycmd = "nginx -s reload"
"""
import os
import tomllib
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from ..MODELS.config import ConfigFile, PipelineConfig
from ..UTILS.errors import ConfigError

# Keys that do not normalize onto a field name
_ALIASES = {
    "template": "templates",
}


def _normalize(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


_FIELDS = {_normalize(name): name for name in PipelineConfig.model_fields}
_FIELDS.update(_ALIASES)


class ConfigParser:
    """
    Parser for dgen config files.
    """

    def parse(self, config_path: str) -> ConfigFile:
        """
        Parses a config file from a path. Files ending in ``.toml`` are read as
        TOML, everything else as YAML.

        :param config_path: Path to the config file.
        :return: Parsed pipelines.
        :raises ConfigError: If the file cannot be read or is invalid.
        """
        try:
            with open(config_path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(f"Unable to read config {config_path}: {e}") from e

        if config_path.endswith(".toml"):
            return self.parse_toml(content.decode("utf-8"))
        return self.parse_yaml(content.decode("utf-8"))

    def parse_many(self, config_paths: List[str]) -> ConfigFile:
        """
        Parses several config files and concatenates their pipelines.
        """
        merged = ConfigFile()
        for path in config_paths:
            merged = merged.merge(self.parse(path))
        return merged

    def parse_toml(self, content: str) -> ConfigFile:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML config: {e}") from e
        return self.parse_data(data)

    def parse_yaml(self, content: str) -> ConfigFile:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML config: {e}") from e
        return self.parse_data(data or {})

    def parse_data(self, data: Dict[str, Any]) -> ConfigFile:
        """
        Builds pipelines from already decoded config data.

        :param data: Mapping holding a ``config`` list.
        :return: Parsed pipelines.
        """
        if not isinstance(data, dict):
            raise ConfigError("Config must be a mapping with a 'config' list")

        entries = None
        for key, value in data.items():
            if _normalize(key) in ("config", "configs"):
                entries = value
        if entries is None:
            return ConfigFile()
        if isinstance(entries, dict):
            entries = [entries]
        if not isinstance(entries, list):
            raise ConfigError("'config' must be a list of pipeline tables")

        return ConfigFile(configs=[self._parse_pipeline(i, e) for i, e in enumerate(entries)])

    def _parse_pipeline(self, index: int, entry: Any) -> PipelineConfig:
        """
        Parses a single pipeline table.

        :param index: Position of the table, for error messages.
        :param entry: The pipeline table.
        :return: A PipelineConfig instance.
        """
        if not isinstance(entry, dict):
            raise ConfigError(f"config[{index}] must be a table")

        values = {}
        for key, value in entry.items():
            field = _FIELDS.get(_normalize(key))
            if field is None:
                raise ConfigError(f"config[{index}]: unknown key '{key}'")
            values[field] = value

        if isinstance(values.get("dest"), str):
            values["dest"] = os.path.expandvars(values["dest"])

        try:
            return PipelineConfig(**values)
        except ValidationError as e:
            raise ConfigError(f"config[{index}] is invalid: {e}") from e
