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
Models for generation pipelines and the connection to the Docker daemon.
"""
import os
import signal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..PARSERS.duration_parser import parse_duration

# Signal value in notify targets that means "restart the container"
RESTART_SIGNAL = -1

# Destinations that mean "write to standard output"
STDOUT_DESTS = ("", "-")

DEFAULT_ENDPOINT = "unix:///var/run/docker.sock"


def parse_signal(value):
    """
    Accepts a signal number, a signal name (``SIGHUP`` or ``HUP``) or
    ``restart`` and returns the number used in notify targets.
    """
    if isinstance(value, str):
        name = value.strip().upper()
        if name == "RESTART":
            return RESTART_SIGNAL
        if name.lstrip("-").isdigit():
            return int(name)
        if not name.startswith("SIG"):
            name = "SIG" + name
        try:
            return int(signal.Signals[name])
        except KeyError:
            raise ValueError(f"unknown signal: {value}") from None
    return value


class Wait(BaseModel):
    """
    Debounce window for event-driven generation, in seconds.

    ``min`` is the quiet period after the latest event; ``max`` bounds the
    delay after the first event of a burst. ``min == 0`` disables debouncing.
    """

    model_config = ConfigDict(frozen=True)

    min: float = 0.0
    max: float = 0.0

    @model_validator(mode="after")
    def _check_bounds(self) -> "Wait":
        if self.min < 0:
            raise ValueError("invalid wait interval: min must not be negative")
        if self.max < self.min:
            raise ValueError("invalid wait interval: max must be larger than min")
        return self

    @property
    def enabled(self) -> bool:
        return self.min > 0

    @classmethod
    def parse(cls, text: str) -> "Wait":
        """
        Parses ``min[:max]``, e.g. ``500ms:2s``.

        Without a max, max defaults to four times min. Empty text gives a
        disabled window.

        :param text: Wait window text.
        :return: Parsed window.
        :raises ValueError: On malformed durations or max < min.
        """
        if not text or not text.strip():
            return cls(min=0.0, max=0.0)

        parts = text.split(":")
        wait_min = parse_duration(parts[0])
        if len(parts) > 1:
            wait_max = parse_duration(parts[1])
        else:
            wait_max = 4 * wait_min
        return cls(min=wait_min, max=wait_max)


class PipelineConfig(BaseModel):
    """
    One template-to-destination generation task with its own triggers,
    container filters and notification targets.
    """

    model_config = ConfigDict(frozen=True)

    templates: List[str]
    dest: str = ""
    watch: bool = False
    wait: Optional[Wait] = None

    # Notification
    notify_cmd: str = ""
    notify_output: bool = False
    notify_containers: Dict[str, int] = {}
    notify_containers_filter: Dict[str, List[str]] = {}
    notify_containers_signal: int = int(signal.SIGHUP)

    # Container selection
    only_exposed: bool = False
    only_published: bool = False
    include_stopped: bool = False
    container_filter: Dict[str, List[str]] = {}

    interval: int = 0
    keep_blank_lines: bool = False

    @field_validator("templates", mode="before")
    @classmethod
    def _split_templates(cls, value):
        if isinstance(value, str):
            value = [part for part in value.split(";") if part]
        return value

    @field_validator("templates")
    @classmethod
    def _require_template(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one template is required")
        return value

    @field_validator("wait", mode="before")
    @classmethod
    def _parse_wait(cls, value):
        if isinstance(value, str):
            return Wait.parse(value)
        return value

    @field_validator("notify_containers", mode="before")
    @classmethod
    def _parse_signal_names(cls, value):
        if isinstance(value, dict):
            return {k: parse_signal(v) for k, v in value.items()}
        return value

    @field_validator("notify_containers_signal", mode="before")
    @classmethod
    def _parse_filter_signal(cls, value):
        return parse_signal(value)

    @field_validator("notify_containers_filter", "container_filter", mode="before")
    @classmethod
    def _listify_filter_values(cls, value):
        if isinstance(value, dict):
            return {
                k: [v] if isinstance(v, str) else list(v) for k, v in value.items()
            }
        return value

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("interval must not be negative")
        return value

    @property
    def to_stdout(self) -> bool:
        return self.dest in STDOUT_DESTS

    @property
    def debounced(self) -> bool:
        return self.wait is not None and self.wait.enabled

    @property
    def display_name(self) -> str:
        return self.dest if not self.to_stdout else f"{self.templates[0]} (stdout)"


class ConfigFile(BaseModel):
    """
    All pipelines of one generator, in declaration order.
    """
    configs: List[PipelineConfig] = []

    def filter_watches(self) -> "ConfigFile":
        """Returns the pipelines with event-driven generation enabled."""
        return ConfigFile(configs=[c for c in self.configs if c.watch])

    def merge(self, other: "ConfigFile") -> "ConfigFile":
        return ConfigFile(configs=self.configs + other.configs)


def _default_cert_path() -> str:
    cert_path = os.environ.get("DOCKER_CERT_PATH")
    if not cert_path:
        cert_path = os.path.join(os.path.expanduser("~"), ".docker")
    return cert_path


class GeneratorConfig(BaseModel):
    """
    Connection settings for the Docker daemon.
    """
    endpoint: str = ""
    tls_cert: str = Field(default_factory=lambda: os.path.join(_default_cert_path(), "cert.pem"))
    tls_key: str = Field(default_factory=lambda: os.path.join(_default_cert_path(), "key.pem"))
    tls_ca_cert: str = Field(default_factory=lambda: os.path.join(_default_cert_path(), "ca.pem"))
    tls_verify: bool = Field(default_factory=lambda: bool(os.environ.get("DOCKER_TLS_VERIFY")))
