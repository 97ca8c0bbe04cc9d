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
Exception hierarchy for dgen.

Runtime (Docker daemon) failures are not wrapped: they surface as the docker
SDK's ``DockerException`` or as ``OSError`` and are treated as transient.
Everything raised from here on is a configuration or template problem.
"""


class DgenError(Exception):
    """Base class for all dgen errors."""


class ConfigError(DgenError, ValueError):
    """Invalid configuration value or config file."""


class GenerationError(DgenError):
    """
    A pipeline could not render or write its destination.

    These are fatal: the generator stops and the process exits non-zero.
    """

    def __init__(self, message: str, dest: str = ""):
        super().__init__(message)
        self.dest = dest


class TemplateRenderError(GenerationError):
    """A template failed to parse or execute."""


class DestinationWriteError(GenerationError):
    """The destination file could not be compared, written or replaced."""
