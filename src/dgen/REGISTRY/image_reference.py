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
Image reference splitting.
Splits references like 'nginx:latest' or 'localhost:5000/team/app:1.2' into
the registry, repository and tag shown to templates.
"""

from dataclasses import dataclass

from ..MODELS.container import DockerImage


@dataclass
class ImageReference:
    """
    Image reference as written in a container's config.

    The part before the first slash is taken as the registry, and no default
    registry or tag is filled in, so templates see exactly what was deployed.

    Examples:
        - ubuntu -> ("", "ubuntu", "")
        - ubuntu:12.04 -> ("", "ubuntu", "12.04")
        - custom.registry/ubuntu -> ("custom.registry", "ubuntu", "")
        - localhost:8888/ubuntu/foo:12.04 -> ("localhost:8888", "ubuntu/foo", "12.04")
    """

    registry: str = ""
    repository: str = ""
    tag: str = ""

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Split an image reference string.

        Args:
            reference: Image reference string (e.g., 'nginx:latest' or
                'localhost:5000/team/app:1.2'). Everything before the first
                '/' is the registry.

        Returns:
            Parsed ImageReference object.
        """
        registry = ""
        repository = reference or ""

        if "/" in repository:
            registry, repository = repository.split("/", 1)

        tag = ""
        if ":" in repository:
            repository, tag = repository.split(":", 1)

        return cls(registry=registry, repository=repository, tag=tag)

    def to_model(self) -> DockerImage:
        return DockerImage(registry=self.registry, repository=self.repository, tag=self.tag)

    def __str__(self) -> str:
        return str(self.to_model())
