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
Writes rendered templates to their destinations.

A destination file is only replaced when its content changes, and always
through a rename, so readers never see a partially written file.
"""
import logging
import os
import stat
import sys
import tempfile
from typing import List, Optional

from ..MODELS.config import PipelineConfig
from ..MODELS.container import DockerInfo, RuntimeContainer
from ..UTILS.errors import DestinationWriteError
from .renderer import TemplateRenderer

logger = logging.getLogger(__name__)


def filter_containers(config: PipelineConfig, containers: List[RuntimeContainer]) -> List[RuntimeContainer]:
    """
    Applies a pipeline's selection flags to a container set.

    Stopped containers are dropped unless ``include_stopped`` is set.
    ``only_published`` keeps containers with a host port binding; otherwise
    ``only_exposed`` keeps containers with at least one port.
    """
    filtered = []
    for container in containers:
        if not config.include_stopped and not container.state.running:
            continue
        if config.only_published:
            if not container.published_addresses():
                continue
        elif config.only_exposed and not container.addresses:
            continue
        filtered.append(container)
    return filtered


def remove_blank_lines(text: str) -> str:
    """
    Drops whitespace-only lines, keeping the trailing newline if there is one.
    """
    lines = [line for line in text.split("\n") if line.strip()]
    result = "\n".join(lines)
    if text.endswith("\n") and lines:
        result += "\n"
    return result


def write_if_changed(dest: str, content: bytes) -> bool:
    """
    Atomically replaces ``dest`` with ``content`` if it differs.

    A missing destination is created empty first, so the replacement inherits
    a mode and owner. The new content goes to a temporary file in the same
    directory, which gets the destination's mode (and owner, when it differs)
    before being renamed over it.

    :param dest: Destination path.
    :param content: New content.
    :return: True if the destination was replaced.
    :raises DestinationWriteError: If any filesystem step fails.
    """
    try:
        if not os.path.exists(dest):
            with open(dest, "wb"):
                pass
        with open(dest, "rb") as f:
            old_content = f.read()
    except OSError as e:
        raise DestinationWriteError(f"unable to read destination {dest}: {e}", dest) from e

    if old_content == content:
        return False

    tmp_path = None
    try:
        dest_dir = os.path.dirname(os.path.abspath(dest))
        with tempfile.NamedTemporaryFile(dir=dest_dir, prefix="dgen", delete=False) as tmp:
            tmp_path = tmp.name
            tmp.write(content)

        dest_stat = os.stat(dest)
        os.chmod(tmp_path, stat.S_IMODE(dest_stat.st_mode))
        tmp_stat = os.stat(tmp_path)
        if (tmp_stat.st_uid, tmp_stat.st_gid) != (dest_stat.st_uid, dest_stat.st_gid):
            os.chown(tmp_path, dest_stat.st_uid, dest_stat.st_gid)

        os.replace(tmp_path, dest)
    except OSError as e:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise DestinationWriteError(f"unable to write destination {dest}: {e}", dest) from e

    return True


class TemplateFileWriter:
    """
    Renders a pipeline's templates and emits the result.
    """

    def __init__(self, renderer: Optional[TemplateRenderer] = None, stdout=None):
        """
        Initializes the writer.

        :param renderer: Template renderer to use.
        :param stdout: Stream for stdout destinations, ``sys.stdout`` by default.
        """
        self.renderer = renderer or TemplateRenderer()
        self.stdout = stdout

    def generate_file(self, config: PipelineConfig, containers: List[RuntimeContainer],
                      docker: Optional[DockerInfo] = None) -> bool:
        """
        Filters, renders and writes one pipeline.

        :return: True if the destination changed. Stdout destinations always
            count as changed.
        :raises TemplateRenderError: On template read, parse or render errors.
        :raises DestinationWriteError: On filesystem errors.
        """
        filtered = filter_containers(config, containers)
        text = self.renderer.render(config.templates, filtered, docker)
        if not config.keep_blank_lines:
            text = remove_blank_lines(text)

        if config.to_stdout:
            stream = self.stdout or sys.stdout
            stream.write(text)
            stream.flush()
            return True

        changed = write_if_changed(config.dest, text.encode())
        if changed:
            logger.info("Generated '%s' from %d containers", config.dest, len(filtered))
        return changed
