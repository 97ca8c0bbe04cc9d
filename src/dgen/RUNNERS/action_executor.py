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
Post-generation actions: the notify command and container signals.
"""
import logging
import subprocess
from typing import Dict, List

from docker.errors import DockerException

from ..MODELS.config import RESTART_SIGNAL, PipelineConfig
from ..RUNTIME.docker_client import RESTART_TIMEOUT

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"


class ActionExecutor:
    """
    Runs the actions of a pipeline after its destination changed.

    Every action is independent: a failing command or an unreachable
    container is logged and the remaining actions still run.
    """

    def __init__(self, client):
        """
        Initializes the executor.

        :param client: Runtime client used to signal and restart containers.
        """
        self.client = client

    def run(self, config: PipelineConfig):
        """
        Runs the notify command, then signals the configured containers.

        :param config: Pipeline whose destination changed.
        """
        self.run_notify_cmd(config)
        self.send_signal_to_containers(config)
        self.send_signal_to_filtered_containers(config)

    def run_notify_cmd(self, config: PipelineConfig) -> bool:
        """
        Runs ``notify_cmd`` through the shell, capturing stdout and stderr
        together.

        :return: True if the command ran and exited with status 0.
        """
        if not config.notify_cmd:
            return False

        logger.info("Running '%s'", config.notify_cmd)
        try:
            result = subprocess.run(
                [SHELL, "-c", config.notify_cmd],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            logger.error("Error running notify command: %s, %s", config.notify_cmd, e)
            return False

        if result.returncode != 0:
            logger.error("Error running notify command: %s, exit status %d", config.notify_cmd, result.returncode)

        if config.notify_output:
            for line in result.stdout.splitlines():
                if line.strip():
                    logger.info("[%s]: %s", config.notify_cmd, line)

        return result.returncode == 0

    def send_signal_to_container(self, container: str, signal: int) -> bool:
        """
        Signals one container, or restarts it for ``RESTART_SIGNAL``.

        :param container: Container id or name.
        :param signal: Signal number or ``RESTART_SIGNAL``.
        :return: True on success.
        """
        try:
            if signal == RESTART_SIGNAL:
                logger.info("Restarting container '%s'", container)
                self.client.restart(container, timeout=RESTART_TIMEOUT)
            else:
                logger.info("Sending container '%s' signal '%d'", container, signal)
                self.client.kill(container, signal)
        except (DockerException, OSError) as e:
            action = "restart" if signal == RESTART_SIGNAL else "signal"
            logger.error("Error sending %s to container %s: %s", action, container, e)
            return False
        return True

    def send_signal_to_containers(self, config: PipelineConfig) -> Dict[str, bool]:
        results = {}
        for container, signal in config.notify_containers.items():
            results[container] = self.send_signal_to_container(container, signal)
        return results

    def send_signal_to_filtered_containers(self, config: PipelineConfig) -> List[str]:
        """
        Signals every container the runtime lists for
        ``notify_containers_filter`` with ``notify_containers_signal``.

        :return: Ids of the containers that were signalled successfully.
        """
        if not config.notify_containers_filter:
            return []

        try:
            containers = self.client.list_containers(filters=config.notify_containers_filter)
        except (DockerException, OSError) as e:
            logger.error("Error getting containers: %s", e)
            return []

        signalled = []
        for container in containers:
            container_id = container.get("Id") or container.get("ID")
            if self.send_signal_to_container(container_id, config.notify_containers_signal):
                signalled.append(container_id)
        return signalled
