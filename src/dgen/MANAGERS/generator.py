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
Orchestration of generation pipelines: the initial pass, interval timers,
event-driven regeneration and OS signals.
"""
import logging
import queue
import signal
import threading
from typing import Callable, FrozenSet, List, Optional, Tuple

from docker.errors import DockerException

from ..MODELS.config import ConfigFile, PipelineConfig
from ..MODELS.container import RuntimeContainer
from ..RUNNERS.action_executor import ActionExecutor
from ..RUNTIME.container_builder import ContainerModelBuilder, DaemonContext
from ..TEMPLATES.file_writer import TemplateFileWriter
from ..UTILS.channels import CLOSED
from ..UTILS.errors import GenerationError
from .debounce import DebounceCoordinator
from .event_watcher import DEFAULT_ALLOWED_EVENTS, PING_INTERVAL, RECONNECT_BACKOFF, EventWatcher

logger = logging.getLogger(__name__)

RELOAD_SIGNALS = (signal.SIGHUP,)
TERMINATE_SIGNALS = (signal.SIGINT, signal.SIGTERM)

_STOP_SIGNALS = object()


class Generator:
    """
    Runs every configured pipeline until shut down.

    Each pipeline is regenerated once at startup, then by its own interval
    timer, by container events when it watches, and on SIGHUP. A render or
    write failure in any pipeline is fatal: the generator shuts down and
    :meth:`generate` raises the error. Failures talking to the daemon only
    skip the tick.
    """

    def __init__(
        self,
        client,
        configs: ConfigFile,
        client_factory: Optional[Callable[[], object]] = None,
        writer: Optional[TemplateFileWriter] = None,
        install_signal_handlers: bool = True,
        allowed_events: FrozenSet[Tuple[str, str]] = DEFAULT_ALLOWED_EVENTS,
        reconnect_backoff: float = RECONNECT_BACKOFF,
        ping_interval: float = PING_INTERVAL,
    ):
        """
        Initializes the generator.

        :param client: Runtime client for listing, inspecting and signalling.
        :param configs: Pipelines to run.
        :param client_factory: Creates the client used for each event stream
            connection; defaults to reusing ``client``.
        :param writer: Template writer, mainly for redirecting stdout.
        :param install_signal_handlers: Handle SIGHUP, SIGINT and SIGTERM.
        :param allowed_events: Events that trigger watching pipelines.
        :param reconnect_backoff: Seconds between event stream reconnections.
        :param ping_interval: Idle seconds before the daemon is pinged.
        """
        self.client = client
        self.configs = configs
        self.client_factory = client_factory or (lambda: client)
        self._owns_event_clients = client_factory is not None
        self.daemon = DaemonContext()
        self.builder = ContainerModelBuilder(self.daemon)
        self.writer = writer or TemplateFileWriter()
        self.executor = ActionExecutor(client)
        self.install_signal_handlers = install_signal_handlers
        self.allowed_events = allowed_events
        self.reconnect_backoff = reconnect_backoff
        self.ping_interval = ping_interval

        self.watcher: Optional[EventWatcher] = None
        self.error: Optional[GenerationError] = None

        self._stop = threading.Event()
        self._signals: queue.SimpleQueue = queue.SimpleQueue()
        self._threads: List[threading.Thread] = []
        self._coordinators: List[DebounceCoordinator] = []
        self._previous_handlers = {}

    def generate(self):
        """
        Runs all pipelines and blocks until shutdown.

        Returns right after the initial pass when no pipeline has an interval
        or watches events.

        :raises GenerationError: If a pipeline failed to render or write.
        """
        try:
            self.daemon.set_version(self.client.version())
        except (DockerException, OSError) as e:
            logger.error("Error retrieving docker server version info: %s", e)

        self.generate_from_containers()
        if self.error:
            raise self.error

        self.generate_at_interval()
        self.generate_from_events()
        if not self._threads:
            return

        self.generate_from_signals()
        try:
            self._wait()
        except KeyboardInterrupt:
            self.shutdown()
            self._wait()
        finally:
            self._restore_signal_handlers()

        if self.error:
            raise self.error

    def generate_from_containers(self):
        """Regenerates every pipeline once."""
        for config in self.configs.configs:
            if self._stop.is_set():
                return
            self.regenerate(config)

    def generate_at_interval(self):
        """Starts one timer thread per pipeline with an interval."""
        for config in self.configs.configs:
            if config.interval <= 0:
                continue
            logger.info("Generating every %d seconds", config.interval)
            self._start_thread(self._interval_loop, config, name=f"interval {config.display_name}")

    def generate_from_events(self):
        """
        Starts the event watcher and one consumer per watching pipeline,
        each behind its own debounce coordinator.
        """
        watched = self.configs.filter_watches()
        if not watched.configs or self._stop.is_set():
            return

        self.watcher = EventWatcher(
            self.client_factory,
            on_reconnect=self.generate_from_containers,
            allowed_events=self.allowed_events,
            backoff=self.reconnect_backoff,
            ping_interval=self.ping_interval,
            close_clients=self._owns_event_clients,
        )
        for config in watched.configs:
            coordinator = DebounceCoordinator(self.watcher.subscribe(), config.wait, name=config.display_name)
            self._coordinators.append(coordinator)
            triggers = coordinator.start()
            if coordinator.thread:
                self._threads.append(coordinator.thread)
            self._start_thread(self._consume_triggers, config, triggers, name=f"watch {config.display_name}")

        self.watcher.start()
        self._threads.append(self.watcher.thread)
        if self._stop.is_set():
            self.watcher.stop()

    def generate_from_signals(self):
        """
        Starts the signal thread and, from the main thread only, installs
        handlers that forward SIGHUP, SIGINT and SIGTERM to it.
        """
        self._start_thread(self._signal_loop, name="signals")
        if not self.install_signal_handlers or threading.current_thread() is not threading.main_thread():
            return
        for signum in RELOAD_SIGNALS + TERMINATE_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def handle_signal(self, signum: int):
        """
        Acts on a received signal: SIGHUP regenerates every pipeline, SIGINT
        and SIGTERM shut down.
        """
        if signum in RELOAD_SIGNALS:
            logger.info("Received signal: %s, regenerating", signal.Signals(signum).name)
            self.generate_from_containers()
        elif signum in TERMINATE_SIGNALS:
            logger.info("Received signal: %s, shutting down", signal.Signals(signum).name)
            self.shutdown()

    def shutdown(self):
        """
        Stops timers and the event watcher. Regenerations already running
        finish; :meth:`generate` returns once every thread has exited.
        """
        if self._stop.is_set():
            return
        self._stop.set()
        self._signals.put(_STOP_SIGNALS)
        if self.watcher:
            self.watcher.stop()

    def regenerate(self, config: PipelineConfig) -> bool:
        """
        Fetches containers, writes the pipeline's destination and, if it
        changed, runs the pipeline's actions.

        :return: True if the destination changed.
        """
        try:
            containers = self.get_containers(config)
        except (DockerException, OSError) as e:
            logger.error("Error listing containers: %s", e)
            return False

        try:
            changed = self.writer.generate_file(config, containers, self.daemon.docker)
        except GenerationError as e:
            self._fail(e)
            return False

        if not changed:
            logger.debug("Contents of %s did not change. Skipping notification '%s'",
                         config.display_name, config.notify_cmd)
            return False

        try:
            self.executor.run(config)
        # actions never fail a pipeline
        except Exception as e:
            logger.error("Error running actions for %s: %s", config.display_name, e)
        return True

    def get_containers(self, config: PipelineConfig) -> List[RuntimeContainer]:
        return self.builder.fetch_containers(
            self.client,
            all=config.include_stopped,
            filters=config.container_filter or None,
        )

    def _fail(self, error: GenerationError):
        if self.error is None:
            self.error = error
        logger.critical("%s", error)
        self.shutdown()

    def _start_thread(self, target, *args, name: str):
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)
        return thread

    def _interval_loop(self, config: PipelineConfig):
        while not self._stop.wait(config.interval):
            self._regenerate_logged(config)

    def _consume_triggers(self, config: PipelineConfig, triggers: queue.Queue):
        while True:
            event = triggers.get()
            if event is CLOSED:
                return
            # drain without regenerating once shutting down
            if self._stop.is_set():
                continue
            logger.debug("Regenerating %s after %s %s event", config.display_name, event.type, event.action)
            self._regenerate_logged(config)

    def _regenerate_logged(self, config: PipelineConfig):
        # keeps the pipeline thread alive across unexpected errors
        try:
            self.regenerate(config)
        except Exception:
            logger.exception("Unexpected error regenerating %s", config.display_name)

    def _on_signal(self, signum, frame):
        self._signals.put(signum)

    def _signal_loop(self):
        while True:
            signum = self._signals.get()
            if signum is _STOP_SIGNALS:
                return
            try:
                self.handle_signal(signum)
            except Exception:
                logger.exception("Unexpected error handling signal %s", signum)

    def _restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _wait(self):
        # join with a timeout so the main thread keeps running signal handlers
        for thread in list(self._threads):
            while thread.is_alive():
                thread.join(0.5)
