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
Subscription to the Docker daemon's event stream and fan-out of the relevant
events to every watching pipeline.
"""
import logging
import queue
import threading
from typing import Callable, FrozenSet, List, Optional, Tuple

from docker.errors import DockerException
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_when_event_set,
    wait_fixed,
)

from ..MODELS.event import Event
from ..UTILS.channels import CLOSED, DEFAULT_CHANNEL_SIZE, close_channel, new_channel

logger = logging.getLogger(__name__)

RECONNECT_BACKOFF = 10
PING_INTERVAL = 10

DEFAULT_ALLOWED_EVENTS: FrozenSet[Tuple[str, str]] = frozenset({
    ("container", "start"),
    ("container", "stop"),
    ("container", "die"),
    ("container", "health_status"),
    ("network", "connect"),
    ("network", "disconnect"),
})


class EventWatcher:
    """
    Keeps one live event subscription and fans allowed events out to the
    subscribed channels.

    Connecting is retried every ``backoff`` seconds until stopped. While
    connected, ``ping_interval`` seconds without an event trigger a ping, and
    a failed ping counts as a lost connection. After every reconnection
    (not the first connection) ``on_reconnect`` runs so missed events cannot
    leave destinations stale.
    """

    def __init__(
        self,
        client_factory: Callable[[], object],
        on_reconnect: Optional[Callable[[], None]] = None,
        allowed_events: FrozenSet[Tuple[str, str]] = DEFAULT_ALLOWED_EVENTS,
        backoff: float = RECONNECT_BACKOFF,
        ping_interval: float = PING_INTERVAL,
        close_clients: bool = True,
    ):
        """
        Initializes the watcher.

        :param client_factory: Returns a runtime client; called for every
            connection attempt.
        :param on_reconnect: Called after a connection was re-established.
        :param allowed_events: ``(type, action)`` pairs that are forwarded.
        :param backoff: Seconds between connection attempts.
        :param ping_interval: Idle seconds before the daemon is pinged.
        :param close_clients: Close each client once its connection ends; off
            when the factory hands out a shared client.
        """
        self.client_factory = client_factory
        self.on_reconnect = on_reconnect
        self.allowed_events = allowed_events
        self.backoff = backoff
        self.ping_interval = ping_interval
        self.close_clients = close_clients
        self.connections = 0
        self.thread = None

        self._subscribers: List[queue.Queue] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._stream = None

    def subscribe(self, maxsize: int = DEFAULT_CHANNEL_SIZE) -> queue.Queue:
        """
        Registers a new subscriber.

        :param maxsize: Buffer size; events are dropped while it is full.
        :return: The subscriber's channel, closed when the watcher stops.
        """
        channel = new_channel(maxsize)
        with self._lock:
            self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: queue.Queue):
        with self._lock:
            if channel in self._subscribers:
                self._subscribers.remove(channel)

    def publish(self, event: Event) -> int:
        """
        Delivers an event to every subscriber without blocking.

        :return: Number of subscribers that received it.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for channel in subscribers:
            try:
                channel.put_nowait(event)
                delivered += 1
            except queue.Full:
                logger.warning("Subscriber channel full, dropping %s %s event for %s",
                               event.type, event.action, event.short_id)
        return delivered

    def start(self):
        self.thread = threading.Thread(target=self._run, name="event watcher", daemon=True)
        self.thread.start()

    def stop(self):
        """
        Stops watching. The live stream is closed, retries end, and every
        subscriber channel is closed once the watcher thread exits.
        """
        self._stop.set()
        with self._lock:
            stream = self._stream
        if stream is not None:
            self._close_quietly(stream)
        if self.thread is None:
            self._close_subscribers()

    def join(self, timeout: Optional[float] = None):
        if self.thread:
            self.thread.join(timeout)

    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def _close_subscribers(self):
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for channel in subscribers:
            close_channel(channel)

    @staticmethod
    def _close_quietly(resource):
        try:
            resource.close()
        except (DockerException, OSError) as e:
            logger.debug("Error closing %r: %s", resource, e)

    def _open(self):
        if self._stop.is_set():
            return None, None
        client = self.client_factory()
        try:
            return client, client.events()
        except (DockerException, OSError):
            if self.close_clients:
                self._close_quietly(client)
            raise

    def _connect(self):
        retrying = Retrying(
            wait=wait_fixed(self.backoff),
            retry=retry_if_exception_type((DockerException, OSError)),
            stop=stop_when_event_set(self._stop),
            sleep=self._stop.wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        return retrying(self._open)

    def _run(self):
        try:
            while not self._stop.is_set():
                try:
                    client, stream = self._connect()
                except RetryError:
                    break
                if stream is None:
                    break

                with self._lock:
                    self._stream = stream
                self.connections += 1
                logger.info("Watching docker events")

                if self.connections > 1 and self.on_reconnect:
                    self.on_reconnect()

                self._consume(client, stream)

                with self._lock:
                    self._stream = None
                self._close_quietly(stream)
                if self.close_clients:
                    self._close_quietly(client)

                if self._stop.is_set():
                    break
                logger.warning("Docker daemon connection interrupted, reconnecting in %ss", self.backoff)
                self._stop.wait(self.backoff)
        finally:
            self._close_subscribers()

    def _read_stream(self, stream, events: queue.Queue):
        try:
            for raw in stream:
                events.put(raw)
        # the stream may fail in many ways once closed; the consumer only needs to know it ended
        except Exception as e:
            if not self._stop.is_set():
                logger.warning("Error reading docker events: %s", e)
        finally:
            events.put(CLOSED)

    def _consume(self, client, stream):
        events = queue.Queue()
        reader = threading.Thread(target=self._read_stream, args=(stream, events), name="event reader", daemon=True)
        reader.start()

        while not self._stop.is_set():
            try:
                raw = events.get(timeout=self.ping_interval)
            except queue.Empty:
                try:
                    client.ping()
                except (DockerException, OSError) as e:
                    logger.warning("Unable to ping docker daemon: %s", e)
                    return
                continue

            if raw is CLOSED:
                return

            event = Event.from_api(raw)
            if (event.type, event.action) not in self.allowed_events:
                logger.debug("Ignoring %s %s event for %s", event.type, event.action, event.short_id)
                continue

            logger.info("Received %s %s event for %s", event.type, event.action, event.short_id)
            self.publish(event)
