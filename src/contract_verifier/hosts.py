"""Lifecycle management of the provider and provider-states listeners"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import threading
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
from hypercorn.asyncio import serve
from hypercorn.config import Config as HypercornConfig

from contract_verifier.exceptions import ListenerStartFailed
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.libraries.common.utils import find_open_port, is_port_in_use, wait_until

if TYPE_CHECKING:
    from contract_verifier.config import ListenerConfig, VerifierConfig


logger = get_logger(__name__)


def resolve_app(import_str: str) -> Any:
    """Resolve an ASGI app from an import string "<module>:<attribute>"

    When the attribute is an app factory (a function), the app it returns is used
    """
    module_name, _, attr = import_str.partition(":")
    try:
        module = importlib.import_module(module_name)
        app = getattr(module, attr or "app")
    except (ImportError, AttributeError) as e:
        raise ListenerStartFailed(f"Failed to load app '{import_str}': {e}") from e
    if inspect.isfunction(app):
        app = app()
    return app


class Listener:
    """An HTTP listener that serves an ASGI app with hypercorn on its own event loop in a background thread"""

    def __init__(
        self,
        name: str,
        app: Any,
        host: str = "127.0.0.1",
        port: int = 0,
        readiness_path: str | None = "/",
        startup_timeout: float = 10,
    ):
        """
        :param name: Listener name used in logs
        :param app: ASGI app to serve
        :param host: Host to bind to
        :param port: Port to bind to. A free port is selected when 0
        :param readiness_path: A path probed until the app responds. Any HTTP response counts as ready
        :param startup_timeout: Max wait time for the listener to start in seconds
        """
        self.name = name
        self.app = app
        self.host = host
        self.port = port or find_open_port(host=host)
        self.readiness_path = readiness_path
        self.startup_timeout = startup_timeout
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._shutdown_event: asyncio.Event | None = None
        self._error: BaseException | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the listener and wait until it accepts connections

        :raises ListenerStartFailed: The listener failed to start
        """
        if self.is_running:
            raise ListenerStartFailed(f"{self.name} listener is already running on {self.base_url}")
        if is_port_in_use(self.port, host=self.host):
            raise ListenerStartFailed(f"Port {self.port} on {self.host} is already in use")

        logger.debug(f"Starting {self.name} listener on {self.host}:{self.port}...")
        self._error = None
        self._loop = asyncio.new_event_loop()
        self._shutdown_event = asyncio.Event()
        self._thread = threading.Thread(target=self._run, name=f"listener-{self.name}", daemon=True)
        self._thread.start()
        try:
            self._wait_for_listener_to_start()
            self._wait_for_listener_ready()
        except BaseException:
            self.stop()
            raise
        logger.info(f"{self.name} listener has been started on {self.base_url}")

    def stop(self, timeout: float = 10) -> None:
        """Stop the listener and wait for the server thread to exit"""
        if self._thread is None:
            return
        logger.debug(f"Stopping {self.name} listener on {self.base_url}...")
        if self._loop is not None and self._shutdown_event is not None and not self._loop.is_closed():
            try:
                self._loop.call_soon_threadsafe(self._shutdown_event.set)
            except RuntimeError:
                # The loop has already been closed
                pass
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"{self.name} listener did not stop within {timeout} seconds")
        else:
            logger.info(f"{self.name} listener has been stopped")
        self._thread = None

    def _run(self) -> None:
        config = HypercornConfig()
        config.bind = [f"{self.host}:{self.port}"]
        config.accesslog = None
        config.errorlog = logger

        loop = self._loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(serve(self.app, config, shutdown_trigger=self._shutdown_event.wait))
        except Exception as e:
            self._error = e
            logger.error(f"{self.name} listener exited with an error: {type(e).__name__}: {e}")
        finally:
            loop.close()

    def _wait_for_listener_to_start(self) -> None:
        def has_started() -> bool:
            if self._error or not self.is_running:
                raise ListenerStartFailed(f"{self.name} listener failed to start on {self.base_url}: {self._error}")
            return is_port_in_use(self.port, host=self.host)

        try:
            wait_until(has_started, interval=0.1, timeout=self.startup_timeout)
        except TimeoutError as e:
            raise ListenerStartFailed(f"{self.name} listener did not start on {self.base_url}: {e}") from e

    def _wait_for_listener_ready(self) -> None:
        if self.readiness_path is None:
            return

        def is_ready() -> bool:
            try:
                httpx.get(f"{self.base_url}{self.readiness_path}", timeout=1)
                return True
            except httpx.TransportError:
                return False

        try:
            wait_until(is_ready, interval=0.2, timeout=self.startup_timeout)
        except TimeoutError as e:
            raise ListenerStartFailed(f"{self.name} listener did not become ready on {self.base_url}: {e}") from e


@dataclass
class HostHandle:
    """Handle of the running listeners. Owned by HostSupervisor"""

    provider: Listener
    provider_states: Listener
    state_path: str = "/provider-states"
    stopped: bool = field(default=False, init=False)

    @property
    def provider_url(self) -> str:
        return self.provider.base_url

    @property
    def state_url(self) -> str:
        return f"{self.provider_states.base_url}{self.state_path}"


class HostSupervisor:
    """Starts and stops the provider and provider-states listeners

    start() returns only after both listeners accept connections. stop() stops each started listener exactly once,
    even when stopping the other one fails
    """

    def start(self, config: VerifierConfig) -> HostHandle:
        """Start both listeners

        :param config: Verifier config
        :raises ListenerStartFailed: Either listener failed to start. A listener already started is stopped
        """
        provider = self.create_listener("provider", config.provider)
        provider_states = self.create_listener("provider-states", config.provider_states)
        provider.start()
        try:
            provider_states.start()
        except BaseException:
            provider.stop()
            raise
        return HostHandle(provider=provider, provider_states=provider_states, state_path=config.provider_states.path)

    def stop(self, handle: HostHandle) -> None:
        """Stop both listeners. Calling this more than once has no effect"""
        if handle.stopped:
            return
        handle.stopped = True
        try:
            handle.provider.stop()
        finally:
            handle.provider_states.stop()

    @contextmanager
    def hosted(self, config: VerifierConfig) -> Generator[HostHandle]:
        """Run both listeners while the context is active. They are stopped on every exit path"""
        handle = self.start(config)
        try:
            yield handle
        finally:
            self.stop(handle)

    @staticmethod
    def create_listener(name: str, listener_config: ListenerConfig) -> Listener:
        return Listener(
            name,
            resolve_app(listener_config.app),
            host=listener_config.host,
            port=listener_config.port,
            readiness_path=listener_config.readiness_path,
            startup_timeout=listener_config.startup_timeout,
        )
