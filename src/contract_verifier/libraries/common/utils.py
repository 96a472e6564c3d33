import socket
import time
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")


def wait_until(
    func: Callable[..., T],
    func_args: Sequence[Any] = (),
    func_kwargs: dict[str, Any] | None = None,
    stop_condition: Callable[[T], bool] = bool,
    interval: float = 0.5,
    timeout: float = 10,
) -> T:
    """Call the function repeatedly until the return value satisfies the stop condition

    :param func: A function to call
    :param func_args: Positional arguments for the function
    :param func_kwargs: Keyword arguments for the function
    :param stop_condition: A function that takes the return value and returns True when waiting should stop
    :param interval: Wait time between each call in seconds
    :param timeout: Max wait time in seconds
    """
    func_kwargs = func_kwargs or {}
    end_time = time.monotonic() + timeout
    while True:
        ret = func(*func_args, **func_kwargs)
        if stop_condition(ret):
            return ret
        if time.monotonic() >= end_time:
            raise TimeoutError(f"Timed out after {timeout} seconds waiting for {func.__name__}() to meet the condition")
        time.sleep(interval)


def is_port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """Check if something is accepting connections on the given host/port"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(1)
        return s.connect_ex((host, port)) == 0


def find_open_port(host: str = "127.0.0.1", exclude: Sequence[int] = ()) -> int:
    """Find a port the OS considers free on the host

    :param host: Host to bind to
    :param exclude: Ports not to return
    """
    while True:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, 0))
            port = s.getsockname()[1]
        if port not in exclude:
            return port


def list_items(items: Sequence[Any], indent: int = 2) -> str:
    """Format items as a bulleted list"""
    return "\n".join(f"{' ' * indent}- {x}" for x in items)
