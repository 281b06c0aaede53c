"""Connectivity checks used to gate sync attempts.

Any zero-argument callable returning a bool works as a connectivity
check; ``SocketConnectivity`` is the default used by the CLI.
"""

import logging
import socket
from typing import Callable, Optional

from elite_notepad.config import Config

logger = logging.getLogger(__name__)

ConnectivityCheck = Callable[[], bool]


class SocketConnectivity:
    """Reports online when a TCP connection to the remote host succeeds."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 timeout: Optional[float] = None):
        if host is None:
            configured = Config.remote_host()
            host, port = configured if configured else (None, None)
        self.host = host
        self.port = port or 443
        self.timeout = timeout or Config.CONNECTIVITY_TIMEOUT_SECONDS

    def __call__(self) -> bool:
        if not self.host:
            return False
        try:
            with socket.create_connection(
                (self.host, self.port), timeout=self.timeout
            ):
                return True
        except OSError as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False


def always_online() -> bool:
    return True


def always_offline() -> bool:
    return False
