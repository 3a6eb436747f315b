from __future__ import annotations

import logging
import socket

from .errors import SetupError

logger = logging.getLogger(__name__)


def get_free_port(host: str = "localhost") -> int:
    """
    Ask the OS for an unused TCP port.

    The socket is closed before returning, so another process may grab the
    port before postgres binds it. That window is small and accepted.

    :param host: The interface to bind on.
    :return: The port number.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            sock.listen(1)
            port = sock.getsockname()[1]
    except OSError as e:
        raise SetupError(f"could not allocate a free port on {host}: {e}") from e
    logger.debug(f"Allocated free port {port}")
    return port
