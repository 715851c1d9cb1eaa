"""
Ephemeral port allocation for the debugging listener.
"""
import socket


def allocate_port(host: str = "127.0.0.1") -> int:
    """
    Ask the OS for a free TCP port on ``host``.

    The probing socket is closed before returning, so another process may
    grab the port before the browser binds it.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]
