"""
Listener socket helpers.

Listeners bind their socket up front so bind failures can be classified
before any server starts serving.
"""
import errno
import socket
from typing import Optional


def bind_socket(host: Optional[str], port: int) -> socket.socket:
    """
    Create a listening TCP socket.

    Args:
        host: Address to bind, None or "" for all interfaces
        port: TCP port

    Raises:
        OSError: If the address cannot be bound.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host or "0.0.0.0", port))
        sock.listen(100)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def describe_bind_error(server_name: str, port: int, error: OSError) -> str:
    """
    Human-readable cause for a failed bind.

    Address-in-use and permission errors get their own message.
    """
    bind = f"Port {port}"
    if error.errno == errno.EACCES:
        return f"Can not start the {server_name} server for motion detection! {bind} requires elevated privileges"
    if error.errno == errno.EADDRINUSE:
        return f"Can not start the {server_name} server for motion detection! {bind} is already in use"
    return f"Can not start the {server_name} server for motion detection! {error}"


def is_port_available(host: str, port: int) -> bool:
    """Check if nothing is accepting connections on a port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(1)
        return sock.connect_ex((host, port)) != 0
