"""
Resource discipline for introspection sessions.

Every tunnel and connection opened for a session is released on every exit
path. Release failures are logged and never replace the error (or result)
the session already has.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Optional

from sshtunnel import SSHTunnelForwarder

from ..errors import ConnectionError, IntrospectionCancelledError
from .descriptor import ConnectionDescriptor

logger = logging.getLogger(__name__)


def release(resource: str, close: Callable[[], Any]) -> None:
    """Close a resource, logging a failure instead of raising it."""
    try:
        close()
    except Exception:
        logger.warning(f"Failed to release {resource}", exc_info=True)


class CancelToken:
    """Cooperative cancellation flag shared with a worker thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, engine_kind: Optional[str] = None, stage: Optional[str] = None) -> None:
        if self._event.is_set():
            raise IntrospectionCancelledError(engine_kind=engine_kind, stage=stage)


@contextmanager
def open_tunnel(
    descriptor: ConnectionDescriptor,
    timeout_seconds: float,
) -> Iterator[ConnectionDescriptor]:
    """Open the descriptor's SSH tunnel, if any.

    Yields:
        The descriptor to connect with: the original one when there is no
        tunnel, otherwise one pointing at the tunnel's local end.

    Raises:
        ConnectionError: If the tunnel cannot be established
    """
    tunnel = descriptor.tunnel
    if tunnel is None:
        yield descriptor
        return

    forwarder = SSHTunnelForwarder(
        (tunnel.host, tunnel.port),
        ssh_username=tunnel.username,
        ssh_password=tunnel.password.get_secret_value() if tunnel.password else None,
        ssh_pkey=tunnel.private_key,
        remote_bind_address=(descriptor.host, descriptor.effective_port),
        local_bind_address=("127.0.0.1", 0),
    )
    forwarder.ssh_timeout = timeout_seconds

    try:
        forwarder.start()
    except Exception as exc:
        release("ssh tunnel", forwarder.stop)
        raise ConnectionError(
            f"Could not open SSH tunnel via {tunnel.host}:{tunnel.port}: {exc}",
            engine_kind=descriptor.engine_kind.value,
            address=f"{tunnel.host}:{tunnel.port}",
        ) from exc

    logger.info(
        "SSH tunnel established",
        extra={"gateway": f"{tunnel.host}:{tunnel.port}", "local_port": forwarder.local_bind_port},
    )
    try:
        yield descriptor.via("127.0.0.1", forwarder.local_bind_port)
    finally:
        release("ssh tunnel", forwarder.stop)
