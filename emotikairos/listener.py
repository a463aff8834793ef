"""Minimal one-way UDP listener that decodes single raw records.

Each datagram holds one raw line.  Decoded packets are logged and handed
to an optional callback; nothing is ever sent back.
"""

import logging
import socketserver
from typing import Callable, Optional

from .errors import DecodeError
from .packet import Packet, decode_line

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
MAX_DATAGRAM = 1023


def handle_datagram(data: bytes) -> Packet:
    """Decode one datagram (UTF-8, surrounding whitespace ignored).

    Raises :class:`DecodeError` for undecodable bytes or records.  Bytes past
    :data:`MAX_DATAGRAM` are dropped with a warning.
    """
    if len(data) > MAX_DATAGRAM:
        logger.warning("Datagram of %d bytes truncated to %d",
                       len(data), MAX_DATAGRAM)
    try:
        text = data[:MAX_DATAGRAM].decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Datagram is not UTF-8: {e}") from e
    return decode_line(text)


class _RecordHandler(socketserver.BaseRequestHandler):
    def handle(self):
        data = self.request[0]
        try:
            packet = handle_datagram(data)
        except DecodeError as e:
            logger.warning("Undecodable datagram from %s: %s",
                           self.client_address, e)
            return
        logger.info("%s: %r", self.client_address, packet)
        if self.server.on_packet is not None:
            self.server.on_packet(packet)


class RecordListener(socketserver.UDPServer):
    """UDP server decoding one raw record per datagram."""

    allow_reuse_address = True

    def __init__(self, address, on_packet: Optional[Callable[[Packet], None]] = None):
        super().__init__(address, _RecordHandler)
        self.on_packet = on_packet


def make_listener(host=DEFAULT_HOST, port=DEFAULT_PORT, on_packet=None):
    """Bind a :class:`RecordListener`; call ``serve_forever()`` on it."""
    server = RecordListener((host, port), on_packet=on_packet)
    logger.info("Listening on %s:%d", *server.server_address[:2])
    return server


def run_listener(host=DEFAULT_HOST, port=DEFAULT_PORT):
    with make_listener(host, port) as server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Stopping listener")
