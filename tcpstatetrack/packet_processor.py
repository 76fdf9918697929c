"""Turn captured Ethernet frames into connection updates."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .connection_key import ConnectionKey
from .connection_manager import ETHERNET_HEADER_LENGTH, ConnectionManager
from .headers import IPPROTO_TCP, parse_ipv4_header, parse_tcp_header
from .log import Log
from .log_entries import PacketLogEntry

MIN_CAPTURE_LENGTH = 54
MIN_IP_HEADER_LENGTH = 20


class PacketProcessor:
    """Validate captured frames, log them and hand them to a connection manager."""

    def __init__(self, connection_manager: ConnectionManager, debug_mode: bool = False, *,
                 log_dir: str | Path = ".") -> None:
        self.connection_manager = connection_manager
        self.debug_mode = debug_mode
        self._packet_log = Log(Path(log_dir) / "packet.log", debug_mode)

    def handle_packet(self, packet: bytes, wire_length: Optional[int] = None) -> bool:
        """Process one captured Ethernet frame.

        ``wire_length`` is the frame's length on the wire; capture bytes beyond it are
        ignored. Returns True when the frame was a TCP segment passed on for tracking.
        """
        packet = bytes(packet)
        if wire_length is not None and 0 <= wire_length < len(packet):
            packet = packet[:wire_length]
        if len(packet) < MIN_CAPTURE_LENGTH:
            return False

        ip = parse_ipv4_header(packet[ETHERNET_HEADER_LENGTH:])
        if ip.protocol != IPPROTO_TCP:
            return False
        if ip.header_length < MIN_IP_HEADER_LENGTH:
            return False

        try:
            tcp = parse_tcp_header(packet[ETHERNET_HEADER_LENGTH + ip.header_length:])
        except ValueError:
            return False

        key = ConnectionKey(ip.source, tcp.src_port, ip.dest, tcp.dst_port)
        if key.is_empty():
            return False

        self._packet_log.log(PacketLogEntry(key, flags=int(tcp.flags)))
        self.connection_manager.process_packet(key, tcp, packet)
        return True

    def close(self) -> None:
        """Write out any buffered packet log entries."""
        self._packet_log.close()