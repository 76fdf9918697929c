"""Table of tracked connections with periodic background cleanup."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Optional

from .connection import Connection
from .connection_key import ConnectionKey
from .headers import ReassemblyDirection, TcpFlags, TcpHeader, parse_ipv4_header
from .state_machine import TcpState

ETHERNET_HEADER_LENGTH = 14


class ConnectionManager:
    """Creates connections on opening SYNs, routes packets to them and removes dead ones."""

    def __init__(self, cleanup_interval_seconds: int = 5, debug_mode: bool = False, *,
                 log_dir: str | Path = ".") -> None:
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.debug_mode = debug_mode
        self.log_dir = Path(log_dir)
        self._connections: dict[ConnectionKey, Connection] = {}
        self._marked: list[ConnectionKey] = []
        self._next_id = 1
        self._connections_lock = threading.Lock()
        self._cleanup_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def marked_for_cleanup(self) -> list[ConnectionKey]:
        """Keys waiting for the next cleanup pass."""
        with self._cleanup_lock:
            return list(self._marked)

    def _on_data(self, direction: ReassemblyDirection, data: bytes) -> None:
        if not self.debug_mode:
            return
        print(f"Reassembled {len(data)} bytes from {direction.value}", flush=True)
        text = data.decode("utf-8", errors="replace")
        print(f'Payload as string: "{text}"', file=sys.stderr)

    def _create_or_get_connection(self, key: ConnectionKey,
                                  tcp: TcpHeader) -> Optional[Connection]:
        with self._connections_lock:
            conn = self._connections.get(key)
            if conn is not None:
                return conn
            if not (tcp.flags & TcpFlags.SYN) or tcp.flags & TcpFlags.ACK:
                return None
            conn = Connection(key, self._next_id, self.debug_mode, self._on_data,
                              log_dir=self.log_dir)
            self._next_id += 1
            self._connections[key] = conn
            return conn

    def process_packet(self, key: ConnectionKey, tcp: Optional[TcpHeader],
                       packet: bytes) -> None:
        """Update the connection a captured Ethernet frame belongs to."""
        if tcp is None or key.is_empty():
            return
        conn = self._create_or_get_connection(key, tcp)
        if conn is None or conn.key.is_empty():
            return
        from_client = conn.is_from_client(key.src_ip)

        ip = parse_ipv4_header(packet[ETHERNET_HEADER_LENGTH:])
        start = ETHERNET_HEADER_LENGTH + ip.header_length + tcp.header_length
        payload_len = max(0, ip.total_length - ip.header_length - tcp.header_length)
        payload = bytes(packet[start:start + payload_len])
        flags = int(tcp.flags)

        if payload or flags & (TcpFlags.SYN | TcpFlags.FIN):
            conn.process_payload(from_client, tcp.seq, payload, flags)

        if from_client:
            conn.update_server_state(flags)
        else:
            conn.update_client_state(flags)

        client, server = conn.client_state, conn.server_state
        if (flags & (TcpFlags.FIN | TcpFlags.RST)
                or (client is TcpState.CLOSED and server is TcpState.CLOSED)
                or client is TcpState.TIME_WAIT or server is TcpState.TIME_WAIT):
            with self._cleanup_lock:
                self._marked.append(key)

    def get_connection(self, key: ConnectionKey) -> Optional[Connection]:
        """The connection for ``key`` in either direction, or None."""
        with self._connections_lock:
            return self._connections.get(key)

    def get_active_connections(self) -> list[Connection]:
        """All connections currently tracked."""
        with self._connections_lock:
            return list(self._connections.values())

    def cleanup_marked_connections(self) -> None:
        """Remove marked connections that are ready to be discarded."""
        with self._cleanup_lock:
            to_cleanup, self._marked = self._marked, []
        if not to_cleanup:
            return
        removed = []
        with self._connections_lock:
            for key in to_cleanup:
                conn = self._connections.get(key)
                if conn is not None and conn.should_clean_up():
                    removed.append(self._connections.pop(key))
        for conn in removed:
            conn.close()

    def _cleanup_loop(self) -> None:
        while not self._stop_event.is_set():
            self.cleanup_marked_connections()
            self._stop_event.wait(self.cleanup_interval_seconds)

    def start(self) -> None:
        """Start the background cleanup thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._cleanup_loop, daemon=True,
                                        name="connection-cleanup")
        self._thread.start()

    def stop(self) -> None:
        """Stop the background cleanup thread and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> ConnectionManager:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
        with self._connections_lock:
            remaining = list(self._connections.values())
            self._connections.clear()
        for conn in remaining:
            conn.close()