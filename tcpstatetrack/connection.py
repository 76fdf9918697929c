"""One tracked TCP connection: both sides' states and both byte streams."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

from .connection_key import ConnectionKey
from .headers import ReassemblyDirection, TcpFlags
from .log import Log
from .log_entries import StateLogEntry
from .reassembly import DataCallback, Reassembly
from .state_machine import SideState, TcpState, TcpStateMachine, flags_to_string, state_to_string


class Connection:
    """Tracks the client and server state of a connection and reassembles its data.

    The client is the endpoint that sent the opening SYN, i.e. ``key.src_ip``.
    """

    def __init__(self, key: ConnectionKey, conn_id: int, debug_mode: bool = False,
                 data_callback: Optional[DataCallback] = None, *,
                 log_dir: str | Path = ".") -> None:
        log_dir = Path(log_dir)
        self.key = key
        self.id = conn_id
        self.debug_mode = debug_mode
        now = time.monotonic()
        self.last_update = now
        self.client_side = SideState(TcpState.SYN_SENT, TcpState.CLOSED, now)
        self.server_side = SideState(TcpState.LISTEN, TcpState.CLOSED, now)
        self._state_machine = TcpStateMachine()
        self._state_log = Log(log_dir / "state.log", debug_mode)
        reassembly_log = log_dir / "reassembly.log"
        self.client_reassembly = Reassembly(
            key, ReassemblyDirection.CLIENT_TO_SERVER, debug_mode, data_callback,
            log_path=reassembly_log)
        self.server_reassembly = Reassembly(
            key.reversed(), ReassemblyDirection.SERVER_TO_CLIENT, debug_mode, data_callback,
            log_path=reassembly_log)
        initial = (f"Initial State: cli:{state_to_string(self.client_side.state)}"
                   f" srv:{state_to_string(self.server_side.state)}")
        self._state_log.log(StateLogEntry(self.key, state=initial))

    @property
    def client_state(self) -> TcpState:
        """Current state of the client side."""
        return self.client_side.state

    @property
    def server_state(self) -> TcpState:
        """Current state of the server side."""
        return self.server_side.state

    def is_from_client(self, src_ip: str) -> bool:
        """True when a packet with this source address was sent by the client."""
        return self.key.src_ip == src_ip

    def _update_side(self, side: SideState, other: SideState, flags: int,
                     is_client: bool) -> None:
        current = side.state
        new_state = self._state_machine.determine_new_state(current, flags, is_client)
        now = time.monotonic()
        if new_state is not current:
            if is_client:
                info = (f"Trigger: S->C flags({flags_to_string(flags)}) | "
                        f"cli: {state_to_string(current)} -> {state_to_string(new_state)}"
                        f" | srv_ctx: {state_to_string(other.state)}")
                log_key = self.key.reversed()
            else:
                info = (f"Trigger: C->S flags({flags_to_string(flags)}) | "
                        f"srv: {state_to_string(current)} -> {state_to_string(new_state)}"
                        f" | cli_ctx: {state_to_string(other.state)}")
                log_key = self.key
            self._state_log.log(StateLogEntry(log_key, state=info))
            side.prev_state = current
            side.state = new_state
            side.start_time = now
            if new_state is TcpState.TIME_WAIT:
                side.time_wait_entry_time = now
        self.last_update = now

    def update_client_state(self, flags: int) -> None:
        """Advance the client side after a segment sent by the server."""
        self._update_side(self.client_side, self.server_side, flags, True)

    def update_server_state(self, flags: int) -> None:
        """Advance the server side after a segment sent by the client."""
        self._update_side(self.server_side, self.client_side, flags, False)

    def should_clean_up(self) -> bool:
        """True when the connection is finished or has gone idle."""
        return self._state_machine.should_clean_up(
            self.client_side, self.server_side, self.last_update)

    def process_payload(self, is_from_client: bool, seq: int, payload: bytes,
                        flags: int) -> None:
        """Feed one segment's payload and control flags to the matching stream."""
        reassembly = self.client_reassembly if is_from_client else self.server_reassembly
        if flags & TcpFlags.SYN:
            if is_from_client and self.client_side.state is TcpState.SYN_SENT:
                reassembly.set_initial_seq(seq + 1)
            elif not is_from_client and self.server_side.state is TcpState.SYN_RECEIVED:
                reassembly.set_initial_seq(seq + 1)
        reassembly.process(seq, payload, bool(flags & TcpFlags.SYN), bool(flags & TcpFlags.FIN))
        if flags & TcpFlags.FIN:
            reassembly.fin_received()
        if flags & TcpFlags.RST:
            self.client_reassembly.reset()
            self.server_reassembly.reset()

    def close(self) -> None:
        """Write out all pending log entries."""
        self._state_log.close()
        self.client_reassembly.close()
        self.server_reassembly.close()