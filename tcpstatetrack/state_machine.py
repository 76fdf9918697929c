"""Per-side TCP state tracking driven by observed segment flags."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Optional

from .headers import TcpFlags

TIME_WAIT_DURATION = 60.0
MAX_INACTIVITY = 60


class TcpState(enum.Enum):
    """TCP connection states; each value is the state's display name."""

    CLOSED = "CLOSED"
    LISTEN = "LISTEN"
    SYN_SENT = "SYN_SENT"
    SYN_RECEIVED = "SYN_RCVD"
    ESTABLISHED = "ESTABLISHED"
    FIN_WAIT_1 = "FIN_WAIT_1"
    FIN_WAIT_2 = "FIN_WAIT_2"
    CLOSE_WAIT = "CLOSE_WAIT"
    CLOSING = "CLOSING"
    LAST_ACK = "LAST_ACK"
    TIME_WAIT = "TIME_WAIT"


@dataclass
class SideState:
    """State of one endpoint, with the monotonic times it changed."""

    state: TcpState = TcpState.CLOSED
    prev_state: TcpState = TcpState.CLOSED
    start_time: float = field(default_factory=time.monotonic)
    time_wait_entry_time: Optional[float] = None


_FLAG_LETTERS = (
    (TcpFlags.SYN, "S"),
    (TcpFlags.ACK, "A"),
    (TcpFlags.FIN, "F"),
    (TcpFlags.RST, "R"),
    (TcpFlags.PUSH, "P"),
    (TcpFlags.URG, "U"),
)


def state_to_string(state: TcpState) -> str:
    """Display name of a state."""
    return state.value


def flags_to_string(flags: int) -> str:
    """Compact letters for the set flags, or "-" when none are set."""
    text = "".join(letter for bit, letter in _FLAG_LETTERS if flags & bit)
    return text or "-"


def _closing_transition(current: TcpState, flags: int) -> Optional[TcpState]:
    """Transitions shared by both sides once the handshake is under way."""
    syn = bool(flags & TcpFlags.SYN)
    ack = bool(flags & TcpFlags.ACK)
    fin = bool(flags & TcpFlags.FIN)
    del syn
    if current is TcpState.SYN_RECEIVED:
        if ack:
            return TcpState.ESTABLISHED
        if fin:
            return TcpState.CLOSE_WAIT
    elif current is TcpState.ESTABLISHED:
        if fin:
            return TcpState.CLOSE_WAIT
    elif current is TcpState.FIN_WAIT_1:
        if fin and ack:
            return TcpState.TIME_WAIT
        if ack:
            return TcpState.FIN_WAIT_2
        if fin:
            return TcpState.CLOSING
    elif current is TcpState.FIN_WAIT_2:
        if fin:
            return TcpState.TIME_WAIT
    elif current is TcpState.CLOSING:
        if ack:
            return TcpState.TIME_WAIT
    elif current is TcpState.LAST_ACK:
        if ack:
            return TcpState.CLOSED
    return None


class TcpStateMachine:
    """Decides state transitions and when a connection may be discarded."""

    def determine_new_state(self, current: TcpState, flags: int, is_client: bool) -> TcpState:
        """Next state of one side after seeing a segment with ``flags``."""
        if is_client:
            return self._client_state_machine(current, flags)
        return self._server_state_machine(current, flags)

    @staticmethod
    def _client_state_machine(current: TcpState, flags: int) -> TcpState:
        if flags & TcpFlags.RST:
            return TcpState.CLOSED
        if current is TcpState.SYN_SENT:
            if flags & TcpFlags.SYN and flags & TcpFlags.ACK:
                return TcpState.ESTABLISHED
            if flags & TcpFlags.SYN:
                return TcpState.SYN_RECEIVED
            return current
        return _closing_transition(current, flags) or current

    @staticmethod
    def _server_state_machine(current: TcpState, flags: int) -> TcpState:
        if flags & TcpFlags.RST:
            return TcpState.CLOSED
        if current is TcpState.LISTEN:
            if flags & TcpFlags.SYN and not flags & TcpFlags.ACK:
                return TcpState.SYN_RECEIVED
            return current
        return _closing_transition(current, flags) or current

    def should_enter_time_wait(self, current: TcpState, flags: int, is_client: bool) -> bool:
        """True when ``flags`` move ``current`` into TIME_WAIT (same for both sides)."""
        fin = bool(flags & TcpFlags.FIN)
        ack = bool(flags & TcpFlags.ACK)
        return ((current is TcpState.FIN_WAIT_1 and fin and ack)
                or (current is TcpState.FIN_WAIT_2 and fin)
                or (current is TcpState.CLOSING and ack))

    def should_clean_up(self, client_state: SideState, server_state: SideState,
                        last_update: float, now: Optional[float] = None) -> bool:
        """True when both sides are closed, TIME_WAIT expired, or the connection idled."""
        if now is None:
            now = time.monotonic()
        if client_state.state is TcpState.CLOSED and server_state.state is TcpState.CLOSED:
            return True
        for side in (client_state, server_state):
            if (side.state is TcpState.TIME_WAIT
                    and side.time_wait_entry_time is not None
                    and now - side.time_wait_entry_time >= TIME_WAIT_DURATION):
                return True
        return int(now - last_update) > MAX_INACTIVITY