"""Reassembly of one direction of a TCP byte stream."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from .connection_key import ConnectionKey
from .headers import ReassemblyDirection, ReassemblyEventType
from .log import Log
from .log_entries import ReassemblyLogEntry

DataCallback = Callable[[ReassemblyDirection, bytes], None]

_MASK = 0xFFFFFFFF


def _signed_diff(seq1: int, seq2: int) -> int:
    diff = (seq1 - seq2) & _MASK
    return diff - (1 << 32) if diff & 0x80000000 else diff


def seq_gt(seq1: int, seq2: int) -> bool:
    """True when ``seq1`` is after ``seq2`` in 32-bit sequence space."""
    return _signed_diff(seq1, seq2) > 0


def seq_ge(seq1: int, seq2: int) -> bool:
    """True when ``seq1`` is at or after ``seq2`` in 32-bit sequence space."""
    return _signed_diff(seq1, seq2) >= 0


class Reassembly:
    """Deliver in-order data of one stream direction, buffering future segments."""

    def __init__(self, key: ConnectionKey, direction: ReassemblyDirection,
                 debug_mode: bool = False, data_callback: Optional[DataCallback] = None,
                 *, log_path: str | Path = "reassembly.log") -> None:
        self.key = key
        self.direction = direction
        self._log = Log(log_path, debug_mode)
        self._callback = data_callback
        self._next_seq = 0
        self._initialized = False
        self._fin_received = False
        self._segments: dict[int, bytes] = {}

    @property
    def next_seq(self) -> int:
        """Sequence number of the next byte expected."""
        return self._next_seq

    @property
    def is_initialized(self) -> bool:
        """True once the initial sequence number is known."""
        return self._initialized

    @property
    def is_closed(self) -> bool:
        """True once a FIN has been seen for this direction."""
        return self._fin_received

    @property
    def buffered(self) -> dict[int, bytes]:
        """Copy of the out-of-order segments, keyed by start sequence number."""
        return dict(self._segments)

    def _log_event(self, event_type: ReassemblyEventType, seq: int = 0, length: int = 0) -> None:
        self._log.log(ReassemblyLogEntry(
            self.key,
            direction=self.direction,
            event_type=event_type,
            segment_seq=seq,
            segment_len=length,
            expected_seq=self._next_seq,
        ))

    def _deliver(self, data: bytes) -> None:
        if self._callback is not None:
            self._callback(self.direction, data)
        self._next_seq = (self._next_seq + len(data)) & _MASK

    def set_initial_seq(self, isn: int) -> None:
        """Set the first expected sequence number; later calls are ignored."""
        if self._initialized:
            return
        self._next_seq = isn & _MASK
        self._initialized = True
        self._log_event(ReassemblyEventType.SEQ_INITIALIZED)
        self._deliver_contiguous()

    def reset(self) -> None:
        """Forget all state, as after a reset."""
        if self._initialized or self._segments:
            self._log_event(ReassemblyEventType.BUFFER_RESET)
        self._segments.clear()
        self._next_seq = 0
        self._initialized = False
        self._fin_received = False

    def fin_received(self) -> None:
        """Mark the direction as finished; only the first call has effect."""
        if self._fin_received:
            return
        self._fin_received = True
        self._log_event(ReassemblyEventType.FIN_SIGNALED)
        self._deliver_contiguous()

    def process(self, seq: int, payload: bytes, syn_flag: bool = False,
                fin_flag: bool = False) -> None:
        """Handle the payload of one segment starting at ``seq``."""
        seq &= _MASK
        payload_len = len(payload)
        self._log_event(ReassemblyEventType.SEGMENT_RECEIVED, seq, payload_len)

        if not self._initialized:
            self._log_event(ReassemblyEventType.DATA_IGNORED_INIT, seq, payload_len)
            return

        end_seq = (seq + payload_len) & _MASK
        if payload_len > 0 and not seq_gt(end_seq, self._next_seq):
            self._log_event(ReassemblyEventType.OLD_SEGMENT_DISCARDED, seq, payload_len)
            return

        original_seq = seq
        data = bytes(payload)

        if payload_len > 0 and seq_gt(self._next_seq, seq):
            overlap = (self._next_seq - seq) & _MASK
            if overlap >= payload_len:
                self._log_event(ReassemblyEventType.DUPLICATE_DISCARDED, seq, payload_len)
                return
            seq = self._next_seq
            data = data[overlap:]
            self._log_event(ReassemblyEventType.OVERLAP_TRIMMED, original_seq, payload_len)

        if self._fin_received and data:
            self._log_event(ReassemblyEventType.DATA_IGNORED_FIN, seq, len(data))
            data = b""

        if data and seq == self._next_seq:
            self._log_event(ReassemblyEventType.SEGMENT_DELIVERED_IN_ORDER, seq, len(data))
            self._deliver(data)
            self._deliver_contiguous()
        elif payload_len > 0 and seq_gt(seq, self._next_seq):
            self._log_event(ReassemblyEventType.SEGMENT_BUFFERED, seq, len(data))
            self._segments[seq] = data

        if fin_flag:
            fin_seq = (original_seq + payload_len) & _MASK
            if fin_seq == self._next_seq and not self._fin_received:
                self.fin_received()
                self._next_seq = (self._next_seq + 1) & _MASK

    def _deliver_contiguous(self) -> None:
        if not self._initialized:
            return
        while self._segments:
            first = min(self._segments)
            if first != self._next_seq:
                break
            data = self._segments.pop(first)
            self._log_event(ReassemblyEventType.SEGMENT_DELIVERED_BUFFERED, first, len(data))
            self._deliver(data)

    def close(self) -> None:
        """Write out any buffered log entries."""
        self._log.close()