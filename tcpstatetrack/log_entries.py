"""Log line types for packets, state changes and reassembly events."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .connection_key import ConnectionKey
from .headers import ReassemblyDirection, ReassemblyEventType, TcpFlags
from .utc_offset import utc_offset_hours

_EVENT_LABELS = {
    ReassemblyEventType.SEGMENT_RECEIVED: "RECV",
    ReassemblyEventType.SEGMENT_BUFFERED: "BUFF",
    ReassemblyEventType.SEGMENT_DELIVERED_IN_ORDER: "DLVR_ORD",
    ReassemblyEventType.SEGMENT_DELIVERED_BUFFERED: "DLVR_BUF",
    ReassemblyEventType.DUPLICATE_DISCARDED: "DROP_DUP",
    ReassemblyEventType.OLD_SEGMENT_DISCARDED: "DROP_OLD",
    ReassemblyEventType.OVERLAP_TRIMMED: "TRIM",
    ReassemblyEventType.BUFFER_RESET: "RESET",
    ReassemblyEventType.FIN_SIGNALED: "FIN",
    ReassemblyEventType.SEQ_INITIALIZED: "INIT",
    ReassemblyEventType.DATA_IGNORED_FIN: "IGN_FIN",
    ReassemblyEventType.DATA_IGNORED_INIT: "IGN_INIT",
}

_SEGMENT_EVENTS = frozenset({
    ReassemblyEventType.SEGMENT_RECEIVED,
    ReassemblyEventType.SEGMENT_BUFFERED,
    ReassemblyEventType.SEGMENT_DELIVERED_IN_ORDER,
    ReassemblyEventType.SEGMENT_DELIVERED_BUFFERED,
    ReassemblyEventType.DUPLICATE_DISCARDED,
    ReassemblyEventType.OLD_SEGMENT_DISCARDED,
    ReassemblyEventType.OVERLAP_TRIMMED,
})

_IGNORED_EVENTS = frozenset({
    ReassemblyEventType.DATA_IGNORED_FIN,
    ReassemblyEventType.DATA_IGNORED_INIT,
})

_FLAG_WORDS = (
    (TcpFlags.FIN, "fin "),
    (TcpFlags.SYN, "syn "),
    (TcpFlags.RST, "rst "),
    (TcpFlags.PUSH, "psh "),
    (TcpFlags.ACK, "ack "),
    (TcpFlags.URG, "urg "),
)


def event_type_label(event_type: ReassemblyEventType) -> str:
    """Short label used in reassembly log lines."""
    return _EVENT_LABELS.get(event_type, "UNK")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LogEntry(ABC):
    """A timestamped log line about one direction of a connection."""

    key: ConnectionKey
    timestamp: datetime = field(default_factory=_utc_now, kw_only=True)
    utc_offset: int = field(default_factory=utc_offset_hours, kw_only=True)

    @abstractmethod
    def format(self) -> str:
        """Render the entry as one line of text."""

    def timestamp_text(self) -> str:
        """Bracketed UTC timestamp with microseconds and the local offset."""
        ts = self.timestamp
        ts = ts.astimezone(timezone.utc) if ts.tzinfo else ts
        sign = "+" if self.utc_offset >= 0 else ""
        return (f"[{ts.strftime('%Y-%m-%d %H:%M:%S')}.{ts.microsecond:06d}"
                f" UTC{sign}{self.utc_offset}]")

    def direction_text(self) -> str:
        """Source and destination endpoints followed by a comma."""
        k = self.key
        return f"{k.src_ip}:{k.src_port}->{k.dst_ip}:{k.dst_port},"


@dataclass
class PacketLogEntry(LogEntry):
    """A captured packet and its TCP flags."""

    flags: int

    def format(self) -> str:
        words = "".join(word for bit, word in _FLAG_WORDS if self.flags & bit)
        return self.timestamp_text() + self.direction_text() + words


@dataclass
class StateLogEntry(LogEntry):
    """A description of a connection state or state change."""

    state: str

    def format(self) -> str:
        return self.timestamp_text() + self.direction_text() + self.state


@dataclass
class ReassemblyLogEntry(LogEntry):
    """An event raised while reassembling one direction of a stream."""

    direction: ReassemblyDirection
    event_type: ReassemblyEventType
    segment_seq: int
    segment_len: int
    expected_seq: int

    def format(self) -> str:
        text = self.timestamp_text() + self.direction_text() + event_type_label(self.event_type)
        event = self.event_type
        if event in _SEGMENT_EVENTS:
            text += (f" | Seq:{self.segment_seq} Len:{self.segment_len}"
                     f" Expect:{self.expected_seq}")
        elif event is ReassemblyEventType.SEQ_INITIALIZED:
            text += f" | InitialSeq:{self.expected_seq}"
        elif event is ReassemblyEventType.BUFFER_RESET:
            text += f" | LastExpected:{self.expected_seq}"
        elif event is ReassemblyEventType.FIN_SIGNALED:
            text += f" | Expecting:{self.expected_seq}"
        elif event in _IGNORED_EVENTS:
            text += f" | Seq:{self.segment_seq} Len:{self.segment_len}"
        return text