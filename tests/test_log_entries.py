from datetime import datetime, timezone

import pytest

from tcpstatetrack.connection_key import ConnectionKey
from tcpstatetrack.headers import ReassemblyDirection, ReassemblyEventType, TcpFlags
from tcpstatetrack.log_entries import (
    LogEntry,
    PacketLogEntry,
    ReassemblyLogEntry,
    StateLogEntry,
    event_type_label,
)

KEY = ConnectionKey("10.0.0.1", 1234, "10.0.0.2", 80)
TS = datetime(2024, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc)


def _reasm(event, seq=100, length=5, expected=90):
    return ReassemblyLogEntry(KEY, ReassemblyDirection.CLIENT_TO_SERVER, event,
                              seq, length, expected, timestamp=TS, utc_offset=0)


def test_timestamp_text():
    entry = StateLogEntry(KEY, "x", timestamp=TS, utc_offset=0)
    assert entry.timestamp_text() == "[2024-01-02 03:04:05.000006 UTC+0]"


def test_timestamp_negative_offset():
    entry = StateLogEntry(KEY, "x", timestamp=TS, utc_offset=-5)
    assert entry.timestamp_text().endswith(" UTC-5]")


def test_direction_text():
    entry = StateLogEntry(KEY, "x", timestamp=TS, utc_offset=0)
    assert entry.direction_text() == "10.0.0.1:1234->10.0.0.2:80,"


def test_log_entry_is_abstract():
    with pytest.raises(TypeError):
        LogEntry(KEY)


def test_state_entry_format():
    entry = StateLogEntry(KEY, "Initial State: cli:SYN_SENT", timestamp=TS, utc_offset=0)
    assert entry.format() == (entry.timestamp_text() + entry.direction_text()
                              + "Initial State: cli:SYN_SENT")


def test_packet_entry_all_flags_in_order():
    flags = (TcpFlags.URG | TcpFlags.ACK | TcpFlags.PUSH | TcpFlags.RST
             | TcpFlags.SYN | TcpFlags.FIN)
    entry = PacketLogEntry(KEY, flags, timestamp=TS, utc_offset=0)
    assert entry.format() == (entry.timestamp_text() + entry.direction_text()
                              + "fin " + "syn " + "rst " + "psh " + "ack " + "urg ")


def test_packet_entry_syn_ack():
    entry = PacketLogEntry(KEY, TcpFlags.SYN | TcpFlags.ACK, timestamp=TS, utc_offset=0)
    assert entry.format() == entry.timestamp_text() + entry.direction_text() + "syn " + "ack "


def test_packet_entry_no_flags():
    entry = PacketLogEntry(KEY, 0, timestamp=TS, utc_offset=0)
    assert entry.format() == entry.timestamp_text() + entry.direction_text()


@pytest.mark.parametrize("event,label", [
    (ReassemblyEventType.SEGMENT_RECEIVED, "RECV"),
    (ReassemblyEventType.SEGMENT_BUFFERED, "BUFF"),
    (ReassemblyEventType.SEGMENT_DELIVERED_IN_ORDER, "DLVR_ORD"),
    (ReassemblyEventType.SEGMENT_DELIVERED_BUFFERED, "DLVR_BUF"),
    (ReassemblyEventType.DUPLICATE_DISCARDED, "DROP_DUP"),
    (ReassemblyEventType.OLD_SEGMENT_DISCARDED, "DROP_OLD"),
    (ReassemblyEventType.OVERLAP_TRIMMED, "TRIM"),
    (ReassemblyEventType.BUFFER_RESET, "RESET"),
    (ReassemblyEventType.FIN_SIGNALED, "FIN"),
    (ReassemblyEventType.SEQ_INITIALIZED, "INIT"),
    (ReassemblyEventType.DATA_IGNORED_FIN, "IGN_FIN"),
    (ReassemblyEventType.DATA_IGNORED_INIT, "IGN_INIT"),
])
def test_event_labels(event, label):
    assert event_type_label(event) == label


def test_reassembly_segment_event_context():
    entry = _reasm(ReassemblyEventType.SEGMENT_BUFFERED, 100, 5, 90)
    prefix = entry.timestamp_text() + entry.direction_text()
    assert entry.format() == prefix + "BUFF" + " | Seq:100 Len:5 Expect:90"


def test_reassembly_init_context():
    entry = _reasm(ReassemblyEventType.SEQ_INITIALIZED, 0, 0, 777)
    assert entry.format().endswith("INIT | InitialSeq:777")


def test_reassembly_reset_and_fin_context():
    reset = _reasm(ReassemblyEventType.BUFFER_RESET, 0, 0, 42)
    fin = _reasm(ReassemblyEventType.FIN_SIGNALED, 0, 0, 43)
    assert reset.format().endswith("RESET | LastExpected:42")
    assert fin.format().endswith("FIN | Expecting:43")


def test_reassembly_ignored_has_no_expect():
    entry = _reasm(ReassemblyEventType.DATA_IGNORED_INIT, 100, 5, 90)
    assert entry.format().endswith("IGN_INIT | Seq:100 Len:5")
    assert "Expect" not in entry.format()


def test_default_timestamp_is_recent():
    before = datetime.now(timezone.utc)
    entry = StateLogEntry(KEY, "x")
    after = datetime.now(timezone.utc)
    assert before <= entry.timestamp <= after