import socket
import struct

import pytest

from tcpstatetrack.connection_key import ConnectionKey
from tcpstatetrack.connection_manager import ConnectionManager
from tcpstatetrack.headers import TcpFlags
from tcpstatetrack.packet_processor import PacketProcessor
from tcpstatetrack.state_machine import TcpState

CLIENT = ("10.0.0.1", 40000)
SERVER = ("10.0.0.2", 80)


def frame(src, dst, flags, seq=0, payload=b"", proto=6, ver_ihl=0x45):
    tcp = struct.pack("!HHIIBBHHH", src[1], dst[1], seq, 0, 0x50, int(flags), 65535, 0, 0)
    total = 20 + len(tcp) + len(payload)
    ip = struct.pack("!BBHHHBBH4s4s", ver_ihl, 0, total, 0, 0, 64, proto, 0,
                     socket.inet_aton(src[0]), socket.inet_aton(dst[0]))
    eth = b"\x00" * 12 + b"\x08\x00"
    return eth + ip + tcp + payload


@pytest.fixture
def setup(tmp_path):
    manager = ConnectionManager(debug_mode=False, log_dir=tmp_path)
    processor = PacketProcessor(manager, debug_mode=False, log_dir=tmp_path)
    yield manager, processor
    processor.close()


def test_short_capture_is_rejected(setup):
    manager, processor = setup
    data = frame(CLIENT, SERVER, TcpFlags.SYN)[:53]
    assert processor.handle_packet(data) is False
    assert manager.get_active_connections() == []


def test_non_tcp_protocol_is_rejected(setup):
    manager, processor = setup
    assert processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN, proto=17)) is False
    assert manager.get_active_connections() == []


def test_short_ip_header_is_rejected(setup):
    manager, processor = setup
    assert processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN, ver_ihl=0x44)) is False
    assert manager.get_active_connections() == []


def test_wire_length_cuts_capture(setup):
    manager, processor = setup
    data = frame(CLIENT, SERVER, TcpFlags.SYN)
    assert processor.handle_packet(data, wire_length=40) is False
    assert manager.get_active_connections() == []


def test_opening_syn_creates_connection(setup):
    manager, processor = setup
    assert processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN, seq=100)) is True
    key = ConnectionKey(CLIENT[0], CLIENT[1], SERVER[0], SERVER[1])
    conn = manager.get_connection(key.reversed())
    assert conn is not None
    assert conn.key == key
    assert conn.client_state is TcpState.SYN_SENT
    assert conn.server_state is TcpState.SYN_RECEIVED


def test_non_syn_first_packet_creates_nothing(setup):
    manager, processor = setup
    assert processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.ACK)) is True
    assert manager.get_active_connections() == []


def test_handshake_establishes_both_sides(setup):
    manager, processor = setup
    processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN, seq=100))
    processor.handle_packet(frame(SERVER, CLIENT, TcpFlags.SYN | TcpFlags.ACK, seq=500))
    processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.ACK, seq=101))
    (conn,) = manager.get_active_connections()
    assert conn.client_state is TcpState.ESTABLISHED
    assert conn.server_state is TcpState.ESTABLISHED


def test_payload_is_reassembled(tmp_path, capsys):
    manager = ConnectionManager(debug_mode=True, log_dir=tmp_path)
    processor = PacketProcessor(manager, debug_mode=True, log_dir=tmp_path)
    processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN, seq=100))
    processor.handle_packet(frame(SERVER, CLIENT, TcpFlags.SYN | TcpFlags.ACK, seq=500))
    processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.ACK, seq=101))
    processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.PUSH | TcpFlags.ACK,
                                  seq=101, payload=b"hello"))
    processor.close()
    captured = capsys.readouterr()
    assert "Reassembled 5 bytes from client->server" in captured.out
    assert 'Payload as string: "hello"' in captured.err
    (conn,) = manager.get_active_connections()
    assert conn.client_reassembly.next_seq == 106
    for conn in manager.get_active_connections():
        conn.close()


def test_debug_mode_logs_packet_flags(tmp_path):
    manager = ConnectionManager(debug_mode=True, log_dir=tmp_path)
    processor = PacketProcessor(manager, debug_mode=True, log_dir=tmp_path)
    processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN, seq=100))
    processor.close()
    lines = (tmp_path / "packet.log").read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("10.0.0.1:40000->10.0.0.2:80,syn ")
    for conn in manager.get_active_connections():
        conn.close()


def test_no_packet_log_without_debug(tmp_path):
    manager = ConnectionManager(log_dir=tmp_path)
    processor = PacketProcessor(manager, log_dir=tmp_path)
    assert processor.handle_packet(frame(CLIENT, SERVER, TcpFlags.SYN)) is True
    processor.close()
    assert not (tmp_path / "packet.log").exists()