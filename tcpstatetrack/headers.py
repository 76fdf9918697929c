"""IPv4 and TCP header parsing, TCP flag bits and reassembly enums."""

from __future__ import annotations

import enum
import ipaddress
import struct
from dataclasses import dataclass

IPPROTO_TCP = 6

_IPV4 = struct.Struct("!BBHHHBBH4s4s")
_TCP = struct.Struct("!HHIIBBHHH")


class TcpFlags(enum.IntFlag):
    """Bits of the TCP flags byte."""

    FIN = 0x01
    SYN = 0x02
    RST = 0x04
    PUSH = 0x08
    ACK = 0x10
    URG = 0x20
    ECE = 0x40
    CWR = 0x80


@dataclass(frozen=True)
class IPv4Header:
    """The fixed part of an IPv4 header."""

    version: int
    ihl: int
    tos: int
    total_length: int
    ident: int
    flags: int
    fragment_offset: int
    ttl: int
    protocol: int
    checksum: int
    source: str
    dest: str

    @property
    def header_length(self) -> int:
        """Header length in bytes."""
        return self.ihl * 4


@dataclass(frozen=True)
class TcpHeader:
    """The fixed part of a TCP header."""

    src_port: int
    dst_port: int
    seq: int
    ack: int
    data_offset: int
    reserved: int
    flags: TcpFlags
    window: int
    checksum: int
    urgent_pointer: int

    @property
    def header_length(self) -> int:
        """Header length in bytes."""
        return self.data_offset * 4


class ReassemblyDirection(enum.Enum):
    """Direction of a reassembled byte stream."""

    CLIENT_TO_SERVER = "client->server"
    SERVER_TO_CLIENT = "server->client"


class ReassemblyEventType(enum.Enum):
    """Events reported by stream reassembly."""

    SEGMENT_RECEIVED = enum.auto()
    SEGMENT_BUFFERED = enum.auto()
    SEGMENT_DELIVERED_IN_ORDER = enum.auto()
    SEGMENT_DELIVERED_BUFFERED = enum.auto()
    DUPLICATE_DISCARDED = enum.auto()
    OLD_SEGMENT_DISCARDED = enum.auto()
    OVERLAP_TRIMMED = enum.auto()
    BUFFER_RESET = enum.auto()
    FIN_SIGNALED = enum.auto()
    SEQ_INITIALIZED = enum.auto()
    DATA_IGNORED_FIN = enum.auto()
    DATA_IGNORED_INIT = enum.auto()


def parse_ipv4_header(data: bytes) -> IPv4Header:
    """Parse the first 20 bytes of ``data`` as an IPv4 header."""
    if len(data) < _IPV4.size:
        raise ValueError(f"IPv4 header needs {_IPV4.size} bytes, got {len(data)}")
    (ver_ihl, tos, total_length, ident, flags_offset, ttl, protocol,
     checksum, source, dest) = _IPV4.unpack_from(bytes(data[:_IPV4.size]))
    return IPv4Header(
        version=ver_ihl >> 4,
        ihl=ver_ihl & 0x0F,
        tos=tos,
        total_length=total_length,
        ident=ident,
        flags=flags_offset >> 13,
        fragment_offset=flags_offset & 0x1FFF,
        ttl=ttl,
        protocol=protocol,
        checksum=checksum,
        source=str(ipaddress.IPv4Address(source)),
        dest=str(ipaddress.IPv4Address(dest)),
    )


def parse_tcp_header(data: bytes) -> TcpHeader:
    """Parse the first 20 bytes of ``data`` as a TCP header."""
    if len(data) < _TCP.size:
        raise ValueError(f"TCP header needs {_TCP.size} bytes, got {len(data)}")
    (src_port, dst_port, seq, ack, off_res, flags, window, checksum,
     urgent) = _TCP.unpack_from(bytes(data[:_TCP.size]))
    return TcpHeader(
        src_port=src_port,
        dst_port=dst_port,
        seq=seq,
        ack=ack,
        data_offset=off_res >> 4,
        reserved=off_res & 0x0F,
        flags=TcpFlags(flags),
        window=window,
        checksum=checksum,
        urgent_pointer=urgent,
    )