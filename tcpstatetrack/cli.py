"""Command line: track TCP connection states from a pcap capture."""

from __future__ import annotations

import contextlib
import re
import signal
import struct
import sys
import threading
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Sequence

from .connection_manager import ConnectionManager
from .log import Log
from .packet_processor import PacketProcessor

LINKTYPE_ETHERNET = 1
_PCAP_MAGICS = (0xA1B2C3D4, 0xA1B23C4D)
_GLOBAL_HEADER_LENGTH = 24
_RECORD_HEADER_LENGTH = 16


class UsageError(ValueError):
    """Bad command-line arguments."""


@dataclass
class ProgramOptions:
    """Settings taken from the command line."""

    debug_mode: bool = False
    truncate_packet_log: bool = False
    truncate_state_log: bool = False
    cleanup_interval_seconds: int = 5
    filter: str = "tcp"
    input_path: str = "-"


def _atoi(text: str) -> int:
    match = re.match(r"\s*[+-]?\d+", text)
    return int(match.group()) if match else 0


def parse_arguments(argv: Sequence[str]) -> ProgramOptions:
    """Build options from arguments; unknown arguments are ignored."""
    options = ProgramOptions()
    args = iter(argv)
    for arg in args:
        if arg == "-f":
            value = next(args, None)
            if value is None:
                raise UsageError("-f requires a filter string.")
            options.filter = value
        elif arg == "-r":
            value = next(args, None)
            if value is None:
                raise UsageError("-r requires a capture file.")
            options.input_path = value
        elif arg == "-D":
            options.debug_mode = True
            options.truncate_packet_log = True
            options.truncate_state_log = True
        elif arg == "-d":
            options.debug_mode = True
        elif arg == "-c":
            value = next(args, None)
            if value is not None:
                options.cleanup_interval_seconds = _atoi(value)
    return options


def startup_message(options: ProgramOptions) -> str:
    """The line printed when tracking starts."""
    return ("starting tcp state tracking on en1 with filter 'tcp' (debug "
            + ("on" if options.debug_mode else "off")
            + ", flush every 1000 updates or 5 minutes, debounce "
            + str(options.cleanup_interval_seconds) + " s)")


def read_pcap(stream: BinaryIO) -> Iterator[tuple[bytes, int]]:
    """Read a classic pcap stream of Ethernet frames.

    The global header is checked at once; the returned iterator yields
    ``(captured_bytes, wire_length)`` for each record.
    """
    header = stream.read(_GLOBAL_HEADER_LENGTH)
    if len(header) < _GLOBAL_HEADER_LENGTH:
        raise ValueError("capture is too short for a pcap header")
    if int.from_bytes(header[:4], "little") in _PCAP_MAGICS:
        endian = "<"
    elif int.from_bytes(header[:4], "big") in _PCAP_MAGICS:
        endian = ">"
    else:
        raise ValueError("not a pcap capture")
    linktype = struct.unpack_from(endian + "I", header, 20)[0] & 0x0FFFFFFF
    if linktype != LINKTYPE_ETHERNET:
        raise ValueError(f"unsupported link type {linktype}")
    record = struct.Struct(endian + "IIII")

    def records() -> Iterator[tuple[bytes, int]]:
        while True:
            raw = stream.read(_RECORD_HEADER_LENGTH)
            if not raw:
                return
            if len(raw) < _RECORD_HEADER_LENGTH:
                raise ValueError("truncated pcap record header")
            _, _, incl_len, orig_len = record.unpack(raw)
            data = stream.read(incl_len)
            if len(data) < incl_len:
                raise ValueError("truncated pcap record")
            yield data, orig_len

    return records()


def _truncate_logs(options: ProgramOptions) -> None:
    print("Truncating log...", flush=True)
    for name, wanted in (("packet.log", options.truncate_packet_log),
                         ("state.log", options.truncate_state_log)):
        if wanted:
            with Log(name, True) as log:
                log.truncate()


def _open_input(path: str) -> contextlib.AbstractContextManager:
    if path == "-":
        return contextlib.nullcontext(sys.stdin.buffer)
    return open(path, "rb")


@contextlib.contextmanager
def _stop_on_signals(stop: threading.Event) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame) -> None:
        print(f"Received signal {signum}", flush=True)
        stop.set()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the tracker over a pcap capture (a file given with -r, or standard input)."""
    try:
        options = parse_arguments(sys.argv[1:] if argv is None else argv)
    except UsageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if options.truncate_packet_log or options.truncate_state_log:
        _truncate_logs(options)

    stop = threading.Event()
    try:
        with _stop_on_signals(stop), _open_input(options.input_path) as stream:
            packets = read_pcap(stream)
            print(startup_message(options), flush=True)
            with ConnectionManager(options.cleanup_interval_seconds,
                                   options.debug_mode) as manager:
                processor = PacketProcessor(manager, options.debug_mode)
                try:
                    for data, wire_length in packets:
                        if stop.is_set():
                            break
                        processor.handle_packet(data, wire_length)
                finally:
                    processor.close()
    except (OSError, ValueError) as exc:
        print(f"Couldn't read capture: {exc}", file=sys.stderr)
        return 1

    print("Program terminated cleanly.", flush=True)
    return 0