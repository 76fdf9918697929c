# tcpstatetrack

Follows TCP connections seen in captured traffic. For each connection it keeps
a separate state machine for the client and the server side, reassembles each
direction's payload in sequence order, and, in debug mode, writes logs about
packets, state changes and reassembly events.

A connection is tracked from the first SYN without ACK that opens it; the
sender of that SYN is the client. Connections are marked for cleanup when a
FIN or RST is seen, when both sides are CLOSED, or when a side reaches
TIME_WAIT. A background pass removes marked connections that are both CLOSED,
have spent 60 seconds in TIME_WAIT, or have been idle for more than 60 seconds.

## Installation

```
pip install .
```

With the test requirements:

```
pip install ".[test]"
```

## Command line

The `tcpstatetrack` command reads a classic pcap capture of Ethernet frames,
from a file given with `-r` or from standard input:

```
tcpstatetrack -r capture.pcap
tcpstatetrack -d < capture.pcap
tcpstatetrack -D -c 10 -r capture.pcap
```

Options:

- `-r FILE`: read the capture from `FILE` instead of standard input.
- `-d`: debug mode. `packet.log`, `state.log` and `reassembly.log` are
  appended to in the current directory, and each reassembled chunk is reported
  (`Reassembled N bytes from client->server` on standard output, the payload
  text on standard error).
- `-D`: debug mode, and `packet.log` and `state.log` are first truncated to a
  one-line note.
- `-c SECONDS`: interval between cleanup passes (default 5). The value is read
  as a leading integer; text that is not a number gives 0.
- `-f FILTER`: stores a filter string (default `tcp`). It is not applied.

Unknown arguments are ignored. SIGINT and SIGTERM stop reading after the
current packet. The command exits with status 1 on a missing option value or
an unreadable or invalid capture, and 0 otherwise.

## Library use

```python
from tcpstatetrack.connection_manager import ConnectionManager
from tcpstatetrack.packet_processor import PacketProcessor

with ConnectionManager(cleanup_interval_seconds=5, debug_mode=False) as manager:
    processor = PacketProcessor(manager, debug_mode=False)
    for frame in frames:  # raw Ethernet frames as bytes
        processor.handle_packet(frame, len(frame))
    for connection in manager.get_active_connections():
        print(connection.key, connection.client_state, connection.server_state)
    processor.close()
```

`ConnectionManager`, `PacketProcessor` and `Connection` take a `log_dir`
keyword to choose where their log files go (default: the current directory).
`PacketProcessor.handle_packet` returns True when the frame was an IPv4 TCP
segment that was passed on for tracking.

Other building blocks:

- `tcpstatetrack.cli`: `parse_arguments`, `startup_message`, `read_pcap`
  (yields `(captured_bytes, wire_length)` per record) and `main`.
- `tcpstatetrack.connection`: `Connection`, with both sides' states and the
  two `Reassembly` streams.
- `tcpstatetrack.state_machine`: `TcpStateMachine`, `TcpState`, `SideState`,
  `state_to_string` and `flags_to_string`.
- `tcpstatetrack.reassembly`: the `Reassembly` buffer and the wrap-around
  sequence comparisons `seq_gt` and `seq_ge`.
- `tcpstatetrack.connection_key`: `ConnectionKey`. Two keys compare equal and
  hash alike whichever direction they describe; `reversed()` swaps the ends.
- `tcpstatetrack.log`: the buffered `Log` file writer and its `FlushPolicy`
  (flush after 1000 entries or 5 minutes; cut the file back above 10 MB).
- `tcpstatetrack.log_entries`: `PacketLogEntry`, `StateLogEntry`,
  `ReassemblyLogEntry` and `event_type_label`.
- `tcpstatetrack.headers`: `parse_ipv4_header`, `parse_tcp_header`,
  `TcpFlags` and the reassembly enums.
- `tcpstatetrack.utc_offset`: `utc_offset_hours`.

## What it does not do

- It does not capture from a network interface; it only reads pcap files or
  standard input. The startup line names `en1` and filter `tcp` as fixed text.
- It does not filter packets; `-f` is accepted and ignored.
- It reads only classic pcap with the Ethernet link type, not pcapng, and
  handles only IPv4.

## Running the tests

```
pytest
```