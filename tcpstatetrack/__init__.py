"""TCP connection state tracking and per-direction stream reassembly from pcap captures."""

__version__ = "0.1.0"

__all__ = ["__version__"]