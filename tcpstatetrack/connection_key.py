"""Direction-insensitive identifier of a TCP connection."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, eq=False)
class ConnectionKey:
    """Two endpoints of a TCP connection.

    Keys compare equal and hash alike regardless of which endpoint is the source.
    """

    src_ip: str = ""
    src_port: int = 0
    dst_ip: str = ""
    dst_port: int = 0

    def _endpoints(self) -> tuple[tuple[str, int], tuple[str, int]]:
        return (self.src_ip, self.src_port), (self.dst_ip, self.dst_port)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionKey):
            return NotImplemented
        mine = self._endpoints()
        theirs = other._endpoints()
        return mine == theirs or mine == theirs[::-1]

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._endpoints())))

    def __str__(self) -> str:
        return f"{self.src_ip}:{self.src_port}->{self.dst_ip}:{self.dst_port}"

    def reversed(self) -> ConnectionKey:
        """Return the key for the opposite direction."""
        return ConnectionKey(self.dst_ip, self.dst_port, self.src_ip, self.src_port)

    def is_empty(self) -> bool:
        """True when either address is missing."""
        return not self.src_ip or not self.dst_ip