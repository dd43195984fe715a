"""Decoders turning raw DNS rdata payloads into display strings.

Brief:
  Each decoder takes the wire-format rdata of one resource record and returns
  a string, or None when the payload is too short to decode. Decoders never
  raise.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Dict, Optional, Union

logger = logging.getLogger("dnsquorum.dns")

Decoder = Callable[[bytes], Optional[str]]


class RecordType(enum.IntEnum):
    """Record types the resolver context knows how to decode."""

    A = 1
    TXT = 16
    AAAA = 28

    @classmethod
    def coerce(cls, value: Union["RecordType", int, str]) -> "RecordType":
        """Brief: Accept a RecordType, its numeric code, or its name.

        Inputs:
          - value: RecordType member, int qtype, or name such as "txt".

        Outputs:
          - RecordType member; raises ValueError for unsupported types.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unsupported record type: {value!r}") from None
        return cls(int(value))


def record_name(record_type: Union[RecordType, int]) -> str:
    try:
        return RecordType(int(record_type)).name
    except ValueError:
        return "unknown"


def ipv4_to_string(raw: bytes) -> Optional[str]:
    """Render the first four bytes as dotted-decimal IPv4."""

    if len(raw) < 4:
        logger.error("Invalid IPv4 address: %r", bytes(raw))
        return None
    return ".".join(str(b) for b in raw[:4])


def ipv6_to_string(raw: bytes) -> Optional[str]:
    """Render the first eight bytes as colon-separated decimal groups.

    Not the RFC 5952 text form.
    """

    if len(raw) < 8:
        logger.error("Invalid IPv6 address: %r", bytes(raw))
        return None
    return ":".join(str(b) for b in raw[:8])


def txt_to_string(raw: bytes) -> Optional[str]:
    """Strip the leading length byte of TXT rdata and return the text.

    Lossy: bytes that are not valid UTF-8 become U+FFFD.
    """

    if len(raw) == 0:
        return None
    return bytes(raw[1:]).decode("utf-8", errors="replace")


DECODERS: Dict[RecordType, Decoder] = {
    RecordType.A: ipv4_to_string,
    RecordType.AAAA: ipv6_to_string,
    RecordType.TXT: txt_to_string,
}


def decode_record(
    record_type: Union[RecordType, int, str], raw: bytes
) -> Optional[str]:
    """Brief: Decode one rdata payload using the decoder for record_type.

    Inputs:
      - record_type: RecordType, numeric qtype or name.
      - raw: Wire-format rdata bytes.

    Outputs:
      - Decoded string, or None when the payload cannot be decoded.
    """

    return DECODERS[RecordType.coerce(record_type)](raw)
