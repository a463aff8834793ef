"""Packet decoding for EmotiBit raw data records.

Raw data packet layout (one record per line)::

    TIMESTAMP,PACKET#,#DATAPOINTS,TYPETAG,VERSION,RELIABILITY,PAYLOAD...

- TIMESTAMP: milliseconds since the device booted
- PACKET#: packet counter since the device booted
- #DATAPOINTS: number of payload elements the device claims to have sent
  (informational only, never checked against the payload)
- TYPETAG: payload type, see :mod:`emotikairos.payload`
- VERSION: packet protocol version
- RELIABILITY: data reliability score out of 100

Decoding is per record and never raises out of :func:`decode_records`:
every input record yields one :class:`DecodeResult`, in input order.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DecodeError, InvalidDataError, MissingColumnError
from .payload import (
    KIND_FLOAT_PAIR,
    KIND_NONE,
    KIND_STRING_FLOAT,
    SKIP_TO_PAYLOAD,
    TX_LC_LM,
    TX_TL_LC,
    Payload,
    decode_payload,
    format_number,
    parse_float,
    parse_int,
)

logger = logging.getLogger(__name__)

HEADER_FIELDS = (
    "device_timestamp",
    "sequence_id",
    "declared_length",
    "type_tag",
    "protocol_version",
    "reliability",
)

# Written in place of a host timestamp that has not been projected yet
NAN_MARKER = "NaN"

# TX sub-tag pairs that refine into a typed payload
_TX_REFINEMENTS = {
    ("LC", "LM"): TX_LC_LM,
    ("TL", "LC"): TX_TL_LC,
}


@dataclass(frozen=True)
class Packet:
    """One decoded record.

    Immutable; :meth:`with_host_timestamp` returns a copy carrying the
    projected host time.
    """

    device_timestamp: float
    sequence_id: int
    declared_length: int
    protocol_version: int
    reliability: int
    payload: Payload
    host_timestamp: Optional[float] = None

    @property
    def type_tag(self) -> str:
        return self.payload.type_tag

    def with_host_timestamp(self, host_timestamp: Optional[float]) -> "Packet":
        return dataclasses.replace(
            self,
            host_timestamp=None if host_timestamp is None else float(host_timestamp),
        )

    def inject_host_timestamp(self, sync_map) -> "Packet":
        """Project this packet onto host time with *sync_map*."""
        from .sync import inject_host_timestamp
        return inject_host_timestamp(self, sync_map)

    def csv_rows(self) -> List[List[str]]:
        """Flat text rows for CSV export.

        One row per payload element, a single combined row for refined TX
        payloads, and a single row with an empty payload field for tags
        without payload.
        """
        host = (NAN_MARKER if self.host_timestamp is None
                else format_number(self.host_timestamp))
        head = [
            host,
            format_number(self.device_timestamp),
            str(self.sequence_id),
            str(self.declared_length),
            self.type_tag,
            str(self.protocol_version),
            str(self.reliability),
        ]
        kind = self.payload.kind
        values = self.payload.values()
        if kind in (KIND_FLOAT_PAIR, KIND_STRING_FLOAT):
            return [head + [",".join(values)]]
        if kind == KIND_NONE:
            return [head + [""]]
        return [head + [v] for v in values]


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one record: either ``packet`` or ``error`` is set."""

    record: Tuple[str, ...]
    packet: Optional[Packet] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Packet:
        """Return the packet, or raise the stored decode error."""
        if self.error is not None:
            raise self.error
        return self.packet


# -- Decoding ------------------------------------------------------------------

def _header_value(record, index, parser, *args):
    text = record[index]
    try:
        return parser(text, *args)
    except ValueError as e:
        raise DecodeError(
            f"Cannot parse {HEADER_FIELDS[index]} ({text!r}): {e}", record
        ) from e


def refine_tx(packet: Packet, record=None) -> Packet:
    """Re-interpret a generic TX packet by its sub-tags.

    A TX payload ``[tag1, val1, tag2, val2, ...]`` with sub-tags
    ``("LC", "LM")`` becomes ``TX_LC_LM`` holding ``[val1, val2]`` as
    floats; ``("TL", "LC")`` becomes ``TX_TL_LC`` holding
    ``(val1, float(val2))``.  Any other pair is rejected with
    :class:`InvalidDataError`.  TX payloads shorter than 4 entries and
    non-TX packets are returned unchanged.
    """
    if packet.type_tag != "TX":
        return packet
    data = packet.payload.data
    if len(data) < 4:
        return packet

    tag1, val1, tag2, val2 = data[:4]
    refined = _TX_REFINEMENTS.get((tag1, tag2))
    if refined is None:
        raise InvalidDataError(
            f"Invalid data: unknown TX sub-tags ({tag1!r}, {tag2!r})", record)

    try:
        if refined == TX_LC_LM:
            payload = Payload(refined, [parse_float(val1), parse_float(val2)])
        else:
            payload = Payload(refined, (val1, parse_float(val2)))
    except ValueError as e:
        raise DecodeError(f"Cannot parse {refined} values: {e}", record) from e

    return dataclasses.replace(packet, payload=payload, host_timestamp=None)


def decode_record(record: Sequence[str]) -> Packet:
    """Decode one record (a sequence of text fields) into a :class:`Packet`.

    The six header fields are read positionally, the payload is dispatched
    on the type tag in field 3, and TX packets are refined.  Raises a
    :class:`DecodeError` subclass on any failure.
    """
    record = list(record)
    if len(record) < len(HEADER_FIELDS):
        raise MissingColumnError(
            f"Missing column: expected at least {len(HEADER_FIELDS)} fields, "
            f"got {len(record)}", record)

    packet = Packet(
        device_timestamp=_header_value(record, 0, parse_float),
        sequence_id=_header_value(record, 1, parse_int, np.uint32),
        declared_length=_header_value(record, 2, parse_int, np.uint8),
        protocol_version=_header_value(record, 4, parse_int, np.uint8),
        reliability=_header_value(record, 5, parse_int, np.uint8),
        payload=decode_payload(record[3], record, SKIP_TO_PAYLOAD, record),
    )
    return refine_tx(packet, record)


def decode_line(line: str) -> Packet:
    """Decode a single comma-separated raw line (e.g. one UDP datagram)."""
    return decode_record(line.strip().split(","))


def decode_records(records: Iterable[Sequence[str]]) -> List[DecodeResult]:
    """Decode every record, keeping one result per record in input order."""
    results = []
    n_failed = 0
    for record in records:
        record = tuple(record)
        try:
            results.append(DecodeResult(record, packet=decode_record(record)))
        except DecodeError as e:
            n_failed += 1
            logger.debug("Rejected record: %s", e)
            results.append(DecodeResult(record, error=e))
    logger.info("Decoded %d records (%d rejected)", len(results), n_failed)
    return results


def successful_packets(
        items: Iterable[Union[DecodeResult, Packet]]) -> List[Packet]:
    """Keep the decoded packets of *items*, in order.

    Accepts decode results (failures are dropped) or bare packets.
    """
    packets = []
    for item in items:
        if isinstance(item, DecodeResult):
            if item.ok:
                packets.append(item.packet)
        else:
            packets.append(item)
    return packets
