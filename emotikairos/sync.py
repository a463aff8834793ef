"""Device-clock to host-clock synchronisation from embedded handshakes.

The host periodically runs a three-way clock exchange with the device and
the device logs each step as a packet:

  - ``RD``: the device requests the host time (device clock at request)
  - ``TL``: the host reply arrives, carrying the host wall-clock time at
    which it was sent as ``YYYY-MM-DD_HH-MM-SS-ffff``
  - ``AK``: the device acknowledges

Consecutive RD, TL, AK packets form a :class:`SyncTriple`.  The triples are
split into quartiles of the recording, the lowest round-trip triple of each
quartile is a candidate, and two candidates (preferably far apart) become
the anchors of a two-point linear :class:`SyncMap`.  Half the round trip is
added to the host time as one-way latency compensation.
"""

import datetime as _dt
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .errors import SyncError
from .packet import Packet, successful_packets
from .payload import format_number

logger = logging.getLogger(__name__)

# Provenance tag written into every sync map
PARSER_VERSION = "emotikairos.0.1.0"

REQUEST_TAG = "RD"
REPLY_TAG = "TL"
ACK_TAG = "AK"
HANDSHAKE_TAGS = (REQUEST_TAG, REPLY_TAG, ACK_TAG)

# Fewer handshake packets than this cannot hold a usable triple
MIN_SYNC_PACKETS = 3

N_QUARTILES = 4

# Quartile pairs tried in order when choosing the two anchors
ANCHOR_PAIR_PRIORITY = ((0, 3), (1, 3), (1, 2), (0, 1), (2, 3))

HOST_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_DIGITS_RE = re.compile(r"[0-9]+")


# -- Data ----------------------------------------------------------------------

@dataclass(frozen=True)
class SyncTriple:
    """One completed RD/TL/AK clock exchange (device times in ms)."""

    device_time_request_sent: float
    device_time_reply_received: float
    host_sent_timestamp_text: str
    device_time_ack_sent: float

    @property
    def round_trip(self) -> float:
        """Device ms between request and reply.  Negative means invalid."""
        return self.device_time_reply_received - self.device_time_request_sent

    def csv_row(self) -> List[str]:
        return [
            format_number(self.device_time_request_sent),
            format_number(self.device_time_reply_received),
            self.host_sent_timestamp_text,
            format_number(self.device_time_ack_sent),
            format_number(self.round_trip),
        ]


SYNC_TRIPLE_HEADER = ["RD", "TS_received", "TS_sent", "AK", "RoundTrip"]

SYNC_MAP_HEADER = [
    "TE0",
    "TE1",
    "TL0",
    "TL1",
    "TimeSyncsReceived",
    "EmotiBitStartTime",
    "EmotiBitEndTime",
    "DataParserVersion",
]


@dataclass(frozen=True)
class SyncMap:
    """Two-point linear mapping from device time (ms) to host time (s).

    The two device anchors must differ; otherwise the mapping is undefined
    and construction raises :class:`SyncError`.
    """

    device_anchor_0: float
    device_anchor_1: float
    host_anchor_0: float
    host_anchor_1: float
    samples_used: int
    device_time_min: float
    device_time_max: float
    format_version: str = PARSER_VERSION
    metadata: Optional[dict] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.device_anchor_0 == self.device_anchor_1:
            raise SyncError(
                "Degenerate sync map: both anchors have device time "
                f"{self.device_anchor_0}")
        if self.metadata is not None and not isinstance(self.metadata, dict):
            raise TypeError(
                f"metadata must be a dict or None, got {type(self.metadata).__name__}"
            )

    @property
    def slope(self) -> float:
        """Host seconds per device millisecond."""
        return ((self.host_anchor_1 - self.host_anchor_0)
                / (self.device_anchor_1 - self.device_anchor_0))

    def device_to_host(self, values):
        """Map device timestamps (ms) to host timestamps (epoch s).

        Plain linear interpolation through the two anchors; values outside
        the anchors are extrapolated.
        """
        values_arr = np.asarray(values, dtype=np.float64)
        scalar = values_arr.ndim == 0
        v = np.atleast_1d(values_arr)
        result = self.host_anchor_0 + (
            (self.host_anchor_1 - self.host_anchor_0)
            * (v - self.device_anchor_0)
            / (self.device_anchor_1 - self.device_anchor_0)
        )
        return float(result[0]) if scalar else result

    def csv_row(self) -> List[str]:
        return [
            format_number(self.device_anchor_0),
            format_number(self.device_anchor_1),
            format_number(self.host_anchor_0),
            format_number(self.host_anchor_1),
            str(self.samples_used),
            format_number(self.device_time_min),
            format_number(self.device_time_max),
            self.format_version,
        ]


# -- Triple extraction ---------------------------------------------------------

def find_syncs(items: Iterable, min_packets: int = MIN_SYNC_PACKETS
               ) -> List[SyncTriple]:
    """Extract RD/TL/AK handshake triples from a decoded stream.

    *items* are decode results or packets; failed results are skipped.
    Handshake packets are scanned with a window of three and every window
    in exact RD, TL, AK order yields a triple.  Other orderings are skipped.

    Raises :class:`SyncError` when fewer than *min_packets* handshake
    packets are present.
    """
    handshakes = [p for p in successful_packets(items)
                  if p.type_tag in HANDSHAKE_TAGS]
    if len(handshakes) < min_packets:
        raise SyncError(
            f"Not enough sync data: {len(handshakes)} handshake packet(s), "
            f"need at least {min_packets}")

    triples = []
    for rd, tl, ak in zip(handshakes, handshakes[1:], handshakes[2:]):
        if (rd.type_tag, tl.type_tag, ak.type_tag) != HANDSHAKE_TAGS:
            continue
        triples.append(SyncTriple(
            device_time_request_sent=rd.device_timestamp,
            device_time_reply_received=tl.device_timestamp,
            host_sent_timestamp_text=tl.payload.data,
            device_time_ack_sent=ak.device_timestamp,
        ))

    logger.info("Found %d sync triple(s) in %d handshake packets",
                len(triples), len(handshakes))
    return triples


# -- Anchor selection ----------------------------------------------------------

def split_quartiles(triples: Sequence[SyncTriple],
                    n_quartiles: int = N_QUARTILES) -> List[List[SyncTriple]]:
    """Split *triples* into *n_quartiles* contiguous chunks of
    ``ceil(len / n_quartiles)``; trailing chunks may be short or empty."""
    size = -(-len(triples) // n_quartiles)
    if size == 0:
        return [[] for _ in range(n_quartiles)]
    return [list(triples[i * size:(i + 1) * size]) for i in range(n_quartiles)]


def shortest_round_trip(chunk: Sequence[SyncTriple]) -> Optional[SyncTriple]:
    """Triple with the smallest non-negative round trip (first one on ties).

    Returns None for an empty chunk or one with only invalid triples.
    """
    valid = [t for t in chunk if t.round_trip >= 0]
    if not valid:
        return None
    best = int(np.argmin([t.round_trip for t in valid]))
    return valid[best]


def select_anchor_pair(candidates: Sequence[Optional[SyncTriple]]
                       ) -> Optional[Tuple[int, int]]:
    """First quartile pair in :data:`ANCHOR_PAIR_PRIORITY` with both
    candidates present, or None."""
    for a, b in ANCHOR_PAIR_PRIORITY:
        if (a < len(candidates) and b < len(candidates)
                and candidates[a] is not None and candidates[b] is not None):
            return a, b
    return None


# -- Host timestamp parsing ----------------------------------------------------

def parse_host_timestamp(text: str) -> float:
    """Parse a host ``YYYY-MM-DD_HH-MM-SS-ffff`` timestamp into epoch seconds.

    The date-time part is interpreted in local time.  The fraction follows
    the last ``-`` (or ``_``, whichever is later) and is scaled by its digit
    count, so ``1234`` is 0.1234 s.
    """
    pos = max(text.rfind("-"), text.rfind("_"))
    if pos < 0:
        raise SyncError(
            f"Cannot parse host timestamp {text!r}: no fractional separator")
    head, frac = text[:pos], text[pos + 1:]

    try:
        whole = _dt.datetime.strptime(head, HOST_TIMESTAMP_FORMAT).timestamp()
    except (ValueError, OverflowError, OSError) as e:
        raise SyncError(f"Cannot parse host timestamp {text!r}: {e}") from e

    if not _DIGITS_RE.fullmatch(frac):
        raise SyncError(
            f"Cannot parse host timestamp {text!r}: bad fraction {frac!r}")

    return whole + int(frac) / 10 ** len(frac)


def anchor_point(triple: SyncTriple) -> Tuple[float, float]:
    """``(device_ms, host_s)`` anchor for one triple.

    Host time is the reply's sent time plus half the round trip.
    """
    host = parse_host_timestamp(triple.host_sent_timestamp_text)
    host += triple.round_trip / 2 / 1000
    return triple.device_time_reply_received, host


# -- Sync map ------------------------------------------------------------------

def generate_sync_map(items: Iterable,
                      min_packets: int = MIN_SYNC_PACKETS) -> SyncMap:
    """Build the :class:`SyncMap` for a decoded stream.

    *items* are decode results or packets, in recording order.  Raises
    :class:`SyncError` when the stream is empty, has too little handshake
    data, no anchor pair can be formed, an embedded host timestamp does
    not parse, or the chosen anchors coincide.
    """
    packets = successful_packets(items)
    if not packets:
        raise SyncError("Cannot generate a time sync map: no decoded packets")

    device_times = np.array([p.device_timestamp for p in packets],
                            dtype=np.float64)
    device_time_min = float(device_times.min())
    device_time_max = float(device_times.max())

    triples = find_syncs(packets, min_packets=min_packets)

    n_invalid = sum(1 for t in triples if t.round_trip < 0)
    if n_invalid:
        logger.warning("Ignoring %d sync triple(s) with negative round trip",
                       n_invalid)

    candidates = [shortest_round_trip(c) for c in split_quartiles(triples)]
    empty = [i for i, c in enumerate(candidates) if c is None]
    if empty:
        logger.warning("No sync candidate in quartile(s) %s of %d triple(s)",
                       empty, len(triples))
    pair = select_anchor_pair(candidates)
    if pair is None:
        raise SyncError(
            f"Cannot generate a time sync map from {len(triples)} sync "
            f"triple(s): {triples!r}", triples)

    first, second = candidates[pair[0]], candidates[pair[1]]
    te0, tl0 = anchor_point(first)
    te1, tl1 = anchor_point(second)
    logger.info(
        "Sync anchors from quartiles %d and %d: device %.3f -> host %.6f, "
        "device %.3f -> host %.6f", pair[0], pair[1], te0, tl0, te1, tl1)

    return SyncMap(
        device_anchor_0=te0,
        device_anchor_1=te1,
        host_anchor_0=tl0,
        host_anchor_1=tl1,
        samples_used=len(triples),
        device_time_min=device_time_min,
        device_time_max=device_time_max,
        metadata={
            "anchor_quartiles": pair,
            "anchor_triples": (first, second),
        },
    )


# -- Projection ----------------------------------------------------------------

def inject_host_timestamp(packet: Packet, sync_map: SyncMap) -> Packet:
    """Return a copy of *packet* with its host timestamp projected."""
    return packet.with_host_timestamp(
        sync_map.device_to_host(packet.device_timestamp))


def inject_host_timestamps(packets: Iterable[Packet],
                           sync_map: SyncMap) -> List[Packet]:
    """Project every packet (vectorised over the whole batch)."""
    packets = list(packets)
    if not packets:
        return []
    hosts = sync_map.device_to_host(
        np.array([p.device_timestamp for p in packets], dtype=np.float64))
    return [p.with_host_timestamp(h) for p, h in zip(packets, hosts)]
