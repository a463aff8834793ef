"""RawDataSession: facade over decoding, clock sync and export for one
batch of EmotiBit records.

Use one of the ``from_*`` classmethods, then call ``decode()`` (or any
accessor, which decodes on first use).  Nothing is shared between
sessions.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import numpy as np

from .errors import DecodeError, SyncError
from .packet import DecodeResult, Packet, decode_records
from .raw_file import export_by_type, read_records
from .sync import (
    MIN_SYNC_PACKETS,
    SyncMap,
    SyncTriple,
    find_syncs,
    generate_sync_map,
    inject_host_timestamps,
)

logger = logging.getLogger(__name__)


class RawDataSession:
    """Decoded view of one raw data recording."""

    def __init__(self, records: Sequence[Sequence[str]],
                 path: Optional[Path] = None,
                 min_sync_packets: int = MIN_SYNC_PACKETS):
        """Private constructor, use classmethods instead."""
        self._records = records
        self._path = path
        self._min_sync_packets = min_sync_packets
        self._results: Optional[List[DecodeResult]] = None
        self._sync_map: Optional[SyncMap] = None

    # -- Factory classmethods --------------------------------------------------

    @classmethod
    def from_file(cls, path, min_sync_packets=MIN_SYNC_PACKETS):
        """Create a session for a raw data CSV file."""
        path = Path(path)
        return cls(read_records(path), path=path,
                   min_sync_packets=min_sync_packets)

    @classmethod
    def from_lines(cls, lines: Iterable[str],
                   min_sync_packets=MIN_SYNC_PACKETS):
        """Create a session from raw text lines (blank lines are skipped)."""
        records = [line.strip().split(",") for line in lines if line.strip()]
        return cls(records, min_sync_packets=min_sync_packets)

    # -- Core ------------------------------------------------------------------

    def decode(self) -> List[DecodeResult]:
        """Decode every record once; later calls return the cached results."""
        if self._results is None:
            self._results = decode_records(self._records)
        return self._results

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def results(self) -> List[DecodeResult]:
        return self.decode()

    @property
    def packets(self) -> List[Packet]:
        """Successfully decoded packets, in record order."""
        return [r.packet for r in self.decode() if r.ok]

    @property
    def errors(self) -> List[DecodeError]:
        return [r.error for r in self.decode() if not r.ok]

    def find_syncs(self) -> List[SyncTriple]:
        return find_syncs(self.decode(), min_packets=self._min_sync_packets)

    def sync_map(self) -> SyncMap:
        """The session's sync map (computed once).  Raises SyncError."""
        if self._sync_map is None:
            self._sync_map = generate_sync_map(
                self.decode(), min_packets=self._min_sync_packets)
        return self._sync_map

    def projected_packets(self) -> List[Packet]:
        """Packets with host timestamps, or unprojected if sync fails."""
        try:
            sync_map = self.sync_map()
        except SyncError as e:
            logger.warning("Packets left without host timestamps: %s", e)
            return self.packets
        return inject_host_timestamps(self.packets, sync_map)

    # -- Outputs ---------------------------------------------------------------

    def export(self, output_dir=None) -> List[Path]:
        """Write the per-type CSV export next to the source file (or into
        *output_dir*)."""
        if self._path is None and output_dir is None:
            raise ValueError("output_dir is required for sessions without a file")
        path = self._path if self._path is not None else Path("raw_data.csv")
        return export_by_type(path, self.decode(), output_dir=output_dir,
                              min_packets=self._min_sync_packets)

    def mean_heart_rate(self) -> float:
        """Mean of the first value of every HR packet, in bpm."""
        rates = [p.payload.data[0] for p in self.packets
                 if p.type_tag == "HR" and len(p.payload.data) > 0]
        if not rates:
            raise ValueError("No heart rate packets in this session")
        return float(np.mean(rates))
