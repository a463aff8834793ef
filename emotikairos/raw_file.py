"""Reading EmotiBit raw data files and exporting decoded packets to CSV.

The raw file is headerless and ragged: every line is one record with six
header fields followed by a variable number of payload fields.
"""

import csv
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from .errors import SyncError
from .packet import DecodeResult, decode_records, successful_packets
from .sync import (
    MIN_SYNC_PACKETS,
    SYNC_MAP_HEADER,
    SYNC_TRIPLE_HEADER,
    find_syncs,
    generate_sync_map,
    inject_host_timestamps,
)

logger = logging.getLogger(__name__)

PACKET_HEADER = [
    "LocalTimestamp",
    "EmotiBitTimestamp",
    "PacketNumber",
    "DataLength",
    "TypeTag",
    "ProtocolVersion",
    "DataReliability",
]


def read_records(path: Union[str, Path]) -> List[List[str]]:
    """Read every record of a raw data file as a list of text fields.

    Blank lines are skipped.  Bytes that are not UTF-8 become U+FFFD, so a
    corrupted line fails (or decodes) on its own without losing the file.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raw data file not found: {path}")

    with open(path, newline="", encoding="utf-8", errors="replace") as f:
        return [row for row in csv.reader(f) if row]


def decode_file(path: Union[str, Path]) -> List[DecodeResult]:
    """Read and decode a raw data file, one result per record."""
    return decode_records(read_records(path))


def write_rows(path: Union[str, Path], rows: Iterable[Sequence[str]],
               header: Optional[Sequence[str]] = None) -> Path:
    """Write *rows* (ragged allowed) to a CSV file, with optional header."""
    path = Path(path)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        if header is not None:
            writer.writerow(header)
        writer.writerows(rows)
    return path


def export_by_type(
    path: Union[str, Path],
    results: Sequence[DecodeResult],
    output_dir: Optional[Union[str, Path]] = None,
    min_packets: int = MIN_SYNC_PACKETS,
) -> List[Path]:
    """Export a decoded raw file as one CSV per type tag plus sync outputs.

    For a raw file ``<stem>.csv`` this writes ``<stem>_ERROR.csv``,
    ``<stem>_timesyncs.csv``, ``<stem>_timeSyncMap.csv`` and one
    ``<stem>_<TAG>.csv`` per type tag present.  Sync failures are written
    into their output file instead of aborting the export; packets are
    exported with host timestamps when a sync map could be built.
    *min_packets* is the handshake threshold passed to the sync step.

    Returns the written paths.
    """
    path = Path(path)
    stem = path.stem
    out_dir = Path(output_dir) if output_dir is not None else path.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []

    # Errors
    errors = [r.error for r in results if not r.ok]
    error_path = out_dir / f"{stem}_ERROR.csv"
    with open(error_path, "w", encoding="utf-8") as f:
        for err in errors:
            f.write(f"{err}\n")
    written.append(error_path)

    # Sync triples
    try:
        triples = find_syncs(results, min_packets=min_packets)
        rows = [t.csv_row() for t in triples]
        header = SYNC_TRIPLE_HEADER
    except SyncError as e:
        rows, header = [[str(e)]], None
    written.append(write_rows(out_dir / f"{stem}_timesyncs.csv", rows, header))

    # Sync map
    try:
        sync_map = generate_sync_map(results, min_packets=min_packets)
        rows, header = [sync_map.csv_row()], SYNC_MAP_HEADER
    except SyncError as e:
        logger.warning("No time sync map for %s: %s", path.name, e)
        sync_map = None
        rows, header = [[str(e)]], None
    written.append(write_rows(out_dir / f"{stem}_timeSyncMap.csv", rows, header))

    # Packets, grouped by type tag in order of first appearance
    packets = successful_packets(results)
    if sync_map is not None:
        packets = inject_host_timestamps(packets, sync_map)

    by_tag = {}
    for p in packets:
        by_tag.setdefault(p.type_tag, []).append(p)

    for tag, group in by_tag.items():
        rows = [row for p in group for row in p.csv_rows()]
        written.append(write_rows(
            out_dir / f"{stem}_{tag}.csv", rows, PACKET_HEADER + [tag]))

    logger.info("Exported %d packets (%d errors, %d type tags) to %s",
                len(packets), len(errors), len(by_tag), out_dir)
    return written
