"""EmotiKairos: EmotiBit raw data decoding and device-to-host clock sync."""

__version__ = "0.1.0"

from .errors import (
    DecodeError,
    InvalidDataError,
    MissingColumnError,
    SyncError,
    UnknownTypeTagError,
)
from .payload import Payload, TAG_KINDS, decode_payload
from .packet import (
    DecodeResult,
    Packet,
    decode_line,
    decode_record,
    decode_records,
    refine_tx,
)
from .sync import (
    SyncMap,
    SyncTriple,
    find_syncs,
    generate_sync_map,
    inject_host_timestamp,
    parse_host_timestamp,
)
from .raw_file import decode_file, export_by_type, read_records
from .session import RawDataSession
