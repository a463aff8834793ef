"""Payload model and type-tag dispatch for EmotiBit raw data records.

A raw record is ``TIMESTAMP,PACKET#,#DATAPOINTS,TYPETAG,VERSION,RELIABILITY,
PAYLOAD...``.  The type tag decides how the trailing payload fields are
read.  Every tag maps to exactly one payload *kind*:

  - ``float32`` / ``uint32`` / ``int32``: every payload field is parsed as
    that numeric type.  A single bad field rejects the whole payload.
  - ``strings``: payload fields are kept verbatim (possibly none).
  - ``string``: payload fields are re-joined with commas into one string.
  - ``none``: payload fields are ignored.
  - ``float_pair`` / ``string_float``: refined TX payloads, only produced
    by :func:`emotikairos.packet.refine_tx`, never decoded from a raw tag.

The kind table below is the single place where tags are recognised.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import DecodeError, UnknownTypeTagError

# Index of the first payload field in a raw record
SKIP_TO_PAYLOAD = 6

# -- Payload kinds -------------------------------------------------------------

KIND_FLOAT = "float32"
KIND_UINT = "uint32"
KIND_INT = "int32"
KIND_STRINGS = "strings"
KIND_STRING = "string"
KIND_NONE = "none"
KIND_FLOAT_PAIR = "float_pair"
KIND_STRING_FLOAT = "string_float"

NUMERIC_DTYPES = {
    KIND_FLOAT: np.float32,
    KIND_UINT: np.uint32,
    KIND_INT: np.int32,
}

# -- Type tags -----------------------------------------------------------------

TX_LC_LM = "TX_LC_LM"
TX_TL_LC = "TX_TL_LC"

TAG_KINDS = {
    # EDA
    "EA": KIND_FLOAT, "EL": KIND_FLOAT, "ER": KIND_FLOAT,
    # PPG
    "PI": KIND_UINT, "PR": KIND_UINT, "PG": KIND_UINT,
    "O2": KIND_NONE,
    # Temperature / humidity
    "T0": KIND_FLOAT, "T1": KIND_FLOAT, "TH": KIND_FLOAT,
    "H0": KIND_NONE,
    # IMU
    "AX": KIND_FLOAT, "AY": KIND_FLOAT, "AZ": KIND_FLOAT,
    "GX": KIND_FLOAT, "GY": KIND_FLOAT, "GZ": KIND_FLOAT,
    "MX": KIND_INT, "MY": KIND_INT, "MZ": KIND_INT,
    # Battery
    "BV": KIND_FLOAT, "B%": KIND_UINT,
    "BS": KIND_NONE, "BL": KIND_NONE,
    # Device status
    "DC": KIND_NONE, "DO": KIND_NONE, "SD": KIND_NONE, "RS": KIND_NONE,
    "DB": KIND_NONE,
    # Clock exchange and transmit
    "AK": KIND_STRINGS, "RD": KIND_STRINGS,
    "TE": KIND_NONE,
    "TL": KIND_STRING,
    "TU": KIND_NONE,
    "TX": KIND_STRINGS,
    TX_TL_LC: KIND_STRING_FLOAT,
    TX_LC_LM: KIND_FLOAT_PAIR,
    "EM": KIND_STRINGS,
    "EI": KIND_NONE,
    # Derived signals
    "HR": KIND_INT, "BI": KIND_INT,
    "SA": KIND_FLOAT, "SF": KIND_FLOAT, "SR": KIND_FLOAT,
    # Computer data (reliable channel)
    "GL": KIND_NONE, "GS": KIND_NONE, "GB": KIND_NONE, "BA": KIND_NONE,
    "UN": KIND_STRINGS,
    "LM": KIND_NONE,
    # Control
    "RB": KIND_STRING,
    "RE": KIND_NONE, "MN": KIND_NONE, "ML": KIND_NONE, "MM": KIND_NONE,
    "MO": KIND_NONE, "MH": KIND_NONE, "ED": KIND_NONE,
    "S+": KIND_NONE, "S-": KIND_NONE,
    # Advertising
    "PN": KIND_NONE, "PO": KIND_NONE, "HE": KIND_NONE, "HH": KIND_NONE,
    "EC": KIND_NONE,
}

# Tags that only exist after TX refinement
REFINED_TAGS = frozenset({TX_LC_LM, TX_TL_LC})

_UNSIGNED_RE = re.compile(r"\+?[0-9]+")
_SIGNED_RE = re.compile(r"[+-]?[0-9]+")


# -- Field coercion helpers ----------------------------------------------------

def parse_float(text: str) -> float:
    """Parse one text field as a float; surrounding whitespace is ignored.

    Raises ``ValueError`` on anything ``float()`` rejects, and on digit
    group underscores, which the device never emits.
    """
    t = text.strip()
    if "_" in t:
        raise ValueError(f"could not convert string to float: {text!r}")
    return float(t)


def parse_int(text: str, dtype=np.int64) -> int:
    """Parse one text field as an integer that fits *dtype*."""
    t = text.strip()
    info = np.iinfo(dtype)
    pattern = _UNSIGNED_RE if info.min == 0 else _SIGNED_RE
    if not pattern.fullmatch(t):
        raise ValueError(f"invalid literal for {np.dtype(dtype).name}: {text!r}")
    value = int(t)
    if not info.min <= value <= info.max:
        raise ValueError(
            f"{value} out of range for {np.dtype(dtype).name} "
            f"[{info.min}, {info.max}]")
    return value


def to_numeric_array(fields: Sequence[str], start: int, kind: str,
                     record=None) -> np.ndarray:
    """Parse ``fields[start:]`` into a read-only numeric array of *kind*.

    All or nothing: the first field that fails to parse raises
    :class:`DecodeError` naming the field.
    """
    dtype = NUMERIC_DTYPES[kind]
    values = []
    for i, text in enumerate(fields[start:], start=start):
        try:
            if kind == KIND_FLOAT:
                values.append(parse_float(text))
            else:
                values.append(parse_int(text, dtype))
        except ValueError as e:
            raise DecodeError(
                f"Cannot parse field {i} ({text!r}) as {kind}: {e}",
                record if record is not None else fields,
            ) from e
    with np.errstate(over="ignore"):
        arr = np.array(values, dtype=dtype)
    arr.setflags(write=False)
    return arr


def to_string_list(fields: Sequence[str], start: int) -> Tuple[str, ...]:
    """Return ``fields[start:]`` verbatim.  Never fails."""
    return tuple(str(f) for f in fields[start:])


def to_joined_string(fields: Sequence[str], start: int, record=None) -> str:
    """Re-join ``fields[start:]`` with commas.

    The payload string may itself contain commas, which a delimited reader
    has already split apart.  At least one field is required.
    """
    rest = fields[start:]
    if len(rest) == 0:
        raise DecodeError(
            f"Missing string payload at field {start}",
            record if record is not None else fields,
        )
    return ",".join(rest)


# -- Formatting ----------------------------------------------------------------

def format_number(value) -> str:
    """Shortest text form of a number that parses back to the same value.

    Integral floats drop the trailing ``.0`` so that device timestamps and
    sample values look as they do in the raw log.
    """
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, np.floating):
        if not np.isfinite(value):
            return str(float(value))
        return np.format_float_positional(value, unique=True, trim="-")
    value = float(value)
    if np.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


# -- Payload value -------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Payload:
    """Decoded payload of one record: its type tag plus kind-shaped data.

    ``data`` is a read-only numpy array for numeric kinds, a tuple of str
    for ``strings``, a str for ``string``, a ``(str, float)`` tuple for
    ``string_float`` and None for ``none``.  ``float_pair`` data is a
    two-element float32 array.
    """

    type_tag: str
    data: object = None

    def __post_init__(self):
        if self.type_tag not in TAG_KINDS:
            raise UnknownTypeTagError(self.type_tag)
        kind = TAG_KINDS[self.type_tag]
        data = self.data
        if kind in NUMERIC_DTYPES or kind == KIND_FLOAT_PAIR:
            dtype = NUMERIC_DTYPES.get(kind, np.float32)
            if data is None:
                data = []
            data = np.array(data, dtype=dtype)
            if kind == KIND_FLOAT_PAIR and data.shape != (2,):
                raise ValueError(
                    f"{self.type_tag} payload needs exactly 2 values, "
                    f"got {data.shape}")
            data.setflags(write=False)
        elif kind == KIND_STRINGS:
            data = tuple(data) if data is not None else ()
        elif kind == KIND_STRING:
            data = "" if data is None else str(data)
        elif kind == KIND_STRING_FLOAT:
            label, value = data
            data = (str(label), float(value))
        else:
            data = None
        object.__setattr__(self, "data", data)

    @property
    def kind(self) -> str:
        return TAG_KINDS[self.type_tag]

    def values(self) -> List[str]:
        """Payload elements rendered as text, one per element."""
        kind = self.kind
        if kind in NUMERIC_DTYPES or kind == KIND_FLOAT_PAIR:
            return [format_number(v) for v in self.data]
        if kind == KIND_STRINGS:
            return list(self.data)
        if kind == KIND_STRING:
            return [self.data]
        if kind == KIND_STRING_FLOAT:
            return [self.data[0], format_number(self.data[1])]
        return []

    def __eq__(self, other):
        if not isinstance(other, Payload):
            return NotImplemented
        if self.type_tag != other.type_tag:
            return False
        if isinstance(self.data, np.ndarray):
            return bool(np.array_equal(self.data, other.data))
        return self.data == other.data

    def __hash__(self):
        return hash((self.type_tag, tuple(self.values())))

    def __repr__(self):
        return f"Payload({self.type_tag}, {self.values()!r})"


def decode_payload(type_tag: str, fields: Sequence[str],
                   start: int = SKIP_TO_PAYLOAD,
                   record: Optional[Sequence[str]] = None) -> Payload:
    """Decode ``fields[start:]`` into the payload shape selected by *type_tag*.

    Raises :class:`UnknownTypeTagError` for tags outside the protocol
    (including the refined TX tags, which never appear in raw data) and
    :class:`DecodeError` when a field cannot be coerced.
    """
    record = fields if record is None else record
    kind = TAG_KINDS.get(type_tag)
    if kind is None or type_tag in REFINED_TAGS:
        raise UnknownTypeTagError(type_tag, record)

    if kind in NUMERIC_DTYPES:
        data = to_numeric_array(fields, start, kind, record)
    elif kind == KIND_STRINGS:
        data = to_string_list(fields, start)
    elif kind == KIND_STRING:
        data = to_joined_string(fields, start, record)
    else:
        data = None
    return Payload(type_tag, data)
