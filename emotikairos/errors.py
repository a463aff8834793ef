"""Exception types raised while decoding raw EmotiBit records and building
sync maps.

Everything derives from ``ValueError``: a bad record or an unusable
handshake stream is bad input, not a programming error.
"""


class DecodeError(ValueError):
    """A single record could not be decoded.

    ``record`` holds the raw fields of the offending record (or None when
    the failure happened before the record was known).
    """

    def __init__(self, message, record=None):
        super().__init__(message)
        self.record = list(record) if record is not None else None

    def __str__(self):
        msg = super().__str__()
        if self.record is None:
            return msg
        return f"{msg}, record: {self.record!r}"


class MissingColumnError(DecodeError):
    """The record has fewer than the six header fields."""


class UnknownTypeTagError(DecodeError):
    """The type tag in field 3 is not part of the protocol."""

    def __init__(self, type_tag, record=None):
        super().__init__(f"Unrecognized type tag: {type_tag!r}", record)
        self.type_tag = type_tag


class InvalidDataError(DecodeError):
    """A TX packet carries a sub-tag pair that cannot be refined."""


class SyncError(ValueError):
    """A time sync map could not be computed from the decoded stream."""

    def __init__(self, message, triples=None):
        super().__init__(message)
        self.triples = list(triples) if triples is not None else None
