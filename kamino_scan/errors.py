"""Error types and structured warnings raised while scanning Kamino transactions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

FETCH_FAILURE = "fetch_failure"
MALFORMED_TABLE = "malformed_table"
INDEX_OUT_OF_RANGE = "index_out_of_range"
TRUNCATED_PAYLOAD = "truncated_payload"
DECODE_ERROR = "decode_error"


class ScanError(Exception):
    """Base class for scanner errors."""

    kind = DECODE_ERROR


class FetchError(ScanError):
    """A lookup table or transaction could not be fetched."""

    kind = FETCH_FAILURE


class MalformedTableError(ScanError):
    """A lookup table payload is shorter than its header."""

    kind = MALFORMED_TABLE


class IndexOutOfRangeError(ScanError):
    """An instruction references an account index we could not resolve."""

    kind = INDEX_OUT_OF_RANGE


class TruncatedPayloadError(ScanError):
    """Instruction data ends before the amount field."""

    kind = TRUNCATED_PAYLOAD


class AggregateOverflowError(ScanError, OverflowError):
    """A running total exceeded the accumulator ceiling. Fatal for the run."""


class DuplicateDiscriminatorError(ScanError, ValueError):
    """Two instruction specs would match the same payload."""


@dataclass(frozen=True)
class DecodeWarning:
    """A recovered failure, kept so coverage gaps can be audited."""

    kind: str
    signature: str
    instruction_index: Optional[int] = None
    detail: str = ""
