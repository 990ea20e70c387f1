"""Rebuild the full account list a v0 transaction's instructions index into."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from .config import LOOKUP_TABLE_META_SIZE
from .errors import (
    FETCH_FAILURE,
    INDEX_OUT_OF_RANGE,
    MALFORMED_TABLE,
    DecodeWarning,
    FetchError,
    MalformedTableError,
)
from .lookup_table import resolve_lookup_table

TableFetcher = Callable[[Pubkey], bytes]


@dataclass(frozen=True)
class TableReference:
    account_key: Pubkey
    writable_indexes: Tuple[int, ...] = ()
    readonly_indexes: Tuple[int, ...] = ()


@dataclass(frozen=True)
class CanonicalAccountSequence:
    """Account keys in index order. ``None`` marks a slot that could not be resolved."""

    keys: Tuple[Optional[Pubkey], ...]
    static_count: int = 0
    warnings: Tuple[DecodeWarning, ...] = field(default=(), compare=False)

    def __len__(self) -> int:
        return len(self.keys)

    def __getitem__(self, index: int) -> Optional[Pubkey]:
        return self.keys[index]

    def __iter__(self):
        return iter(self.keys)


def build_account_keys(
    static_accounts: Sequence[Pubkey],
    table_references: Sequence[TableReference],
    fetch_table: TableFetcher,
    header_length: int = LOOKUP_TABLE_META_SIZE,
    signature: str = "",
) -> CanonicalAccountSequence:
    """Concatenate static keys, then every table's writable keys, then every table's readonly keys.

    This is the order the runtime loads accounts in, and therefore the index
    space of ``CompiledInstruction.accounts``. A table that cannot be fetched
    or decoded contributes no addresses, but its slots are kept as ``None``
    so later keys stay at their real index. Each failure is returned as a
    warning.
    """
    writable: List[Optional[Pubkey]] = []
    readonly: List[Optional[Pubkey]] = []
    warnings: List[DecodeWarning] = []

    for reference in table_references:
        table = reference.account_key
        try:
            payload = fetch_table(table)
            resolution = resolve_lookup_table(
                payload,
                header_length,
                reference.writable_indexes,
                reference.readonly_indexes,
            )
        except FetchError as exc:
            logging.warning("Failed to fetch lookup table %s for %s: %s", table, signature, exc)
            warnings.append(DecodeWarning(kind=FETCH_FAILURE, signature=signature, detail=f"{table}: {exc}"))
            writable.extend([None] * len(reference.writable_indexes))
            readonly.extend([None] * len(reference.readonly_indexes))
            continue
        except MalformedTableError as exc:
            logging.warning("Malformed lookup table %s for %s: %s", table, signature, exc)
            warnings.append(DecodeWarning(kind=MALFORMED_TABLE, signature=signature, detail=f"{table}: {exc}"))
            writable.extend([None] * len(reference.writable_indexes))
            readonly.extend([None] * len(reference.readonly_indexes))
            continue

        if resolution.skipped_positions:
            positions = ", ".join(str(p) for p in resolution.skipped_positions)
            warnings.append(
                DecodeWarning(
                    kind=INDEX_OUT_OF_RANGE,
                    signature=signature,
                    detail=f"{table}: positions {positions} beyond table end",
                )
            )
        writable.extend(resolution.writable)
        readonly.extend(resolution.readonly)

    keys = tuple(static_accounts) + tuple(writable) + tuple(readonly)
    return CanonicalAccountSequence(keys=keys, static_count=len(static_accounts), warnings=tuple(warnings))
