from __future__ import annotations

from typing import Dict, Iterable

from solders.pubkey import Pubkey

from kamino_scan.config import LOOKUP_TABLE_META_SIZE, USDC_MINT, SOL_MINT
from kamino_scan.errors import FetchError

USDC = Pubkey.from_string(USDC_MINT)
SOL = Pubkey.from_string(SOL_MINT)


def key(n: int) -> Pubkey:
    return Pubkey(bytes([n]) * 32)


def table_payload(addresses: Iterable[Pubkey], header_length: int = LOOKUP_TABLE_META_SIZE) -> bytes:
    return b"\xff" * header_length + b"".join(bytes(address) for address in addresses)


class FakeTableFetcher:
    """In-memory lookup tables; unknown tables raise FetchError."""

    def __init__(self, tables: Dict[Pubkey, bytes]):
        self.tables = tables
        self.calls = []

    def __call__(self, table: Pubkey) -> bytes:
        self.calls.append(table)
        if table not in self.tables:
            raise FetchError(f"Account {table} not found")
        return self.tables[table]
