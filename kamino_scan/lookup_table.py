"""Decode address lookup table account payloads."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from solders.pubkey import Pubkey

from .errors import MalformedTableError

PUBKEY_LENGTH = 32


@dataclass
class LookupResolution:
    """Addresses pulled from one lookup table, one slot per requested position.

    A position past the end of the stored addresses leaves a ``None`` hole so
    later slots keep their index.
    """

    writable: List[Optional[Pubkey]] = field(default_factory=list)
    readonly: List[Optional[Pubkey]] = field(default_factory=list)
    skipped_positions: List[int] = field(default_factory=list)


def address_count(payload: bytes, header_length: int) -> int:
    if len(payload) < header_length:
        return 0
    return (len(payload) - header_length) // PUBKEY_LENGTH


def _collect(
    payload: bytes, header_length: int, positions: Sequence[int], skipped: List[int]
) -> List[Optional[Pubkey]]:
    addresses: List[Optional[Pubkey]] = []
    for position in positions:
        start = header_length + position * PUBKEY_LENGTH
        end = start + PUBKEY_LENGTH
        if position < 0 or end > len(payload):
            skipped.append(position)
            addresses.append(None)
            continue
        addresses.append(Pubkey(payload[start:end]))
    return addresses


def resolve_lookup_table(
    payload: bytes,
    header_length: int,
    writable_positions: Sequence[int],
    readonly_positions: Sequence[int],
) -> LookupResolution:
    """Resolve writable and readonly positions against a raw table payload.

    Raises ``MalformedTableError`` when the payload is shorter than the header.
    Positions past the end of the address list are reported in
    ``skipped_positions`` and resolve to ``None``; no address is ever
    invented in their place.
    """
    if len(payload) < header_length:
        raise MalformedTableError(
            f"Lookup table payload is {len(payload)} bytes, shorter than the {header_length}-byte header"
        )

    skipped: List[int] = []
    writable = _collect(payload, header_length, writable_positions, skipped)
    readonly = _collect(payload, header_length, readonly_positions, skipped)
    if skipped:
        logging.debug(
            "Skipped %d lookup positions beyond %d stored addresses",
            len(skipped),
            address_count(payload, header_length),
        )
    return LookupResolution(writable=writable, readonly=readonly, skipped_positions=skipped)
