"""Match Kamino instructions by discriminator and pull out the borrowed token and amount."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Dict, Iterable, Optional, Sequence

from solders.pubkey import Pubkey

from .errors import DuplicateDiscriminatorError, IndexOutOfRangeError, TruncatedPayloadError


class InstructionKind(str, Enum):
    FLASH_LOAN_BORROW = "flash_loan_borrow"
    BORROW_OBLIGATION_LIQUIDITY = "borrow_obligation_liquidity"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class InstructionSpec:
    """Where a recognized instruction keeps its token account and amount."""

    kind: str
    discriminator: bytes
    token_account_position: int
    amount_offset: int = 8
    amount_length: int = 8


@dataclass(frozen=True)
class InstructionRecord:
    index: int
    accounts: Sequence[int]
    data: bytes
    program_id_index: Optional[int] = None


@dataclass(frozen=True)
class MatchedAmount:
    kind: str
    token: Pubkey
    amount: int
    tracked: bool = True


KnownSignatureTable = Dict[bytes, InstructionSpec]


def build_signature_table(specs: Iterable[InstructionSpec]) -> KnownSignatureTable:
    """Index specs by discriminator, rejecting any two that could match the same payload."""
    table: KnownSignatureTable = {}
    for spec in specs:
        if not spec.discriminator:
            raise DuplicateDiscriminatorError(f"{spec.kind} has an empty discriminator")
        for existing in table.values():
            if existing.discriminator.startswith(spec.discriminator) or spec.discriminator.startswith(
                existing.discriminator
            ):
                raise DuplicateDiscriminatorError(
                    f"{spec.kind} discriminator {spec.discriminator.hex()} overlaps "
                    f"{existing.kind} ({existing.discriminator.hex()})"
                )
        table[spec.discriminator] = spec
    return table


def match_signature(data: bytes, signatures: KnownSignatureTable) -> Optional[InstructionSpec]:
    for discriminator, spec in signatures.items():
        if data.startswith(discriminator):
            return spec
    return None


def classify(
    instruction: InstructionRecord,
    accounts: Sequence[Optional[Pubkey]],
    signatures: KnownSignatureTable,
    tracked: Optional[AbstractSet[Pubkey]] = None,
) -> Optional[MatchedAmount]:
    """Decode a recognized instruction into a ``MatchedAmount``.

    Returns ``None`` for instructions whose data does not start with a known
    discriminator. Raises ``IndexOutOfRangeError`` when the token account
    cannot be resolved, including a slot left empty by a missing lookup
    table, and ``TruncatedPayloadError`` when the data ends
    before the amount. ``tracked=None`` treats every token as tracked.
    """
    spec = match_signature(instruction.data, signatures)
    if spec is None:
        return None

    position = spec.token_account_position
    if position >= len(instruction.accounts):
        raise IndexOutOfRangeError(
            f"{spec.kind} has {len(instruction.accounts)} account indices, needs position {position}"
        )
    account_index = instruction.accounts[position]
    if account_index >= len(accounts):
        raise IndexOutOfRangeError(
            f"{spec.kind} references account {account_index} of {len(accounts)} resolved"
        )

    token = accounts[account_index]
    if token is None:
        raise IndexOutOfRangeError(f"{spec.kind} references account {account_index}, which did not resolve")

    end = spec.amount_offset + spec.amount_length
    if len(instruction.data) < end:
        raise TruncatedPayloadError(f"{spec.kind} data is {len(instruction.data)} bytes, amount ends at {end}")
    amount = int.from_bytes(instruction.data[spec.amount_offset:end], "little", signed=False)

    is_tracked = tracked is None or token in tracked
    return MatchedAmount(kind=spec.kind, token=token, amount=amount, tracked=is_tracked)
