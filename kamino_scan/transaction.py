"""Plain records for the parts of a versioned transaction the scanner reads."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .account_keys import TableReference
from .instruction_decoder import InstructionRecord


@dataclass
class TransactionRecord:
    signature: str
    slot: int
    block_time: Optional[int]
    static_accounts: List[Pubkey]
    table_references: List[TableReference] = field(default_factory=list)
    instructions: List[InstructionRecord] = field(default_factory=list)
    succeeded: bool = True


def table_references_from_message(message) -> List[TableReference]:
    # Legacy messages carry no lookups
    lookups = getattr(message, "address_table_lookups", None) or []
    return [
        TableReference(
            account_key=lookup.account_key,
            writable_indexes=tuple(lookup.writable_indexes),
            readonly_indexes=tuple(lookup.readonly_indexes),
        )
        for lookup in lookups
    ]


def instructions_from_message(message) -> List[InstructionRecord]:
    return [
        InstructionRecord(
            index=idx,
            accounts=tuple(instruction.accounts),
            data=bytes(instruction.data),
            program_id_index=instruction.program_id_index,
        )
        for idx, instruction in enumerate(message.instructions)
    ]


def from_versioned_transaction(
    tx: VersionedTransaction,
    slot: int = 0,
    block_time: Optional[int] = None,
    succeeded: bool = True,
    signature: Optional[str] = None,
) -> TransactionRecord:
    message = tx.message
    if signature is None:
        signature = str(tx.signatures[0]) if tx.signatures else ""
    return TransactionRecord(
        signature=signature,
        slot=slot,
        block_time=block_time,
        static_accounts=list(message.account_keys),
        table_references=table_references_from_message(message),
        instructions=instructions_from_message(message),
        succeeded=succeeded,
    )
