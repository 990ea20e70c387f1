from __future__ import annotations

import pytest
from solders.pubkey import Pubkey

from kamino_scan.account_keys import TableReference
from kamino_scan.aggregation import MAX_AGGREGATE_AMOUNT
from kamino_scan.config import KAMINO_LEND_PROGRAM_ID, ScanConfig
from kamino_scan.errors import (
    DECODE_ERROR,
    FETCH_FAILURE,
    INDEX_OUT_OF_RANGE,
    TRUNCATED_PAYLOAD,
    AggregateOverflowError,
)
from kamino_scan.instruction_decoder import InstructionKind, InstructionRecord
from kamino_scan.scanner import KaminoScanner
from kamino_scan.transaction import TransactionRecord

from conftest import SOL, USDC, FakeTableFetcher, key, table_payload

FLASH = InstructionKind.FLASH_LOAN_BORROW
BORROW = InstructionKind.BORROW_OBLIGATION_LIQUIDITY
KAMINO = Pubkey.from_string(KAMINO_LEND_PROGRAM_ID)
TABLE = key(200)
PAYER = key(1)


def flash_borrow(index, token_index, amount, program_id_index=None):
    data = bytes([0x87, 0xE7, 0x34, 0xA7]) + b"\x00" * 4 + amount.to_bytes(8, "little")
    return InstructionRecord(
        index=index,
        accounts=[0, 0, 0, 0, token_index],
        data=data,
        program_id_index=program_id_index,
    )


def borrow_obligation(index, token_index, amount, program_id_index=None):
    data = bytes([0xA1, 0x80, 0x8F, 0xF5]) + b"\x00" * 4 + amount.to_bytes(8, "little")
    return InstructionRecord(
        index=index,
        accounts=[0, 0, 0, 0, 0, token_index],
        data=data,
        program_id_index=program_id_index,
    )


def transaction(signature, instructions, table_refs=(), block_time=None, succeeded=True):
    return TransactionRecord(
        signature=signature,
        slot=1,
        block_time=block_time,
        static_accounts=[PAYER, KAMINO],
        table_references=list(table_refs),
        instructions=list(instructions),
        succeeded=succeeded,
    )


def scanner_for(tables=None, **overrides):
    overrides.setdefault("rpc_endpoint", "http://localhost:8899")
    return KaminoScanner(ScanConfig(**overrides), FakeTableFetcher(tables or {}))


def test_aggregates_tokens_resolved_through_lookup_table():
    tables = {TABLE: table_payload([USDC, SOL, key(50)])}
    refs = [TableReference(TABLE, writable_indexes=(0,), readonly_indexes=(1,))]
    txs = [
        # canonical: [PAYER, KAMINO, USDC, SOL]
        transaction("tx1", [flash_borrow(0, 2, 1_000_000_000, program_id_index=1)], refs, block_time=100),
        transaction("tx2", [borrow_obligation(0, 3, 5, program_id_index=1)], refs, block_time=160),
    ]

    result = scanner_for(tables).run(txs)

    totals = result.totals
    assert totals.amount_for(FLASH, USDC) == 1_000_000_000
    assert totals.amount_for(BORROW, SOL) == 5
    assert totals.counts[FLASH] == 1
    assert totals.counts[BORROW] == 1
    assert result.processed_transactions == 2
    assert result.block_time_span == 60
    assert result.warnings == []


def test_untracked_token_counted_but_not_aggregated():
    other = key(60)
    tables = {TABLE: table_payload([other])}
    refs = [TableReference(TABLE, writable_indexes=(0,))]

    result = scanner_for(tables).run([transaction("tx", [flash_borrow(0, 2, 99, 1)], refs)])

    assert result.totals.counts[FLASH] == 1
    assert result.totals.amounts == {}


def test_missing_table_makes_dependent_instructions_unresolved():
    refs = [TableReference(TABLE, writable_indexes=(0, 1))]
    tx = transaction(
        "tx",
        [
            flash_borrow(0, 2, 10, 1),
            flash_borrow(1, 3, 20, 1),
            borrow_obligation(2, 0, 30, 1),
        ],
        refs,
    )

    result = scanner_for({}).run([tx])

    kinds = [warning.kind for warning in result.warnings]
    assert kinds == [FETCH_FAILURE, INDEX_OUT_OF_RANGE, INDEX_OUT_OF_RANGE]
    assert [w.instruction_index for w in result.warnings[1:]] == [0, 1]
    assert result.totals.unresolved[FLASH] == 2
    assert result.totals.counts[FLASH] == 0
    # the static-account instruction still decodes
    assert result.totals.counts[BORROW] == 1
    assert result.processed_transactions == 1


def test_truncated_payload_is_skipped_and_next_transaction_processed():
    short = flash_borrow(0, 2, 10, 1)
    short = InstructionRecord(index=0, accounts=short.accounts, data=short.data[:12], program_id_index=1)
    tables = {TABLE: table_payload([USDC])}
    refs = [TableReference(TABLE, writable_indexes=(0,))]

    result = scanner_for(tables).run(
        [
            transaction("bad", [short], refs),
            transaction("good", [flash_borrow(0, 2, 10, 1)], refs),
        ]
    )

    assert [w.kind for w in result.warnings] == [TRUNCATED_PAYLOAD]
    assert result.warnings[0].signature == "bad"
    assert result.totals.amount_for(FLASH, USDC) == 10
    assert result.totals.unresolved[FLASH] == 1


def test_failed_transactions_skipped_unless_included():
    tables = {TABLE: table_payload([USDC])}
    refs = [TableReference(TABLE, writable_indexes=(0,))]
    failed = transaction("failed", [flash_borrow(0, 2, 10, 1)], refs, succeeded=False)

    skipped = scanner_for(tables).run([failed])
    included = scanner_for(tables, include_failed=True).run([failed])

    assert skipped.skipped_transactions == 1
    assert skipped.totals.amounts == {}
    assert included.totals.amount_for(FLASH, USDC) == 10


def test_instructions_for_other_programs_ignored():
    tables = {TABLE: table_payload([USDC])}
    refs = [TableReference(TABLE, writable_indexes=(0,))]
    tx = transaction("tx", [flash_borrow(0, 2, 10, program_id_index=0)], refs)

    filtered = scanner_for(tables).run([tx])
    unfiltered = scanner_for(tables, program_id=None).run([tx])

    assert filtered.totals.counts[FLASH] == 0
    assert unfiltered.totals.amount_for(FLASH, USDC) == 10


def test_overflow_aborts_run():
    tables = {TABLE: table_payload([SOL])}
    refs = [TableReference(TABLE, writable_indexes=(0,))]
    scanner = scanner_for(tables)
    scanner.result.totals.amounts[(FLASH, SOL)] = MAX_AGGREGATE_AMOUNT

    with pytest.raises(AggregateOverflowError):
        scanner.run([transaction("tx", [flash_borrow(0, 2, 1, 1)], refs)])


def test_missing_table_does_not_shift_later_tables():
    table_2 = key(201)
    tables = {table_2: table_payload([USDC])}
    refs = [
        TableReference(TABLE, writable_indexes=(0, 1)),
        TableReference(table_2, writable_indexes=(0,)),
    ]
    # canonical: [PAYER, KAMINO, <missing>, <missing>, USDC]
    tx = transaction("tx", [flash_borrow(0, 2, 777, 1), flash_borrow(1, 4, 5, 1)], refs)

    result = scanner_for(tables).run([tx])

    assert result.totals.amount_for(FLASH, USDC) == 5
    assert result.totals.unresolved[FLASH] == 1
    assert [(w.kind, w.instruction_index) for w in result.warnings] == [
        (FETCH_FAILURE, None),
        (INDEX_OUT_OF_RANGE, 0),
    ]


def test_skipped_lookup_position_is_unresolved_not_misattributed():
    tables = {TABLE: table_payload([key(50), USDC])}
    refs = [TableReference(TABLE, writable_indexes=(0, 5), readonly_indexes=(1,))]
    # canonical: [PAYER, KAMINO, key(50), <skipped>, USDC]
    tx = transaction("tx", [flash_borrow(0, 3, 999, 1), flash_borrow(1, 4, 7, 1)], refs)

    result = scanner_for(tables).run([tx])

    assert result.totals.amount_for(FLASH, USDC) == 7
    assert result.totals.unresolved[FLASH] == 1
    assert [(w.kind, w.instruction_index) for w in result.warnings] == [
        (INDEX_OUT_OF_RANGE, None),
        (INDEX_OUT_OF_RANGE, 0),
    ]


def test_transaction_failing_part_way_leaves_no_partial_totals():
    tables = {TABLE: table_payload([USDC])}
    refs = [TableReference(TABLE, writable_indexes=(0,))]
    broken = InstructionRecord(
        index=1,
        accounts=[0, 0, 0, 0, "x"],
        data=flash_borrow(1, 2, 20, 1).data,
        program_id_index=1,
    )
    txs = [
        transaction("broken", [flash_borrow(0, 2, 10, 1), broken], refs),
        transaction("good", [flash_borrow(0, 2, 3, 1)], refs),
    ]

    result = scanner_for(tables).run(txs)

    assert result.totals.amount_for(FLASH, USDC) == 3
    assert result.totals.counts[FLASH] == 1
    assert result.processed_transactions == 1
    assert [(w.kind, w.signature) for w in result.warnings] == [(DECODE_ERROR, "broken")]
