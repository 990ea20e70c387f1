"""Drive account resolution, instruction decoding and aggregation over a batch of transactions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .account_keys import CanonicalAccountSequence, TableFetcher, build_account_keys
from .aggregation import AggregateTotals, record, record_count, record_unresolved
from .config import ScanConfig
from .errors import (
    DECODE_ERROR,
    AggregateOverflowError,
    DecodeWarning,
    IndexOutOfRangeError,
    ScanError,
    TruncatedPayloadError,
)
from .instruction_decoder import InstructionRecord, build_signature_table, classify, match_signature
from .transaction import TransactionRecord


@dataclass
class ScanResult:
    totals: AggregateTotals = field(default_factory=AggregateTotals)
    processed_transactions: int = 0
    skipped_transactions: int = 0
    first_block_time: Optional[int] = None
    last_block_time: Optional[int] = None
    warnings: List[DecodeWarning] = field(default_factory=list)

    @property
    def block_time_span(self) -> Optional[int]:
        if self.first_block_time is None or self.last_block_time is None:
            return None
        return self.last_block_time - self.first_block_time


class KaminoScanner:
    """Aggregates Kamino borrow amounts over transactions.

    One scanner owns one ``AggregateTotals`` for the duration of a run.
    Errors local to a table, instruction or transaction are recorded as
    warnings; only ``AggregateOverflowError`` stops the run. A transaction's
    totals and warnings are staged and applied only once it decodes fully,
    so a transaction that fails part way contributes nothing but its
    ``decode_error`` warning.
    """

    def __init__(self, config: ScanConfig, fetch_table: TableFetcher):
        self.config = config
        self.fetch_table = fetch_table
        self.signatures = build_signature_table(config.signatures)
        self.tracked = config.tracked_pubkeys()
        self.program_id = config.program_pubkey
        self.result = ScanResult()

    def run(self, transactions: Iterable[TransactionRecord]) -> ScanResult:
        for tx in transactions:
            try:
                self.process_transaction(tx)
            except AggregateOverflowError:
                raise
            except (ScanError, ValueError, TypeError) as exc:
                logging.warning("Failed to decode transaction %s: %s", tx.signature, exc)
                self._warn(DecodeWarning(kind=DECODE_ERROR, signature=tx.signature, detail=str(exc)))
        logging.info(
            "Processed %d transactions (%d skipped, %d warnings)",
            self.result.processed_transactions,
            self.result.skipped_transactions,
            len(self.result.warnings),
        )
        return self.result

    def process_transaction(self, tx: TransactionRecord) -> None:
        if not tx.succeeded and not self.config.include_failed:
            logging.debug("Skipping failed transaction %s", tx.signature)
            self.result.skipped_transactions += 1
            return

        accounts = build_account_keys(
            tx.static_accounts,
            tx.table_references,
            self.fetch_table,
            header_length=self.config.header_length,
            signature=tx.signature,
        )
        staged = AggregateTotals()
        warnings = list(accounts.warnings)
        for instruction in tx.instructions:
            if not self._targets_program(instruction, accounts):
                continue
            self._process_instruction(tx, instruction, accounts, staged, warnings)

        self.result.totals.merge(staged)
        self.result.warnings.extend(warnings)
        self.result.processed_transactions += 1
        self._track_block_time(tx.block_time)

    def _targets_program(self, instruction: InstructionRecord, accounts: CanonicalAccountSequence) -> bool:
        if self.program_id is None or instruction.program_id_index is None:
            return True
        if instruction.program_id_index >= len(accounts):
            return False
        return accounts[instruction.program_id_index] == self.program_id

    def _process_instruction(
        self,
        tx: TransactionRecord,
        instruction: InstructionRecord,
        accounts: CanonicalAccountSequence,
        totals: AggregateTotals,
        warnings: List[DecodeWarning],
    ) -> None:
        spec = match_signature(instruction.data, self.signatures)
        if spec is None:
            return
        try:
            matched = classify(instruction, accounts, self.signatures, self.tracked)
        except (IndexOutOfRangeError, TruncatedPayloadError) as exc:
            logging.warning("Unresolved %s in %s #%d: %s", spec.kind, tx.signature, instruction.index, exc)
            record_unresolved(totals, spec.kind)
            warnings.append(
                DecodeWarning(
                    kind=exc.kind,
                    signature=tx.signature,
                    instruction_index=instruction.index,
                    detail=str(exc),
                )
            )
            return

        record_count(totals.counts, matched.kind)
        if matched.tracked:
            record(totals, matched)
            logging.debug("%s %s: %d", matched.kind, matched.token, matched.amount)

    def _track_block_time(self, block_time: Optional[int]) -> None:
        if block_time is None:
            return
        result = self.result
        if result.first_block_time is None or block_time < result.first_block_time:
            result.first_block_time = block_time
        if result.last_block_time is None or block_time > result.last_block_time:
            result.last_block_time = block_time

    def _warn(self, warning: DecodeWarning) -> None:
        self.result.warnings.append(warning)
