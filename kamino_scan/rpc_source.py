"""RPC-backed transaction source and lookup table fetcher."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import pandas as pd
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Finalized
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .config import ScanConfig
from .errors import FETCH_FAILURE, DecodeWarning, FetchError
from .transaction import TransactionRecord, from_versioned_transaction

# getSignaturesForAddress page size ceiling
SIGNATURE_PAGE_LIMIT = 1000

RPC_ERRORS = (SolanaRpcException, RPCException)

SIGNATURE_COLUMNS = ["signature", "slot", "block_time", "status", "error"]


@dataclass(frozen=True)
class SignatureSample:
    """One getSignaturesForAddress entry. ``err`` is the runtime error, if any."""

    signature: str
    slot: int
    block_time: Optional[int] = None
    err: Optional[str] = None
    status: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.err is None


def rpc_client(scan_config: ScanConfig) -> Client:
    logging.info("RPC endpoint: %s (timeout %.0fs)", scan_config.rpc_endpoint, scan_config.request_timeout)
    return Client(scan_config.rpc_endpoint, commitment=Finalized, timeout=scan_config.request_timeout)


def fetch_signatures(
    client: Client,
    program_id: Pubkey,
    limit: int,
    before: Optional[str] = None,
) -> Iterator[SignatureSample]:
    """Page backwards through the program's signatures, newest first."""
    logging.info("Fetching up to %d signatures for %s", limit, program_id)
    fetched = 0
    cursor = Signature.from_string(before) if before else None
    while fetched < limit:
        page_size = min(SIGNATURE_PAGE_LIMIT, limit - fetched)
        response = client.get_signatures_for_address(program_id, before=cursor, limit=page_size)
        batch = response.value or []
        if not batch:
            break
        for entry in batch:
            yield SignatureSample(
                signature=str(entry.signature),
                slot=entry.slot,
                block_time=entry.block_time,
                err=str(entry.err) if entry.err is not None else None,
                status=_status_name(entry),
            )
        fetched += len(batch)
        cursor = batch[-1].signature
        if len(batch) < page_size:
            break


def _status_name(entry) -> Optional[str]:
    status = getattr(entry, "confirmation_status", None)
    if status is None:
        return None
    # solders renders TransactionConfirmationStatus as "TransactionConfirmationStatus.Finalized"
    return str(status).rsplit(".", 1)[-1].lower()


def filter_successful(samples: Iterable[SignatureSample]) -> List[SignatureSample]:
    samples = list(samples)
    successful = [sample for sample in samples if sample.succeeded]
    logging.info(
        "%d successful transactions, %d failed filtered out",
        len(successful),
        len(samples) - len(successful),
    )
    return successful


def write_signatures(samples: Iterable[SignatureSample], output_path: Path) -> int:
    rows = [
        {
            "signature": sample.signature,
            "slot": sample.slot,
            "block_time": sample.block_time,
            "status": sample.status,
            "error": sample.err,
        }
        for sample in samples
    ]
    df = pd.DataFrame(rows, columns=SIGNATURE_COLUMNS)
    df["block_time"] = df["block_time"].astype("Int64")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    logging.info("Wrote %d signatures to %s", len(df), output_path)
    return len(df)


class RpcTableFetcher:
    """Fetch raw lookup table account data. Raises ``FetchError`` on any failure."""

    def __init__(self, client: Client):
        self.client = client

    def __call__(self, table: Pubkey) -> bytes:
        logging.debug("Fetching lookup table %s", table)
        try:
            response = self.client.get_account_info(table)
        except RPC_ERRORS as exc:
            raise FetchError(str(exc)) from exc
        account = response.value
        if account is None:
            raise FetchError(f"Account {table} not found")
        return bytes(account.data)


class RpcTransactionSource:
    """Yield decoded transactions for sampled signatures, skipping ones that cannot be fetched."""

    def __init__(self, client: Client):
        self.client = client
        self.warnings: List[DecodeWarning] = []

    def fetch_transaction(self, signature: str) -> TransactionRecord:
        try:
            response = self.client.get_transaction(
                Signature.from_string(signature),
                encoding="base64",
                max_supported_transaction_version=0,
            )
        except RPC_ERRORS as exc:
            raise FetchError(str(exc)) from exc

        confirmed = response.value
        if confirmed is None:
            raise FetchError(f"Transaction {signature} not found")
        encoded = confirmed.transaction
        tx = encoded.transaction
        if not isinstance(tx, VersionedTransaction):
            raise FetchError(f"Transaction {signature} was not returned in binary encoding")
        meta = encoded.meta
        succeeded = meta is None or meta.err is None
        return from_versioned_transaction(
            tx,
            slot=confirmed.slot,
            block_time=confirmed.block_time,
            succeeded=succeeded,
            signature=signature,
        )

    def iter_transactions(self, samples: Iterable[SignatureSample]) -> Iterator[TransactionRecord]:
        samples = list(samples)
        for idx, sample in enumerate(samples, start=1):
            logging.info("Processing transaction %d/%d: %s", idx, len(samples), sample.signature)
            try:
                yield self.fetch_transaction(sample.signature)
            except FetchError as exc:
                logging.warning("Failed to get transaction %s: %s", sample.signature, exc)
                self.warnings.append(DecodeWarning(kind=FETCH_FAILURE, signature=sample.signature, detail=str(exc)))
