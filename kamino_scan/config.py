"""Shared configuration for the Kamino Lend loan scanner."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from solders.pubkey import Pubkey

from .instruction_decoder import InstructionKind, InstructionSpec

PROJECT_ROOT = Path(__file__).resolve().parents[1]

load_dotenv(PROJECT_ROOT / ".env")

# Same program id on mainnet and devnet
KAMINO_LEND_PROGRAM_ID = "KLend2g3cP87fffoy8q1mQqGKjrxjC8boSyAYavgmjD"

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

# Address lookup table account: 56-byte metadata header, then 32-byte addresses
LOOKUP_TABLE_META_SIZE = 56

DEFAULT_RPC_ENDPOINTS = [
    os.getenv("RPC_URL"),
    os.getenv("ALCHEMY_SOLANA_RPC"),
    os.getenv("ANKR_SOLANA_RPC"),
    "https://api.mainnet-beta.solana.com",
]

# Filter out None / empty values while preserving order
RPC_ENDPOINTS: List[str] = list(dict.fromkeys(endpoint for endpoint in DEFAULT_RPC_ENDPOINTS if endpoint))

DATA_ROOT = PROJECT_ROOT / "data"
RAW_DATA_DIR = DATA_ROOT / "raw"
PROCESSED_DATA_DIR = DATA_ROOT / "processed"

# Signatures to pull per run; getSignaturesForAddress pages at 1000
MAX_TX_SAMPLE = int(os.getenv("KAMINO_MAX_TX_SAMPLE", "1000"))


@dataclass(frozen=True)
class TrackedToken:
    """A token mint whose borrowed amounts are aggregated."""

    label: str
    mint: str
    decimals: int

    @property
    def pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.mint)


TRACKED_TOKENS: Tuple[TrackedToken, ...] = (
    TrackedToken(label="SOL", mint=SOL_MINT, decimals=9),
    TrackedToken(label="USDC", mint=USDC_MINT, decimals=6),
)

KNOWN_SIGNATURES: Tuple[InstructionSpec, ...] = (
    InstructionSpec(
        kind=InstructionKind.FLASH_LOAN_BORROW,
        discriminator=bytes([0x87, 0xE7, 0x34, 0xA7]),
        token_account_position=4,
        amount_offset=8,
        amount_length=8,
    ),
    InstructionSpec(
        kind=InstructionKind.BORROW_OBLIGATION_LIQUIDITY,
        discriminator=bytes([0xA1, 0x80, 0x8F, 0xF5]),
        token_account_position=5,
        amount_offset=8,
        amount_length=8,
    ),
)


@dataclass(frozen=True)
class ScanConfig:
    """Everything a scan run needs; passed in explicitly rather than read from globals."""

    rpc_endpoint: str = RPC_ENDPOINTS[0]
    program_id: Optional[str] = KAMINO_LEND_PROGRAM_ID
    header_length: int = LOOKUP_TABLE_META_SIZE
    signatures: Tuple[InstructionSpec, ...] = KNOWN_SIGNATURES
    tracked_tokens: Tuple[TrackedToken, ...] = TRACKED_TOKENS
    include_failed: bool = False
    request_timeout: float = 45.0

    @classmethod
    def from_env(cls, **overrides) -> "ScanConfig":
        load_dotenv(PROJECT_ROOT / ".env")
        if not overrides.get("rpc_endpoint"):
            overrides["rpc_endpoint"] = os.getenv("RPC_URL") or RPC_ENDPOINTS[0]
        return cls(**overrides)

    @property
    def program_pubkey(self) -> Optional[Pubkey]:
        return Pubkey.from_string(self.program_id) if self.program_id else None

    def tracked_pubkeys(self) -> frozenset:
        return frozenset(token.pubkey for token in self.tracked_tokens)

    def token_for(self, mint: str) -> Optional[TrackedToken]:
        for token in self.tracked_tokens:
            if token.mint == mint:
                return token
        return None
