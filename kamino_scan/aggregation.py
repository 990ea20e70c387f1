"""Running totals of borrowed amounts per instruction kind and token."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, MutableMapping, Tuple

from solders.pubkey import Pubkey

from .errors import AggregateOverflowError
from .instruction_decoder import MatchedAmount

# u128 ceiling; Python ints do not wrap, so exceeding this is reported instead
MAX_AGGREGATE_AMOUNT = 2**128 - 1


@dataclass
class AggregateTotals:
    amounts: Dict[Tuple[str, Pubkey], int] = field(default_factory=dict)
    matches: Counter = field(default_factory=Counter)
    counts: Counter = field(default_factory=Counter)
    unresolved: Counter = field(default_factory=Counter)

    def amount_for(self, kind: str, token: Pubkey) -> int:
        return self.amounts.get((kind, token), 0)

    def merge(self, other: "AggregateTotals") -> "AggregateTotals":
        for key, amount in other.amounts.items():
            _add_amount(self.amounts, key, amount)
        self.matches.update(other.matches)
        self.counts.update(other.counts)
        self.unresolved.update(other.unresolved)
        return self


def _add_amount(amounts: MutableMapping[Tuple[str, Pubkey], int], key: Tuple[str, Pubkey], amount: int) -> None:
    total = amounts.get(key, 0) + amount
    if total > MAX_AGGREGATE_AMOUNT:
        raise AggregateOverflowError(f"Total for {key[0]} / {key[1]} exceeds {MAX_AGGREGATE_AMOUNT}")
    amounts[key] = total


def record(totals: AggregateTotals, matched: MatchedAmount) -> None:
    """Add a matched amount. Repeated calls with the same match add again."""
    key = (matched.kind, matched.token)
    _add_amount(totals.amounts, key, matched.amount)
    totals.matches[key] += 1


def record_count(counts: MutableMapping[str, int], kind: str) -> None:
    counts[kind] = counts.get(kind, 0) + 1


def record_unresolved(totals: AggregateTotals, kind: str) -> None:
    totals.unresolved[kind] += 1
