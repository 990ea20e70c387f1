"""Turn scan totals into DataFrames, a console summary and CSV files."""
from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict

import pandas as pd

from .config import ScanConfig
from .scanner import ScanResult

TOTALS_COLUMNS = ["kind", "token", "mint", "amount_raw", "amount", "matches"]
COUNTS_COLUMNS = ["kind", "matched", "unresolved"]
WARNING_COLUMNS = ["kind", "signature", "instruction_index", "detail"]


def build_totals_frame(result: ScanResult, config: ScanConfig) -> pd.DataFrame:
    rows = []
    totals = result.totals
    for (kind, token), amount in sorted(totals.amounts.items(), key=lambda item: (str(item[0][0]), str(item[0][1]))):
        mint = str(token)
        tracked = config.token_for(mint)
        # Raw integer stays exact; the scaled column is for display only
        scaled = amount / 10**tracked.decimals if tracked else float(amount)
        rows.append(
            {
                "kind": str(kind),
                "token": tracked.label if tracked else mint,
                "mint": mint,
                "amount_raw": str(amount),
                "amount": scaled,
                "matches": totals.matches[(kind, token)],
            }
        )
    return pd.DataFrame(rows, columns=TOTALS_COLUMNS)


def build_counts_frame(result: ScanResult) -> pd.DataFrame:
    totals = result.totals
    kinds = sorted(set(totals.counts) | set(totals.unresolved), key=str)
    rows = [
        {"kind": str(kind), "matched": totals.counts[kind], "unresolved": totals.unresolved[kind]}
        for kind in kinds
    ]
    return pd.DataFrame(rows, columns=COUNTS_COLUMNS)


def build_warnings_frame(result: ScanResult) -> pd.DataFrame:
    df = pd.DataFrame([asdict(warning) for warning in result.warnings], columns=WARNING_COLUMNS)
    df["instruction_index"] = df["instruction_index"].astype("Int64")
    return df


def log_summary(result: ScanResult, config: ScanConfig) -> None:
    totals_df = build_totals_frame(result, config)
    counts_df = build_counts_frame(result)

    span = result.block_time_span
    if span is not None:
        logging.info("Breakdown of Kamino loans over %d seconds of blocks", span)
    for row in totals_df.itertuples(index=False):
        logging.info("%s %s: %s", row.kind, row.token, row.amount)
    for row in counts_df.itertuples(index=False):
        logging.info("%s instructions: %d matched, %d unresolved", row.kind, row.matched, row.unresolved)
    if result.warnings:
        logging.warning("%d decode warnings recorded", len(result.warnings))


def write_report(result: ScanResult, config: ScanConfig, output_dir: Path) -> Dict[str, Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    frames = {
        "totals": build_totals_frame(result, config),
        "counts": build_counts_frame(result),
        "warnings": build_warnings_frame(result),
    }
    paths: Dict[str, Path] = {}
    for name, df in frames.items():
        path = output_dir / f"{name}.csv"
        df.to_csv(path, index=False)
        paths[name] = path
    logging.info("Report written to %s", output_dir)
    return paths
