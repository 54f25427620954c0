#!/usr/bin/env python3
"""Live smoke test of the aggregation service against the real providers."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from loguru import logger

from market_aggregator.core.exceptions import AggregationError
from market_aggregator.dal.manager import AggregationService
from market_aggregator.logging_utils import setup_logging

DEFAULT_CHECKS: Sequence[tuple[str, str, int]] = (
    ("BTCUSDT", "1h", 24),
    ("ETH/USD", "1d", 30),
    ("EUR/USD", "1h", 24),
    ("AAPL", "1d", 60),
)


@dataclass
class SmokeResult:
    symbol: str
    interval: str
    limit: int
    status: str
    candles: int = 0
    candle_source: Optional[str] = None
    quote: Optional[float] = None
    quote_source: Optional[str] = None
    error: Optional[str] = None


def _run_single_check(service: AggregationService, symbol: str, interval: str, limit: int) -> SmokeResult:
    result = SmokeResult(symbol=symbol, interval=interval, limit=limit, status="ok")
    try:
        candles = service.get_candles(symbol, interval, limit)
        result.candles = len(candles)
        result.candle_source = candles[-1].source
        tick = service.get_quote(symbol)
        result.quote = tick.price
        result.quote_source = tick.source
    except AggregationError as exc:
        logger.warning("[dal-smoke] failed symbol={} interval={} error={}", symbol, interval, exc)
        result.status = "error"
        result.error = str(exc)
    return result


def _write_report(results: Iterable[SmokeResult], output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    path = output_dir / f"dal_smoke_{ts}.json"
    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "results": [asdict(res) for res in results],
    }
    path.write_text(json.dumps(payload, indent=2))
    logger.info("[dal-smoke] wrote report -> {}", path)
    return path


def _parse_checks(arg_checks: Optional[List[str]]) -> Sequence[tuple[str, str, int]]:
    if not arg_checks:
        return DEFAULT_CHECKS
    parsed = []
    for entry in arg_checks:
        try:
            symbol, interval, limit = entry.rsplit(":", maxsplit=2)
            parsed.append((symbol, interval, int(limit)))
        except ValueError as exc:
            raise ValueError(f"Invalid check format '{entry}'. Expected symbol:interval:limit") from exc
    return parsed


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Exercise the aggregation service end-to-end.")
    parser.add_argument(
        "--check",
        action="append",
        dest="checks",
        help="Custom check symbol:interval:limit (can repeat).",
    )
    parser.add_argument(
        "--output-dir",
        default="artifacts/ops/dal_smoke",
        help="Directory to store JSON reports (default: artifacts/ops/dal_smoke).",
    )
    args = parser.parse_args(argv)
    checks = _parse_checks(args.checks)
    setup_logging()

    results: List[SmokeResult] = []
    with AggregationService(start_sweeper=False) as service:
        for symbol, interval, limit in checks:
            logger.info("[dal-smoke] running symbol={} interval={} limit={}", symbol, interval, limit)
            results.append(_run_single_check(service, symbol, interval, limit))

    failures = [res for res in results if res.status != "ok"]
    report_path = _write_report(results, Path(args.output_dir))
    logger.info(
        "[dal-smoke] completed checks={} failures={} report={}",
        len(results),
        len(failures),
        report_path,
    )
    return 1 if failures else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
