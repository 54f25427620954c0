"""Symbol classification and the string helpers provider rewrite rules share."""

from __future__ import annotations

import re
from typing import Optional, Tuple

from market_aggregator.dal.schemas import AssetClass

MAJOR_CURRENCIES: Tuple[str, ...] = ("USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "NZD")

CRYPTO_BASES = frozenset(
    {
        "BTC",
        "ETH",
        "BNB",
        "SOL",
        "XRP",
        "ADA",
        "DOGE",
        "DOT",
        "LTC",
        "AVAX",
        "MATIC",
        "LINK",
        "TRX",
        "SHIB",
        "BCH",
        "XLM",
    }
)

# Longest first so USDT wins over USD.
CRYPTO_QUOTES: Tuple[str, ...] = ("USDT", "USDC", "BUSD", "USD", "EUR", "BTC", "ETH")
CRYPTO_SUFFIXES: Tuple[str, ...] = ("USDT", "BTC", "ETH")

EXCHANGE_SUFFIXES = frozenset(
    {"L", "TO", "V", "DE", "F", "PA", "AS", "MI", "SW", "HK", "T", "AX", "NS", "BO", "SS", "SZ"}
)

_STOCK = re.compile(r"^[A-Z]{1,5}$")
_SUFFIXED = re.compile(r"^([A-Z0-9]{1,6})\.([A-Z]{1,2})$")
_PAIR = re.compile(r"^([A-Z]{3})[/_]([A-Z]{3})$")
_BARE6 = re.compile(r"^[A-Z]{6}$")
_CRYPTO_SEP = re.compile(r"^([A-Z0-9]{2,10})[/\-]([A-Z]{3,4})$")


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").strip().upper()


def split_crypto_pair(symbol: str) -> Optional[Tuple[str, str]]:
    """Return ``(base, quote)`` for crypto-looking symbols with a known base."""
    sym = normalize_symbol(symbol)
    match = _CRYPTO_SEP.match(sym)
    if match:
        base, quote = match.groups()
        return (base, quote) if base in CRYPTO_BASES else None
    for quote in CRYPTO_QUOTES:
        if sym.endswith(quote) and len(sym) > len(quote):
            base = sym[: -len(quote)]
            if base in CRYPTO_BASES:
                return base, quote
    return None


def split_forex_pair(symbol: str) -> Optional[Tuple[str, str]]:
    """Return ``(base, quote)`` for ``EUR/USD``, ``EUR_USD`` or ``EURUSD``."""
    sym = normalize_symbol(symbol)
    match = _PAIR.match(sym)
    if match:
        return match.group(1), match.group(2)
    if _BARE6.match(sym) and any(ccy in sym for ccy in MAJOR_CURRENCIES):
        return sym[:3], sym[3:]
    return None


def exchange_suffix(symbol: str) -> Optional[str]:
    match = _SUFFIXED.match(normalize_symbol(symbol))
    if match and match.group(2) in EXCHANGE_SUFFIXES:
        return match.group(2)
    return None


def strip_exchange_suffix(symbol: str) -> str:
    sym = normalize_symbol(symbol)
    if exchange_suffix(sym):
        return sym.rsplit(".", 1)[0]
    return sym


def classify(symbol: str) -> AssetClass:
    sym = normalize_symbol(symbol)
    if not sym:
        return AssetClass.UNKNOWN

    if any(sym.endswith(suffix) for suffix in CRYPTO_SUFFIXES):
        return AssetClass.CRYPTO
    if split_crypto_pair(sym):
        return AssetClass.CRYPTO

    if split_forex_pair(sym):
        return AssetClass.FOREX

    if _STOCK.match(sym) or exchange_suffix(sym):
        return AssetClass.STOCK
    return AssetClass.UNKNOWN


__all__ = [
    "CRYPTO_BASES",
    "MAJOR_CURRENCIES",
    "classify",
    "exchange_suffix",
    "normalize_symbol",
    "split_crypto_pair",
    "split_forex_pair",
    "strip_exchange_suffix",
]
