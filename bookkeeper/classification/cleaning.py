"""
Description cleaning for classification.

Bank descriptions carry prefixes ("POS PURCHASE", "ACH DEBIT") and
trailing noise (dates, store numbers, state codes) that defeat pattern
matching. Rules and vendor patterns are always matched against the
cleaned, uppercased text.
"""

import re
from decimal import Decimal
from typing import Union

from bookkeeper.models.classification import AmountDirection


TRANSACTION_PREFIXES = [
    "CHECKCARD",
    "CHECK CARD",
    "DEBIT CARD PURCHASE",
    "DEBIT CARD",
    "POS PURCHASE",
    "POS DEBIT",
    "POS REFUND",
    "ACH DEBIT",
    "ACH CREDIT",
    "ACH WITHDRAWAL",
    "ACH DEPOSIT",
    "ELECTRONIC DEBIT",
    "ELECTRONIC CREDIT",
    "ELECTRONIC PAYMENT",
    "BILL PAY",
    "BILL PAYMENT",
    "ONLINE PAYMENT",
    "ONLINE TRANSFER",
    "WEB PMNT",
    "INTERNET PMT",
    "AUTOPAY",
    "AUTO PAY",
    "RECURRING PAYMENT",
    "RECURRING",
    "PREAUTHORIZED",
    "PRE-AUTHORIZED",
    "PURCHASE AUTHORIZED ON",
    "PURCHASE AUTHORIZED",
    "VISA",
    "MASTERCARD",
    "AMEX",
    "DISCOVER",
    "DEBIT",
    "CREDIT",
    "RETURN",
    "REFUND",
]

# Longest first so "POS PURCHASE" wins over "POS"
_PREFIXES_BY_LENGTH = sorted(TRANSACTION_PREFIXES, key=len, reverse=True)

# Applied in order, each to the end of the text
TRANSACTION_SUFFIXES = [
    re.compile(r"\d{2}/\d{2}$"),
    re.compile(r"\s+\d{4,}$"),
    re.compile(r"#\d+$"),
    re.compile(r"\s+[A-Z]{2}$"),
    re.compile(r"\s+\d{5}(-\d{4})?$"),
    re.compile(r"\s+USA$", re.IGNORECASE),
    re.compile(r"\s+US$", re.IGNORECASE),
]

_WHITESPACE = re.compile(r"\s+")


def clean_description(text: str) -> str:
    """Uppercase, strip one known prefix and trailing noise."""
    if not text or not isinstance(text, str):
        return ""

    cleaned = text.upper().strip()

    for prefix in _PREFIXES_BY_LENGTH:
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):].strip()
            break

    for suffix in TRANSACTION_SUFFIXES:
        cleaned = suffix.sub("", cleaned).strip()

    return _WHITESPACE.sub(" ", cleaned)


def extract_vendor(text: str) -> str:
    """Most bank descriptions lead with the merchant: keep the first three words."""
    cleaned = clean_description(text)
    if not cleaned:
        return ""
    return " ".join(cleaned.split(" ")[:3])


def amount_direction(amount: Union[Decimal, float, int, str, None]) -> AmountDirection:
    try:
        value = Decimal(str(amount)) if amount is not None else Decimal("0")
    except ArithmeticError:
        value = Decimal("0")
    return AmountDirection.POSITIVE if value >= 0 else AmountDirection.NEGATIVE
