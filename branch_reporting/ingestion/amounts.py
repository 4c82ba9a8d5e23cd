"""
Monetary amount parsing for uploaded balance sheets.

Bank exports mix thousands separators: "1,000,000.50" and "1.000.000,50"
both occur, as do bare integers and scientific notation from spreadsheet
cells. Everything resolves to a Decimal or raises InvalidAmount.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

US_GROUPED = re.compile(r"^\d{1,3}(,\d{3})+(\.\d+)?$")
EU_GROUPED = re.compile(r"^\d{1,3}(\.\d{3})+(,\d+)?$")
SCIENTIFIC = re.compile(r"^-?\d+(\.\d+)?[eE][+-]?\d+$")
STRIP_CHARS = re.compile(r"[^\d.,\-eE+]")
# "Rp", "Rp.", "IDR", "$" ahead of the digits
CURRENCY_PREFIX = re.compile(r"^(?:[A-Za-z]{2,3}\.?|[$€£¥])")


class InvalidAmount(ValueError):
    """Value cannot be read as a monetary amount."""


def parse_amount(value: Any) -> Decimal:
    """
    Parse a cell value into a Decimal.

    Args:
        value: Native number from a workbook cell, or text from CSV/XLSX

    Returns:
        Parsed amount (sign preserved; callers decide whether negatives are allowed)
    """
    if value is None:
        raise InvalidAmount("amount is empty")
    if isinstance(value, bool):
        raise InvalidAmount(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise InvalidAmount(f"not a finite number: {value!r}")
        return Decimal(repr(value))

    text = str(value).strip().replace(" ", "").replace("\u00a0", "")
    if not text or text == "-":
        raise InvalidAmount("amount is empty")

    negative = text.startswith("-") or (text.startswith("(") and text.endswith(")"))
    body = CURRENCY_PREFIX.sub("", text.lstrip("(-"))
    if body.startswith("-"):
        negative = True
    cleaned = STRIP_CHARS.sub("", body).lstrip("-")
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        raise InvalidAmount(f"not a number: {value!r}")
    # A leading separator would silently rescale the amount
    if cleaned[0] in ".,":
        raise InvalidAmount(f"misplaced separator: {value!r}")

    if SCIENTIFIC.match(cleaned):
        normalized = cleaned
    elif US_GROUPED.match(cleaned):
        normalized = cleaned.replace(",", "")
    elif EU_GROUPED.match(cleaned):
        normalized = cleaned.replace(".", "").replace(",", ".")
    else:
        if re.search(r"[eE+]", cleaned):
            raise InvalidAmount(f"not a number: {value!r}")
        normalized = cleaned
        if normalized.count(".") > 1:
            head, *rest = normalized.split(".")
            normalized = head + "." + "".join(rest)
        if normalized.count(",") > 1:
            head, *rest = normalized.split(",")
            normalized = head + "." + "".join(rest)
        if "," in normalized:
            if "." in normalized:
                raise InvalidAmount(f"ambiguous separators: {value!r}")
            normalized = normalized.replace(",", ".")

    try:
        amount = Decimal(normalized)
    except InvalidOperation as e:
        raise InvalidAmount(f"not a number: {value!r}") from e
    if not amount.is_finite():
        raise InvalidAmount(f"not a finite number: {value!r}")
    return -amount if negative else amount
