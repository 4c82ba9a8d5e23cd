"""Ingestion of uploaded balance sheets."""

from .amounts import InvalidAmount, parse_amount
from .parser import TabularParser, detect_format

__all__ = [
    "InvalidAmount",
    "parse_amount",
    "TabularParser",
    "detect_format",
]
