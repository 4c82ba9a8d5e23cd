"""Branch balance reporting: daily balance imports and performance reports."""

__version__ = "1.0.0"
