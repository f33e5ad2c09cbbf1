"""Signed payment receipts, receipt checks, escrow adapters and receipt aggregate vouchers."""

__version__ = "0.1.0"