"""clubpay - payment reconciliation and obligation engine for club membership billing."""

__version__ = "0.1.0"
