"""Application layer of the reconciliation engine."""
