"""HTTP API over the ledger service."""
