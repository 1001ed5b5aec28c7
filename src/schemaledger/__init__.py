"""schemaledger - versioned SQL migrations with a checksummed ledger."""

__version__ = "0.1.0"
