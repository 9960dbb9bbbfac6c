"""Trading and account query operations on the ledger."""
