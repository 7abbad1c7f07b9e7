"""Services package: storage, access control and the ledger."""
