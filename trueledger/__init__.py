"""Item-ownership ledger services: SQLite storage, transfer codes, contract transactions and event indexing."""

__version__ = "0.1.0"