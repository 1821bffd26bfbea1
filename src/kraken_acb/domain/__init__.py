"""Domain models and types for the ACB engine.

This package contains in-memory (Pydantic) models describing ledger entries,
classified events and asset pools. They are independent from persistence
models so that business logic and testing can evolve without DB coupling.
"""

__all__ = [
    "acb_engine",
    "classifier",
    "events",
    "ledger",
    "pool",
    "pricing",
]
