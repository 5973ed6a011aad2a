"""Domain layer (pure logic).

- Keep tier tables, deck generation and other game rules here.
- Avoid I/O: no persistence, no HTTP, no Redis, no ledger calls.
- Prefer deterministic functions (the random source is passed in where needed).
"""
