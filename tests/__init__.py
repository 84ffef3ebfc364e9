"""
sheetledger Test Suite.

This package contains:
- unit/: Unit tests (schema layer, backends, config, errors, leaves)
- integration/: Engine tests (store, ledger, comments, service, CLI)
"""
