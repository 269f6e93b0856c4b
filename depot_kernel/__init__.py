"""
Depot Kernel - stock ledger and request fulfillment core.

A transactional core for a materials warehouse with:
- Append-only stock ledger with before/after balances
- Non-negative stock guarded under row-level locks
- Request -> validation -> delivery note workflows
- Post-commit notification dispatch
"""

__version__ = "0.1.0"
