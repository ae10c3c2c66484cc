"""
Ledger Kernel

A per-account running-balance ledger with:
- Precomputed cumulative delta on every entry
- Out-of-order inserts, amount edits, date moves and deletions
  maintained through targeted bulk range updates
- Atomic units of work with bounded retry on transient storage failures
"""

__version__ = "0.1.0"
