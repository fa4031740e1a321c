"""
Inventory Kernel - Item Allocation & Transaction Reconciliation

Moves design-business items between the shared business inventory and
client projects, keeping the transactions that account for them correct:
- Deterministic canonical transactions per (direction, project)
- Exact, item-derived transaction amounts
- Optimistic concurrency on every item and transaction write
- Idempotent, retryable allocation and deallocation
"""

__version__ = "0.1.0"
