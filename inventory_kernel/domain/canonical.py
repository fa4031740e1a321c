"""
Canonical transaction identity -- pure functions.

Each (direction, project) pair has exactly one canonical transaction with a
deterministic id:

    INV_SALE_<project_id>
    INV_PURCHASE_<project_id>

Business inventory has no project; it is keyed by BUSINESS_INVENTORY_KEY, which
is therefore not a valid project id. These functions are the single source
of truth for that mapping; the resolver and the planner both call them.
"""

from __future__ import annotations

from dataclasses import dataclass

from inventory_kernel.domain.dtos import Direction, ReimbursementType

CANONICAL_PREFIX = "INV_"
BUSINESS_INVENTORY_KEY = "BUSINESS_INVENTORY"

_DIRECTION_TOKENS: dict[Direction, str] = {
    Direction.SALE: "SALE",
    Direction.PURCHASE: "PURCHASE",
}
_TOKEN_DIRECTIONS: dict[str, Direction] = {v: k for k, v in _DIRECTION_TOKENS.items()}


@dataclass(frozen=True)
class CanonicalKey:
    direction: Direction
    project_id: str | None


def canonical_transaction_id(direction: Direction, project_id: str | None) -> str:
    """Deterministic id of the canonical transaction for (direction, project)."""
    direction = Direction(direction)
    if project_id is not None and not str(project_id).strip():
        raise ValueError("project_id must be None or a non-empty string")
    if project_id == BUSINESS_INVENTORY_KEY:
        raise ValueError(
            f"project_id {BUSINESS_INVENTORY_KEY!r} is reserved for business inventory"
        )
    key = BUSINESS_INVENTORY_KEY if project_id is None else project_id
    return f"{CANONICAL_PREFIX}{_DIRECTION_TOKENS[direction]}_{key}"


def parse_canonical_transaction_id(transaction_id: str) -> CanonicalKey | None:
    """Inverse of canonical_transaction_id. None for non-canonical ids."""
    if not transaction_id or not transaction_id.startswith(CANONICAL_PREFIX):
        return None
    rest = transaction_id[len(CANONICAL_PREFIX):]
    token, sep, key = rest.partition("_")
    if not sep or not key or token not in _TOKEN_DIRECTIONS:
        return None
    project_id = None if key == BUSINESS_INVENTORY_KEY else key
    return CanonicalKey(direction=_TOKEN_DIRECTIONS[token], project_id=project_id)


def is_canonical_transaction_id(transaction_id: str | None) -> bool:
    return transaction_id is not None and (
        parse_canonical_transaction_id(transaction_id) is not None
    )


def default_reimbursement(
    direction: Direction, project_id: str | None
) -> ReimbursementType:
    """
    Reimbursement derived from direction and project.

    A purchase into a client project is owed by the client. A sale, or a
    purchase made for business inventory, is owed by the business.
    """
    if Direction(direction) is Direction.PURCHASE and project_id is not None:
        return ReimbursementType.CLIENT_OWES_BUSINESS
    return ReimbursementType.BUSINESS_OWES_CLIENT


def canonical_description(direction: Direction, business_name: str) -> str:
    """Display label, e.g. 'Design Business Inventory Purchase'."""
    return f"{business_name} Inventory {Direction(direction).value}"
