"""Bill status transitions, validated in one place"""

from ...errors import ConflictError

ALLOWED_TRANSITIONS = {
    "unpaid": {"unpaid", "partial", "paid", "cancelled"},
    "partial": {"partial", "paid", "cancelled"},
    "paid": {"paid", "cancelled"},
    "cancelled": set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def ensure_transition(current: str, new: str) -> str:
    """Return ``new`` or raise 409 when the move is not allowed"""
    if not can_transition(current, new):
        raise ConflictError(f"Bill cannot move from {current} to {new}")
    return new
