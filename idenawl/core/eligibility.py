"""
Proof-of-personhood eligibility rules.

Humans must meet the network's dynamic discrimination stake threshold for the
epoch. Verified and Newbie identities need the fixed minimum stake instead.
A validation penalty or a bad flip report excludes an identity regardless of
state and stake. Everything here is pure: no I/O, no clock.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Literal, Union

Number = Union[Decimal, int, float, str]

MIN_STAKE = Decimal("10000")

Reason = Literal["penalty", "flip", "not-in-snapshot", "below-threshold", "ok"]


class IdentityState(str, Enum):
    UNDEFINED = "Undefined"
    INVITE = "Invite"
    CANDIDATE = "Candidate"
    NEWBIE = "Newbie"
    VERIFIED = "Verified"
    SUSPENDED = "Suspended"
    KILLED = "Killed"
    ZOMBIE = "Zombie"
    HUMAN = "Human"


FIXED_MINIMUM_STATES = frozenset({IdentityState.VERIFIED.value, IdentityState.NEWBIE.value})


def _dec(value: Number) -> Decimal:
    # str() keeps floats from dragging binary noise into comparisons.
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _state(state: Union[str, IdentityState, None]) -> str:
    if isinstance(state, IdentityState):
        return state.value
    return state or ""


def is_eligible_snapshot(
    state: Union[str, IdentityState, None],
    stake: Number,
    threshold: Number,
    *,
    fixed_minimum: Number = MIN_STAKE,
) -> bool:
    """State/stake part of the rules, without the penalty/flip exclusion."""
    s = _state(state)
    amount = _dec(stake)
    if s == IdentityState.HUMAN.value:
        return amount >= _dec(threshold)
    if s in FIXED_MINIMUM_STATES:
        return amount >= _dec(fixed_minimum)
    return False


def is_eligible(
    state: Union[str, IdentityState, None],
    stake: Number,
    penalized: bool,
    flip_reported: bool,
    threshold: Number,
    *,
    fixed_minimum: Number = MIN_STAKE,
) -> bool:
    if penalized or flip_reported:
        return False
    return is_eligible_snapshot(state, stake, threshold, fixed_minimum=fixed_minimum)


def eligibility_reason(
    state: Union[str, IdentityState, None],
    stake: Number,
    penalized: bool,
    flip_reported: bool,
    threshold: Number,
    *,
    fixed_minimum: Number = MIN_STAKE,
) -> Reason:
    """
    Explain the decision for a stored record.

    `not-in-snapshot` is never returned here; it belongs to callers that found
    no record at all.
    """
    if penalized:
        return "penalty"
    if flip_reported:
        return "flip"
    if is_eligible_snapshot(state, stake, threshold, fixed_minimum=fixed_minimum):
        return "ok"
    return "below-threshold"


def next_epoch_hint(state: str, stake: Number, threshold: Number, *, fixed_minimum: Number = MIN_STAKE) -> str:
    """Short message telling an identity what it needs for the next epoch."""
    if not state:
        return "Identity not found"
    amount = _dec(stake)
    thr = _dec(threshold)
    minimum = _dec(fixed_minimum)
    if state == IdentityState.HUMAN.value:
        if amount >= thr:
            return f"Stay Human with stake >= {thr:.0f} iDNA"
        return f"Add stake to {thr:.0f} iDNA and stay Human"
    if state in FIXED_MINIMUM_STATES:
        if amount >= minimum:
            return f"Stay {state} with stake >= {minimum:.0f} iDNA"
        return f"Add stake to {minimum:.0f} iDNA and remain {state}"
    return f"Become Human and have at least {thr:.0f} iDNA stake"


def predict_next_epoch(
    snapshot_eligible: bool,
    live_state: str,
    live_stake: Number,
    threshold: Number,
    *,
    fixed_minimum: Number = MIN_STAKE,
) -> str:
    live_eligible = is_eligible_snapshot(live_state, live_stake, threshold, fixed_minimum=fixed_minimum)
    if snapshot_eligible and not live_eligible:
        return "eligible this epoch, but not next"
    if not snapshot_eligible and live_eligible:
        return "not eligible this epoch, but eligible next"
    if live_eligible:
        return "eligible both epochs"
    return "not eligible"
