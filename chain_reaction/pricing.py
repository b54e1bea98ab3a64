"""
Entry fee escalation.

All percentage math is done in basis points with floor division, so the
results are exact integers:

    next = current + floor(current * multiplier_bps / 10000)
"""
from .chain_state import BPS_DENOMINATOR


def bps_of(amount: int, bps: int) -> int:
    """floor(amount * bps / 10000)."""
    return (amount * bps) // BPS_DENOMINATOR


def next_entry_price(state) -> int:
    """
    Fee the next player must pay to join.

    Args:
        state: ChainState (only current_entry and multiplier_bps are read)

    Returns:
        Exact required payment in the smallest asset unit
    """
    return state.current_entry + bps_of(state.current_entry, state.multiplier_bps)
