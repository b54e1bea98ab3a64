"""
Fund ledger for chain games.

The chain state itself only carries the balances of the running chain
(pot, boost_amount, burned_amount). The ledger keeps the running totals per
asset across all chains and the winners' claimable credits, so the money
flow of every transition can be audited:

    deposited = pot + boost + burned (current chain) + paid out + burned (past chains)

Burned funds leave the ledger for good; they are never part of a payout.
"""
import logging

from .assets import AssetId
from .events import ChainStarted, PlayerJoined, PotBoosted, ChainEnded
from .pricing import bps_of

logger = logging.getLogger(__name__)


def split_entry_fee(payment: int, burn_bps: int) -> tuple[int, int]:
    """
    Split a join payment into (pot share, burn cut).

    The burn cut is floor(payment * burn_bps / 10000); the remainder goes
    to the pot, so nothing is lost to rounding.
    """
    burn_cut = bps_of(payment, burn_bps)
    return payment - burn_cut, burn_cut


def payout_amount(state) -> int:
    """Winner payout at end: pot plus boost, never the burned amount."""
    return state.pot + state.boost_amount


class AssetTotals:
    """Running totals for one asset."""

    def __init__(self, data: dict = None):
        data = data or {}
        self.deposited = int(data.get('deposited', 0))
        self.burned = int(data.get('burned', 0))
        self.paid_out = int(data.get('paid_out', 0))
        self.chain_deposited = int(data.get('chain_deposited', 0))

    def to_dict(self) -> dict:
        return {
            'deposited': self.deposited,
            'burned': self.burned,
            'paid_out': self.paid_out,
            'chain_deposited': self.chain_deposited,
        }

    @property
    def held(self) -> int:
        """Funds still held by the game for this asset."""
        return self.deposited - self.burned - self.paid_out

    def __repr__(self) -> str:
        return (
            f"AssetTotals(deposited={self.deposited}, burned={self.burned}, "
            f"paid_out={self.paid_out}, held={self.held})"
        )


class FundLedger:
    """Per-asset totals and winner credits, updated from committed events."""

    def __init__(self, data: dict = None):
        data = data or {}
        self.totals: dict[AssetId, AssetTotals] = {
            AssetId.parse(asset): AssetTotals(totals)
            for asset, totals in data.get('totals', {}).items()
        }
        # {address_hex: {asset_str: amount}}
        self.credits: dict[str, dict[str, int]] = {
            address: {asset: int(amount) for asset, amount in balances.items()}
            for address, balances in data.get('credits', {}).items()
        }

    def to_dict(self) -> dict:
        return {
            'totals': {str(asset): t.to_dict() for asset, t in self.totals.items()},
            'credits': {address: dict(balances) for address, balances in self.credits.items()},
        }

    def copy(self) -> 'FundLedger':
        return FundLedger(self.to_dict())

    def totals_for(self, asset: AssetId) -> AssetTotals:
        if asset not in self.totals:
            self.totals[asset] = AssetTotals()
        return self.totals[asset]

    def balance_of(self, address: bytes, asset: AssetId) -> int:
        """Claimable winnings credited to `address` in `asset`."""
        return self.credits.get(address.hex(), {}).get(str(asset), 0)

    def record(self, event, before, after):
        """
        Book the money movement of one committed transition.

        Args:
            event: Domain event emitted by the transition
            before: ChainState before the transition
            after: ChainState after the transition
        """
        if isinstance(event, ChainStarted):
            totals = self.totals_for(after.asset_id)
            totals.chain_deposited = event.base_entry
            totals.deposited += event.base_entry

        elif isinstance(event, PlayerJoined):
            totals = self.totals_for(after.asset_id)
            burn_cut = after.burned_amount - before.burned_amount
            totals.deposited += event.entry_fee
            totals.chain_deposited += event.entry_fee
            totals.burned += burn_cut

        elif isinstance(event, PotBoosted):
            totals = self.totals_for(after.asset_id)
            totals.deposited += event.amount
            totals.chain_deposited += event.amount

        elif isinstance(event, ChainEnded):
            totals = self.totals_for(before.asset_id)
            totals.paid_out += event.payout
            totals.chain_deposited = 0
            balances = self.credits.setdefault(event.winner.hex(), {})
            key = str(before.asset_id)
            balances[key] = balances.get(key, 0) + event.payout
            logger.debug(f"Credited {event.payout} {key} to {event.winner.hex()}")

        else:
            raise TypeError(f"Unknown event type: {type(event).__name__}")

    def check_conservation(self, state):
        """
        Assert the active chain never holds more than was deposited into it.

        Raises:
            ValueError: if pot + boost + burned exceeds the chain's deposits
        """
        if not state.is_active:
            return
        totals = self.totals_for(state.asset_id)
        accounted = state.pot + state.boost_amount + state.burned_amount
        if accounted > totals.chain_deposited:
            raise ValueError(
                f"Conservation violated: pot+boost+burned={accounted} "
                f"> deposited={totals.chain_deposited}"
            )

    def __repr__(self) -> str:
        return f"FundLedger(assets={len(self.totals)}, winners={len(self.credits)})"
