"""
Chain game lifecycle: start / join / boost / end.

Amounts and expected values are pinned exactly; basis-point math always
floors.
"""
import threading

import pytest

from chain_reaction.assets import AssetId, NATIVE_ASSET
from chain_reaction.chain_state import ChainState, U256_MAX
from chain_reaction.core import Operation
from chain_reaction.crypto import NULL_ADDRESS
from chain_reaction.errors import (
    InvalidState,
    InvalidParameter,
    WrongPayment,
    AssetMismatch,
    PrematureEnd,
)
from chain_reaction.events import ChainStarted, PlayerJoined, ChainEnded, PotBoosted
from chain_reaction.game import apply_operation

ONE = 10 ** 18
TOKEN = AssetId.token(bytes([0xab] * 32))


def start_default(game, sender, payment=10, duration_ms=1000, multiplier_bps=1000,
                  asset_id=NATIVE_ASSET, burn_bps=0):
    return game.start(sender, payment, duration_ms, multiplier_bps, asset_id, burn_bps)


def join_at_price(game, sender, asset=NATIVE_ASSET):
    return game.join(sender, game.next_entry_price(), asset)


class TestEndToEnd:
    def test_start_join_end(self, game, players, clock):
        start_default(game, players[0])
        state = game.get_state()
        assert state.is_active
        assert state.pot == 10
        assert game.next_entry_price() == 11

        game.join(players[1], 11)
        state = game.get_state()
        assert state.pot == 21
        assert state.current_entry == 11
        assert state.player_count == 2
        assert state.last_player == players[1]

        clock.advance(500)
        assert game.can_end()
        event = game.end(players[0])

        assert isinstance(event, ChainEnded)
        assert event.winner == players[1]
        assert event.payout == 21
        assert event.chain_id == 0

        state = game.get_state()
        assert not state.is_active
        assert state.chain_id == 1
        assert state.pot == 0
        assert state.boost_amount == 0
        assert state.burned_amount == 0
        assert state.player_count == 0
        assert state.last_player == NULL_ADDRESS
        assert game.balance_of(players[1]) == 21

    def test_end_is_permissionless(self, game, players, clock):
        start_default(game, players[0])
        join_at_price(game, players[1])
        clock.advance(1000)

        event = game.end(players[9])

        assert event.winner == players[1]

    def test_starter_wins_when_nobody_joins(self, game, players, clock):
        start_default(game, players[0], payment=10, duration_ms=1000)
        clock.advance(1000)
        event = game.end(players[5])
        assert event.winner == players[0]
        assert event.payout == 10

    def test_second_lifecycle_reuses_state(self, game, players, clock):
        start_default(game, players[0])
        clock.advance(1000)
        game.end(players[0])

        event = start_default(game, players[2], payment=50)

        assert event.chain_id == 1
        state = game.get_state()
        assert state.base_entry == 50
        assert state.pot == 50
        assert state.player_count == 1
        assert state.last_player == players[2]


class TestEnd:
    def test_premature_end_rejected(self, game, players, clock):
        start_default(game, players[0], duration_ms=1000)
        before = game.get_state()

        clock.advance(999)
        assert not game.can_end()
        with pytest.raises(PrematureEnd) as exc:
            game.end(players[1])

        assert exc.value.code == 4
        assert game.get_state() == before

    def test_end_exactly_at_end_timestamp(self, game, players, clock):
        start_default(game, players[0], duration_ms=1000)
        clock.advance(1000)
        assert game.can_end()
        game.end(players[0])

    def test_second_end_is_invalid_state(self, game, players, clock):
        start_default(game, players[0])
        clock.advance(1000)
        game.end(players[0])

        with pytest.raises(InvalidState):
            game.end(players[0])

        assert game.get_state().chain_id == 1

    def test_end_without_chain(self, game, players):
        with pytest.raises(InvalidState):
            game.end(players[0])
        assert not game.can_end()


class TestStartValidation:
    def test_zero_multiplier(self, game, players):
        with pytest.raises(InvalidParameter) as exc:
            start_default(game, players[8], multiplier_bps=0)
        assert exc.value.code == 6
        assert not game.get_state().is_active

    def test_zero_payment(self, game, players):
        with pytest.raises(InvalidParameter):
            start_default(game, players[0], payment=0)

    def test_burn_above_100_percent(self, game, players):
        with pytest.raises(InvalidParameter):
            start_default(game, players[0], burn_bps=10_001)

    def test_full_burn_allowed(self, game, players):
        start_default(game, players[0], burn_bps=10_000)
        assert game.get_state().burn_bps == 10_000

    def test_duration_below_floor(self, game, players):
        with pytest.raises(InvalidParameter):
            start_default(game, players[0], duration_ms=499)

    def test_start_while_active(self, game, players):
        start_default(game, players[0])
        with pytest.raises(InvalidState) as exc:
            start_default(game, players[1])
        assert exc.value.code == 0
        assert game.get_state().last_player == players[0]

    def test_payment_out_of_range(self, game, players):
        with pytest.raises(InvalidParameter):
            start_default(game, players[0], payment=U256_MAX + 1)

    def test_null_sender_rejected(self, game):
        with pytest.raises(InvalidParameter):
            start_default(game, NULL_ADDRESS)


class TestJoin:
    def test_join_inactive(self, game, players):
        with pytest.raises(InvalidState) as exc:
            game.join(players[8], 10)
        assert exc.value.code == 0

    @pytest.mark.parametrize("payment", [10, 12, 0])
    def test_wrong_payment(self, game, players, payment):
        start_default(game, players[0])
        before = game.get_state()

        with pytest.raises(WrongPayment) as exc:
            game.join(players[1], payment)

        assert exc.value.expected == 11
        assert exc.value.got == payment
        assert game.get_state() == before

    def test_asset_mismatch(self, game, players):
        start_default(game, players[0], asset_id=TOKEN)
        with pytest.raises(AssetMismatch):
            game.join(players[1], 11, NATIVE_ASSET)

    @pytest.mark.parametrize("payment", [0, 10, 12])
    def test_asset_checked_before_payment(self, game, players, payment):
        start_default(game, players[0], asset_id=TOKEN)
        with pytest.raises(AssetMismatch) as exc:
            game.join(players[1], payment, NATIVE_ASSET)
        assert exc.value.code == 3

    def test_asset_checked_before_price_overflow(self, game, players):
        start_default(game, players[0], payment=U256_MAX // 2 + 1, multiplier_bps=10_000, asset_id=TOKEN)
        with pytest.raises(AssetMismatch):
            game.join(players[1], 1, NATIVE_ASSET)

    def test_state_checked_before_asset(self, game, players):
        with pytest.raises(InvalidState):
            game.join(players[1], 12, TOKEN)

    def test_price_escalates(self, game, players):
        start_default(game, players[0], duration_ms=2000)
        paid = []
        for index in range(1, 4):
            paid.append(game.next_entry_price())
            join_at_price(game, players[index])
        assert paid == [11, 12, 13]
        assert game.get_state().pot == 46

    def test_countdown_decays_to_floor(self, game, players, clock):
        start_default(game, players[0], duration_ms=2000)
        assert game.get_state().end_timestamp == clock.now + 2000

        ends = []
        for index in range(1, 5):
            join_at_price(game, players[index])
            ends.append(game.get_state().end_timestamp - clock.now)

        assert ends == [1000, 500, 500, 500]

    def test_join_resets_countdown_from_join_time(self, game, players, clock):
        start_default(game, players[0], duration_ms=2000)
        clock.advance(1500)
        join_at_price(game, players[1])
        assert game.get_state().last_entry_timestamp == clock.now
        assert game.get_state().end_timestamp == clock.now + 1000
        assert not game.can_end()

    def test_price_overflow_makes_join_unreachable(self, game, players, clock):
        start_default(game, players[0], payment=U256_MAX // 2 + 1, multiplier_bps=10_000)
        assert game.next_entry_price() > U256_MAX

        with pytest.raises(InvalidParameter):
            game.join(players[1], U256_MAX)

        clock.advance(1000)
        assert game.end(players[1]).winner == players[0]


class TestBurn:
    def test_burn_precision(self, clock, players):
        state = ChainState.deploy(duration_decrease_ms=0, min_duration=0)
        state, _ = apply_operation(state, Operation.start(players[0], 50, 1000, 10_000, burn_bps=500), clock.now)
        # 50 + 100% = 100 for the first join
        state, _ = apply_operation(state, Operation.join(players[1], 100), clock.now)
        assert state.burned_amount == 5
        assert state.pot == 50 + 95

    def test_burn_cut_floors(self, clock, players):
        state = ChainState.deploy(duration_decrease_ms=0, min_duration=0)
        state, _ = apply_operation(state, Operation.start(players[0], 100, 1000, 1000, burn_bps=333), clock.now)
        state, _ = apply_operation(state, Operation.join(players[1], 110), clock.now)
        # 110 * 333 / 10000 = 3.663
        assert state.burned_amount == 3
        assert state.pot == 100 + 107

    def test_two_chains_with_burn(self, game, players, clock):
        for chain_id in range(2):
            start_default(game, players[0], payment=ONE, duration_ms=500, burn_bps=500)
            state = game.get_state()
            assert state.chain_id == chain_id
            assert state.pot == ONE
            assert state.burned_amount == 0
            assert game.next_entry_price() == 1_100_000_000_000_000_000

            fees = [ONE]
            for index in range(1, 6):
                fees.append(game.next_entry_price())
                join_at_price(game, players[index])

            state = game.get_state()
            assert state.burned_amount == 335_780_500_000_000_000
            assert state.pot == 7_379_829_500_000_000_000
            assert state.pot + state.burned_amount == sum(fees)

            clock.advance(500)
            event = game.end(players[0])
            assert event.payout == 7_379_829_500_000_000_000
            assert event.winner == players[5]

        totals = game.ledger.totals_for(NATIVE_ASSET)
        assert totals.burned == 2 * 335_780_500_000_000_000
        assert totals.held == 0


class TestBoost:
    def test_boost_adds_to_payout_only(self, game, players, clock):
        start_default(game, players[0], duration_ms=2000)
        end_before = game.get_state().end_timestamp

        clock.advance(100)
        event = game.boost(players[9], 10 * ONE)

        assert isinstance(event, PotBoosted)
        state = game.get_state()
        assert state.pot == 10
        assert state.boost_amount == 10 * ONE
        assert state.end_timestamp == end_before
        assert state.player_count == 1
        assert game.next_entry_price() == 11

        for index in range(1, 4):
            join_at_price(game, players[index])

        clock.advance(2000)
        ended = game.end(players[0])
        assert ended.payout == 46 + 10 * ONE
        assert ended.winner == players[3]

    def test_boost_inactive(self, game, players):
        with pytest.raises(InvalidState):
            game.boost(players[0], 10)

    def test_boost_zero(self, game, players):
        start_default(game, players[0])
        with pytest.raises(InvalidParameter):
            game.boost(players[1], 0)

    def test_boost_asset_checked_before_amount(self, game, players):
        start_default(game, players[0], asset_id=TOKEN)
        with pytest.raises(AssetMismatch):
            game.boost(players[1], 0, NATIVE_ASSET)

    def test_token_chain(self, game, players, clock):
        start_default(game, players[0], duration_ms=2000, asset_id=TOKEN)
        game.boost(players[9], 100, TOKEN)

        with pytest.raises(AssetMismatch):
            game.boost(players[9], 100, NATIVE_ASSET)

        for index in range(1, 4):
            join_at_price(game, players[index], TOKEN)

        state = game.get_state()
        assert state.pot + state.boost_amount == 146

        clock.advance(2000)
        event = game.end(players[0])
        assert event.payout == 146
        assert game.balance_of(players[3], TOKEN) == 146
        assert game.balance_of(players[3], NATIVE_ASSET) == 0


class TestEvents:
    def test_event_stream(self, game, players, clock):
        start_default(game, players[0])
        game.boost(players[9], 5)
        join_at_price(game, players[1])
        clock.advance(1000)
        game.end(players[2])

        events = game.events_since(0)
        assert [e.NAME for e in events] == ["ChainStarted", "PotBoosted", "PlayerJoined", "ChainEnded"]
        assert [e.sequence for e in events] == [0, 1, 2, 3]
        assert all(e.chain_id == 0 for e in events)

        started, boosted, joined, ended = events
        assert isinstance(started, ChainStarted)
        assert started.starter == players[0]
        assert started.base_entry == 10
        assert started.asset_id == NATIVE_ASSET
        assert boosted.amount == 5
        assert isinstance(joined, PlayerJoined)
        assert joined.player == players[1]
        assert joined.entry_fee == 11
        assert ended.payout == 26

        assert game.events_since(3)[0] is ended
        assert game.events_since(4) == []

    def test_rejected_operation_emits_nothing(self, game, players):
        start_default(game, players[0])
        with pytest.raises(WrongPayment):
            game.join(players[1], 99)
        assert len(game.events) == 1


class TestViews:
    def test_game_state_snapshot(self, game, players, clock):
        view = game.get_game_state()
        assert view['is_active'] is False
        assert view['can_end'] is False

        start_default(game, players[0])
        view = game.get_game_state()
        assert view['next_entry_price'] == 11
        assert view['last_player'] == players[0].hex()
        assert view['pot'] == 10
        assert view['can_end'] is False

        assert game.get_game_state(now=clock.now + 1000)['can_end'] is True

    def test_get_state_is_a_copy(self, game, players):
        start_default(game, players[0])
        snapshot = game.get_state()
        snapshot.pot = 999
        assert game.get_state().pot == 10


class TestReducer:
    def test_apply_does_not_touch_input(self, players, clock):
        state = ChainState.deploy(500, 500)
        before = state.to_dict()

        new_state, event = apply_operation(state, Operation.start(players[0], 10, 1000, 1000), clock.now)

        assert state.to_dict() == before
        assert new_state.is_active
        assert isinstance(event, ChainStarted)

    def test_failed_apply_does_not_touch_input(self, players, clock):
        state, _ = apply_operation(ChainState.deploy(500, 500),
                                   Operation.start(players[0], 10, 1000, 1000), clock.now)
        before = state.to_dict()

        with pytest.raises(WrongPayment):
            apply_operation(state, Operation.join(players[1], 12), clock.now)

        assert state.to_dict() == before

    def test_unknown_operation(self, players, clock):
        with pytest.raises(InvalidParameter):
            apply_operation(ChainState(), Operation(players[0], "CASHOUT"), clock.now)

    def test_conservation_over_many_joins(self, players, clock):
        for burn_bps in (0, 1, 250, 3333, 10_000):
            state, _ = apply_operation(ChainState.deploy(100, 100),
                                       Operation.start(players[0], 1000, 10_000, 1500, burn_bps=burn_bps),
                                       clock.now)
            paid = 1000
            for index in range(20):
                price = state.current_entry + state.current_entry * 1500 // 10_000
                state, _ = apply_operation(state, Operation.join(players[index % 10], price), clock.now)
                paid += price
            assert state.pot + state.burned_amount == paid

            payout_state, event = apply_operation(state, Operation.end(players[0]), state.end_timestamp)
            assert event.payout == state.pot + state.boost_amount
            assert payout_state.burned_amount == 0


class TestConcurrency:
    def test_only_one_join_wins_a_price(self, game, players):
        start_default(game, players[0])
        price = game.next_entry_price()
        results = []
        barrier = threading.Barrier(8)

        def attempt(player):
            barrier.wait()
            try:
                game.join(player, price)
                results.append('ok')
            except WrongPayment:
                results.append('wrong')

        threads = [threading.Thread(target=attempt, args=(players[i + 1],)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count('ok') == 1
        assert results.count('wrong') == 7
        assert game.get_state().player_count == 2
        assert game.get_state().pot == 10 + price
