"""
Pool Conservation Conformance Tests

INVARIANT: Wagering redistributes tokens and never creates or destroys them.

    While a bet is open:
        pooled_balance = Σ stake(w) = balance(escrow) = Σ_o balance_on_option(o)

    When a bet closes:
        Σ payout(w) + fee + dust = pooled_balance
        balance(escrow) = 0

    At all times:
        Σ_{w ∈ wallets} balance(w, TOK) = constant

These tests use property-based testing to verify the invariants hold for
arbitrary pools, fees and outcomes.
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st
from decimal import Decimal
from typing import List, Tuple

from parimutuel import compute_payouts, BettingError, AlreadyPlaced
from tests.helpers import TOKEN, make_engine, make_ledger


PLAYERS = [f"p{i}" for i in range(8)]


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

@st.composite
def pool(draw, max_players: int = 8):
    """
    Generate a bet shape and its stakes.

    Returns:
        (option_count, [(wallet, option, amount), ...], winning_option, fee_percent)
    """
    option_count = draw(st.integers(min_value=2, max_value=4))
    players = draw(st.lists(
        st.sampled_from(PLAYERS[:max_players]), min_size=0, max_size=max_players, unique=True
    ))
    stakes = [
        (w, draw(st.integers(0, option_count - 1)), draw(st.integers(1, 1000)))
        for w in players
    ]
    winning_option = draw(st.integers(0, option_count - 1))
    fee_percent = draw(st.integers(0, 10))
    return option_count, stakes, winning_option, fee_percent


def _run(option_count: int, stakes: List[Tuple[str, int, int]], winning_option: int, fee_percent: int):
    ledger = make_ledger(wallets=["admin", "carol"] + PLAYERS)
    engine = make_engine(ledger, fee_percent=fee_percent)
    options = [f"o{i}" for i in range(option_count)]
    bet_id = engine.create_bet("carol", "property", options, 10)
    for wallet, option, amount in stakes:
        engine.place_bet(bet_id, wallet, option, amount)
    return engine, bet_id


# =============================================================================
# PURE PAYOUT PROPERTIES
# =============================================================================

class TestPayoutProperties:

    @given(pool())
    @settings(max_examples=200)
    def test_payouts_conserve_pool(self, shape):
        """
        PROPERTY: Σ payouts + fee + dust = pooled, with dust >= 0.
        """
        _, stakes, winning_option, fee_percent = shape
        plan = compute_payouts(
            [w for w, _, _ in stakes],
            {w: o for w, o, _ in stakes},
            {w: Decimal(a) for w, _, a in stakes},
            winning_option,
            fee_percent,
        )
        note(f"plan={plan}")
        assert plan.total_paid + plan.fee + plan.dust == plan.pooled
        assert Decimal("0") <= plan.dust < max(1, len(plan.payouts))
        assert all(amount >= 0 for _, amount in plan.payouts)

    @given(pool())
    @settings(max_examples=200)
    def test_fee_bounded(self, shape):
        """
        PROPERTY: fee = floor(pooled * fee_percent / 100) <= 10% of the pool.
        """
        _, stakes, winning_option, fee_percent = shape
        plan = compute_payouts(
            [w for w, _, _ in stakes],
            {w: o for w, o, _ in stakes},
            {w: Decimal(a) for w, _, a in stakes},
            winning_option,
            fee_percent,
        )
        assert plan.fee * 100 <= plan.pooled * fee_percent
        assert (plan.fee + 1) * 100 > plan.pooled * fee_percent
        assert plan.fee * 10 <= plan.pooled

    @given(pool())
    @settings(max_examples=200)
    def test_only_winners_paid(self, shape):
        """
        PROPERTY: If anyone chose the winning option, only they are paid.
        Otherwise everyone is refunded in participant order.
        """
        _, stakes, winning_option, fee_percent = shape
        plan = compute_payouts(
            [w for w, _, _ in stakes],
            {w: o for w, o, _ in stakes},
            {w: Decimal(a) for w, _, a in stakes},
            winning_option,
            fee_percent,
        )
        winners = [w for w, o, _ in stakes if o == winning_option]
        if winners:
            assert [w for w, _ in plan.payouts] == winners
        else:
            assert [w for w, _ in plan.payouts] == [w for w, _, _ in stakes]

    @given(pool())
    @settings(max_examples=100)
    def test_zero_fee_winners_never_lose(self, shape):
        """
        PROPERTY: With no fee, every winner gets back at least their stake.
        """
        _, stakes, winning_option, _ = shape
        plan = compute_payouts(
            [w for w, _, _ in stakes],
            {w: o for w, o, _ in stakes},
            {w: Decimal(a) for w, _, a in stakes},
            winning_option,
            0,
        )
        stake = {w: Decimal(a) for w, _, a in stakes}
        for wallet, amount in plan.payouts:
            assert amount >= stake[wallet]


# =============================================================================
# ENGINE CONSERVATION
# =============================================================================

class TestEngineConservation:

    @given(pool())
    @settings(max_examples=50, deadline=None)
    def test_open_pool_matches_escrow(self, shape):
        """
        PROPERTY: pooled = Σ stake = escrow balance = Σ balance_on_option.
        """
        option_count, stakes, _, _ = shape
        engine, bet_id = _run(*shape)
        bet = engine.get_bet(bet_id)

        assert bet.pooled_balance == sum((Decimal(a) for _, _, a in stakes), Decimal("0"))
        assert bet.pooled_balance == sum(bet.stake.values(), Decimal("0"))
        assert engine.ledger.get_balance(bet.escrow_wallet, TOKEN) == bet.pooled_balance
        assert sum(
            (engine.balance_on_option(bet_id, o) for o in range(option_count)), Decimal("0")
        ) == bet.pooled_balance

    @given(pool())
    @settings(max_examples=50, deadline=None)
    def test_close_empties_escrow_and_conserves_supply(self, shape):
        """
        PROPERTY: After close the escrow is empty and total supply is unchanged.
        """
        _, _, winning_option, _ = shape
        engine, bet_id = _run(*shape)
        ledger = engine.ledger
        supply = ledger.total_supply(TOKEN)

        plan = engine.close_bet(bet_id, winning_option, "carol", now=10)
        bet = engine.get_bet(bet_id)

        assert ledger.get_balance(bet.escrow_wallet, TOKEN) == Decimal("0")
        assert ledger.verify_double_entry({TOKEN: supply})["valid"]
        assert sum(bet.payouts.values(), Decimal("0")) + bet.fee + bet.dust == bet.pooled_balance
        assert plan.pooled == bet.pooled_balance

    @given(st.lists(
        st.tuples(st.sampled_from(PLAYERS[:4]), st.integers(0, 1), st.integers(1, 400)),
        max_size=12,
    ))
    @settings(max_examples=50, deadline=None)
    def test_participants_unique(self, attempts):
        """
        PROPERTY: A wallet appears at most once; repeat stakes fail AlreadyPlaced
        and leave the pool untouched.
        """
        ledger = make_ledger(wallets=["admin", "carol"] + PLAYERS[:4])
        engine = make_engine(ledger)
        bet_id = engine.create_bet("carol", "uniqueness", ["A", "B"], 10)

        accepted = {}
        for wallet, option, amount in attempts:
            try:
                engine.place_bet(bet_id, wallet, option, amount)
            except AlreadyPlaced:
                assert wallet in accepted
                continue
            except BettingError:
                continue
            accepted[wallet] = Decimal(amount)

        participants = engine.get_participants(bet_id)
        assert len(participants) == len(set(participants))
        assert set(participants) == set(accepted)
        assert engine.get_pooled_balance(bet_id) == sum(accepted.values(), Decimal("0"))
        for wallet, amount in accepted.items():
            assert engine.get_stake(bet_id, wallet) == amount
