"""Tests for cpswap/core/pool.py: deposit, withdraw and swap end-to-end against in-memory assets."""

from __future__ import annotations

import threading

import pytest

from cpswap.core.cpmm import PRICE_SCALE
from cpswap.core.pool import Pool
from cpswap.core.types import Event, PoolStatus, SwapResult
from cpswap.errors import (
    Expired,
    InsufficientLiquidity,
    InsufficientLiquidityMinted,
    InsufficientShares,
    InvalidAmount,
    InvalidRecipient,
    InvalidSwapInput,
    InvalidTokenPath,
    InvalidTokens,
    NoLiquidity,
    PoolInvariantError,
    ReentrantCall,
    RollbackIncomplete,
    SlippageExceeded,
    TransferFailed,
)
from cpswap.integration.assets import LedgerAsset

A = "0x" + "11" * 32
B = "0x" + "22" * 32
NOW = 1_000
DEADLINE = NOW + 60


def _make_pool(asset_a: LedgerAsset | None = None, asset_b: LedgerAsset | None = None) -> tuple[Pool, LedgerAsset, LedgerAsset]:
    token_a = asset_a or LedgerAsset(A)
    token_b = asset_b or LedgerAsset(B)
    pool = Pool(token_a, token_b, clock=lambda: NOW)
    for account in ("alice", "bob"):
        token_a.mint(account, 10_000)
        token_b.mint(account, 10_000)
    return pool, token_a, token_b


def _seeded_pool(amount_a: int = 1000, amount_b: int = 2000) -> tuple[Pool, LedgerAsset, LedgerAsset]:
    pool, token_a, token_b = _make_pool()
    pool.deposit("alice", amount_a, amount_b, 0, 0, "alice", DEADLINE)
    return pool, token_a, token_b


def _assert_solvent(pool: Pool, token_a: LedgerAsset, token_b: LedgerAsset) -> None:
    assert pool.check_invariants() == []
    assert (token_a.balance_of(pool.address), token_b.balance_of(pool.address)) == pool.get_reserves()
    assert sum(pool.share_balances().values()) == pool.total_shares


class _FlakyAsset(LedgerAsset):
    """Ledger asset whose pushes can be switched off or made to raise."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(asset_id)
        self.fail_transfer = False
        self.raise_on_transfer = False

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if self.raise_on_transfer:
            raise RuntimeError("ledger offline")
        if self.fail_transfer:
            return False
        return super().transfer(sender, recipient, amount)


class _ReentrantAsset(LedgerAsset):
    """Ledger asset that calls back into the pool from inside transfer_from."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(asset_id)
        self.pool: Pool | None = None
        self.reentry_errors: list[Exception] = []

    def transfer_from(self, owner: str, recipient: str, amount: int) -> bool:
        if self.pool is not None and self.pool.total_shares > 0:
            try:
                self.pool.swap(owner, 10, 0, A, B, owner, DEADLINE)
            except Exception as exc:
                self.reentry_errors.append(exc)
        return super().transfer_from(owner, recipient, amount)


class _ApprovalAsset(LedgerAsset):
    """Ledger asset that only lets the pool pull from accounts that approved it."""

    def __init__(self, asset_id: str, approved: set[str]) -> None:
        super().__init__(asset_id)
        self.approved = approved

    def transfer_from(self, owner: str, recipient: str, amount: int) -> bool:
        if owner not in self.approved:
            return False
        return super().transfer_from(owner, recipient, amount)


# ---------------------------------------------------------------------------
# construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_new_pool_is_empty(self):
        pool, _, _ = _make_pool()
        assert pool.status == PoolStatus.EMPTY
        assert pool.get_reserves() == (0, 0)
        assert pool.total_shares == 0
        assert (pool.asset_a, pool.asset_b) == (A, B)

    def test_identical_assets_rejected(self):
        with pytest.raises(InvalidTokens):
            Pool(LedgerAsset(A), LedgerAsset(A))


# ---------------------------------------------------------------------------
# deposit
# ---------------------------------------------------------------------------


class TestDeposit:
    def test_first_deposit_mints_sqrt_of_product(self):
        pool, token_a, token_b = _make_pool()
        res = pool.deposit("alice", 400, 900, 0, 0, "alice", DEADLINE)
        assert res.shares_minted == 600
        assert (res.amount_a, res.amount_b) == (400, 900)
        assert pool.get_reserves() == (400, 900)
        assert pool.share_balance("alice") == 600
        assert pool.status == PoolStatus.SEEDED
        assert token_a.balance_of("alice") == 9_600
        assert token_b.balance_of("alice") == 9_100
        _assert_solvent(pool, token_a, token_b)

    def test_shares_go_to_recipient(self):
        pool, _, _ = _make_pool()
        pool.deposit("alice", 400, 900, 0, 0, "carol", DEADLINE)
        assert pool.share_balance("alice") == 0
        assert pool.share_balance("carol") == 600

    def test_second_deposit_is_ratio_preserving(self):
        pool, token_a, token_b = _seeded_pool()
        res = pool.deposit("bob", 500, 2000, 0, 0, "bob", DEADLINE)
        assert (res.amount_a, res.amount_b) == (500, 1000)
        assert res.shares_minted == 707
        assert token_b.balance_of("bob") == 9_000

        res = pool.deposit("bob", 1000, 500, 0, 0, "bob", DEADLINE)
        assert (res.amount_a, res.amount_b) == (250, 500)
        _assert_solvent(pool, token_a, token_b)

    def test_slippage_on_a_leaves_state_unchanged(self):
        pool, token_a, token_b = _seeded_pool()
        before = (pool.get_reserves(), pool.share_balances(), token_a.balance_of("bob"))
        with pytest.raises(SlippageExceeded):
            pool.deposit("bob", 1000, 500, 300, 0, "bob", DEADLINE)
        assert (pool.get_reserves(), pool.share_balances(), token_a.balance_of("bob")) == before

    def test_slippage_on_b(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(SlippageExceeded):
            pool.deposit("bob", 500, 2000, 0, 1001, "bob", DEADLINE)

    def test_zero_first_deposit_rejected(self):
        pool, _, _ = _make_pool()
        with pytest.raises(InsufficientLiquidityMinted):
            pool.deposit("alice", 0, 900, 0, 0, "alice", DEADLINE)
        assert pool.status == PoolStatus.EMPTY

    def test_dust_deposit_rejected_before_any_transfer(self):
        pool, token_a, token_b = _seeded_pool()
        with pytest.raises(InsufficientLiquidityMinted):
            pool.deposit("bob", 1, 1, 0, 0, "bob", DEADLINE)
        assert token_a.balance_of("bob") == 10_000
        assert token_b.balance_of("bob") == 10_000

    def test_negative_amount_rejected(self):
        pool, _, _ = _make_pool()
        with pytest.raises(InvalidAmount):
            pool.deposit("alice", -1, 900, 0, 0, "alice", DEADLINE)

    def test_second_pull_failure_refunds_first(self):
        pool, token_a, token_b = _make_pool()
        token_b.mint("dave", 10)
        token_a.mint("dave", 1000)
        with pytest.raises(TransferFailed):
            pool.deposit("dave", 1000, 2000, 0, 0, "dave", DEADLINE)
        assert token_a.balance_of("dave") == 1000
        assert token_b.balance_of("dave") == 10
        assert pool.get_reserves() == (0, 0)
        assert pool.total_shares == 0
        assert pool.events == ()
        _assert_solvent(pool, token_a, token_b)


# ---------------------------------------------------------------------------
# withdraw
# ---------------------------------------------------------------------------


class TestWithdraw:
    def test_full_withdraw_drains_pool(self):
        pool, token_a, token_b = _seeded_pool()
        res = pool.withdraw("alice", 1414, 0, 0, "alice", DEADLINE)
        assert (res.amount_a, res.amount_b, res.shares_burned) == (1000, 2000, 1414)
        assert pool.get_reserves() == (0, 0)
        assert pool.total_shares == 0
        assert pool.status == PoolStatus.EMPTY
        assert token_a.balance_of("alice") == 10_000
        assert token_b.balance_of("alice") == 10_000
        _assert_solvent(pool, token_a, token_b)

    def test_pool_can_be_reseeded_after_draining(self):
        pool, _, _ = _seeded_pool()
        pool.withdraw("alice", 1414, 0, 0, "alice", DEADLINE)
        res = pool.deposit("bob", 400, 900, 0, 0, "bob", DEADLINE)
        assert res.shares_minted == 600

    def test_partial_withdraw_rounds_down(self):
        pool, token_a, token_b = _seeded_pool()
        res = pool.withdraw("alice", 1, 0, 0, "bob", DEADLINE)
        assert (res.amount_a, res.amount_b) == (0, 1)
        assert token_b.balance_of("bob") == 10_001
        assert pool.get_reserves() == (1000, 1999)
        _assert_solvent(pool, token_a, token_b)

    def test_zero_shares_rejected(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(InvalidAmount):
            pool.withdraw("alice", 0, 0, 0, "alice", DEADLINE)

    def test_more_than_balance_rejected(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(InsufficientShares):
            pool.withdraw("bob", 1, 0, 0, "bob", DEADLINE)
        with pytest.raises(InsufficientShares):
            pool.withdraw("alice", 1415, 0, 0, "alice", DEADLINE)

    def test_slippage_leaves_shares(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(SlippageExceeded):
            pool.withdraw("alice", 707, 501, 0, "alice", DEADLINE)
        assert pool.share_balance("alice") == 1414

    def test_failed_push_restores_everything(self):
        flaky_b = _FlakyAsset(B)
        pool, token_a, token_b = _make_pool(LedgerAsset(A), flaky_b)
        pool.deposit("alice", 1000, 2000, 0, 0, "alice", DEADLINE)

        flaky_b.fail_transfer = True
        with pytest.raises(TransferFailed):
            pool.withdraw("alice", 707, 0, 0, "alice", DEADLINE)

        assert pool.share_balance("alice") == 1414
        assert pool.get_reserves() == (1000, 2000)
        assert token_a.balance_of("alice") == 9_000
        _assert_solvent(pool, token_a, token_b)

    def test_raising_asset_becomes_transfer_failed(self):
        flaky_b = _FlakyAsset(B)
        pool, _, _ = _make_pool(LedgerAsset(A), flaky_b)
        pool.deposit("alice", 1000, 2000, 0, 0, "alice", DEADLINE)

        flaky_b.raise_on_transfer = True
        with pytest.raises(TransferFailed) as excinfo:
            pool.withdraw("alice", 707, 0, 0, "alice", DEADLINE)
        assert isinstance(excinfo.value.__cause__, RuntimeError)


# ---------------------------------------------------------------------------
# rollback when a compensating transfer fails
# ---------------------------------------------------------------------------


class TestRollback:
    def test_unrecoverable_payout_stays_out_of_reserves(self):
        approving_a = _ApprovalAsset(A, approved={"alice"})
        flaky_b = _FlakyAsset(B)
        pool, token_a, token_b = _make_pool(approving_a, flaky_b)
        pool.deposit("alice", 1000, 2000, 0, 0, "alice", DEADLINE)

        flaky_b.fail_transfer = True
        with pytest.raises(RollbackIncomplete) as excinfo:
            pool.withdraw("alice", 707, 0, 0, "carol", DEADLINE)

        assert isinstance(excinfo.value, TransferFailed)
        assert len(excinfo.value.unrecovered) == 1
        assert token_a.balance_of("carol") == 500
        assert pool.get_reserves() == (500, 2000)
        assert (token_a.balance_of(pool.address), token_b.balance_of(pool.address)) == pool.get_reserves()
        assert pool.share_balance("alice") == 1414
        assert pool.check_invariants() == []
        assert len(pool.events) == 1

    def test_approved_recipient_payout_is_clawed_back(self):
        approving_a = _ApprovalAsset(A, approved={"alice", "bob"})
        flaky_b = _FlakyAsset(B)
        pool, token_a, token_b = _make_pool(approving_a, flaky_b)
        pool.deposit("alice", 1000, 2000, 0, 0, "alice", DEADLINE)

        flaky_b.fail_transfer = True
        with pytest.raises(TransferFailed) as excinfo:
            pool.withdraw("alice", 707, 0, 0, "bob", DEADLINE)

        assert not isinstance(excinfo.value, RollbackIncomplete)
        assert token_a.balance_of("bob") == 10_000
        assert pool.get_reserves() == (1000, 2000)
        _assert_solvent(pool, token_a, token_b)

    def test_unrecoverable_pull_leaves_surplus_outside_reserves(self):
        flaky_a = _FlakyAsset(A)
        pool, token_a, token_b = _make_pool(flaky_a, LedgerAsset(B))
        token_a.mint("dave", 1000)
        token_b.mint("dave", 10)

        flaky_a.fail_transfer = True
        with pytest.raises(RollbackIncomplete):
            pool.deposit("dave", 1000, 2000, 0, 0, "dave", DEADLINE)

        assert pool.get_reserves() == (0, 0)
        assert pool.total_shares == 0
        assert token_a.balance_of(pool.address) == 1000
        assert token_a.balance_of("dave") == 0
        assert pool.check_invariants() == []


# ---------------------------------------------------------------------------
# swap
# ---------------------------------------------------------------------------


class TestSwap:
    def test_a_to_b(self):
        pool, token_a, token_b = _seeded_pool()
        res = pool.swap("bob", 100, 181, A, B, "bob", DEADLINE)
        assert res == SwapResult(amount_in=100, amount_out=181)
        assert pool.get_reserves() == (1100, 1819)
        assert token_a.balance_of("bob") == 9_900
        assert token_b.balance_of("bob") == 10_181
        _assert_solvent(pool, token_a, token_b)

    def test_b_to_a(self):
        pool, token_a, token_b = _seeded_pool()
        res = pool.swap("bob", 200, 0, B, A, "carol", DEADLINE)
        assert res.amount_out == 90
        assert pool.get_reserves() == (910, 2200)
        assert token_a.balance_of("carol") == 90
        _assert_solvent(pool, token_a, token_b)

    def test_product_never_decreases(self):
        pool, _, _ = _seeded_pool()
        k0 = pool.get_reserves()[0] * pool.get_reserves()[1]
        pool.swap("bob", 333, 0, A, B, "bob", DEADLINE)
        k1 = pool.get_reserves()[0] * pool.get_reserves()[1]
        pool.swap("bob", 77, 0, B, A, "bob", DEADLINE)
        k2 = pool.get_reserves()[0] * pool.get_reserves()[1]
        assert k0 <= k1 <= k2

    def test_swap_that_shrinks_the_product_is_rolled_back(self, monkeypatch):
        pool, token_a, token_b = _seeded_pool()
        monkeypatch.setattr("cpswap.core.pool.quote", lambda amount_in, reserve_in, reserve_out: reserve_out // 2)
        with pytest.raises(PoolInvariantError) as excinfo:
            pool.swap("bob", 1, 0, A, B, "bob", DEADLINE)
        assert "constant_product_non_decreasing" in excinfo.value.violations
        assert pool.get_reserves() == (1000, 2000)
        assert (token_a.balance_of("bob"), token_b.balance_of("bob")) == (10_000, 10_000)
        _assert_solvent(pool, token_a, token_b)

    def test_slippage_leaves_balances(self):
        pool, token_a, token_b = _seeded_pool()
        with pytest.raises(SlippageExceeded):
            pool.swap("bob", 100, 182, A, B, "bob", DEADLINE)
        assert token_a.balance_of("bob") == 10_000
        assert token_b.balance_of("bob") == 10_000
        assert pool.get_reserves() == (1000, 2000)

    def test_invalid_paths(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(InvalidTokenPath):
            pool.swap("bob", 100, 0, A, A, "bob", DEADLINE)
        with pytest.raises(InvalidTokenPath):
            pool.swap("bob", 100, 0, A, "0xdead", "bob", DEADLINE)

    def test_zero_input_rejected_at_entry(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(InvalidSwapInput):
            pool.swap("bob", 0, 0, A, B, "bob", DEADLINE)

    def test_swap_against_empty_pool(self):
        pool, token_a, _ = _make_pool()
        with pytest.raises(InsufficientLiquidity):
            pool.swap("bob", 100, 0, A, B, "bob", DEADLINE)
        assert token_a.balance_of("bob") == 10_000

    def test_reentrant_call_is_refused(self):
        reentrant_a = _ReentrantAsset(A)
        pool, token_a, token_b = _make_pool(reentrant_a, LedgerAsset(B))
        pool.deposit("alice", 1000, 2000, 0, 0, "alice", DEADLINE)
        reentrant_a.pool = pool

        res = pool.swap("bob", 100, 0, A, B, "bob", DEADLINE)
        assert res.amount_out == 181
        assert len(reentrant_a.reentry_errors) == 1
        assert isinstance(reentrant_a.reentry_errors[0], ReentrantCall)
        _assert_solvent(pool, token_a, token_b)

    def test_concurrent_swaps_are_serialized(self):
        pool, token_a, token_b = _make_pool()
        token_a.mint("alice", 100_000)
        token_b.mint("alice", 100_000)
        pool.deposit("alice", 100_000, 100_000, 0, 0, "alice", DEADLINE)
        traders = [f"trader{i}" for i in range(8)]
        for t in traders:
            token_a.mint(t, 1_000)
            token_b.mint(t, 1_000)

        def run(trader: str) -> None:
            for i in range(20):
                if i % 2:
                    pool.swap(trader, 10, 0, A, B, trader, DEADLINE)
                else:
                    pool.swap(trader, 10, 0, B, A, trader, DEADLINE)

        threads = [threading.Thread(target=run, args=(t,)) for t in traders]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert len(pool.events) == 1 + len(traders) * 20
        _assert_solvent(pool, token_a, token_b)


# ---------------------------------------------------------------------------
# guards shared by all operations
# ---------------------------------------------------------------------------


class TestEntryGuards:
    def test_expired_deadline(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(Expired):
            pool.swap("bob", 100, 0, A, B, "bob", NOW - 1)
        with pytest.raises(Expired):
            pool.deposit("bob", 100, 200, 0, 0, "bob", NOW - 1)
        with pytest.raises(Expired):
            pool.withdraw("alice", 1, 0, 0, "alice", NOW - 1)

    def test_deadline_equal_to_now_is_live(self):
        pool, _, _ = _seeded_pool()
        assert pool.swap("bob", 100, 0, A, B, "bob", NOW).amount_out == 181

    def test_missing_recipient(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(InvalidRecipient):
            pool.swap("bob", 100, 0, A, B, "", DEADLINE)
        with pytest.raises(InvalidRecipient):
            pool.deposit("bob", 100, 200, 0, 0, None, DEADLINE)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# price and events
# ---------------------------------------------------------------------------


class TestPriceAndEvents:
    def test_price_both_directions(self):
        pool, _, _ = _seeded_pool()
        assert pool.get_price(A, B) == 2 * PRICE_SCALE
        assert pool.get_price(B, A) == PRICE_SCALE // 2

    def test_price_on_empty_pool(self):
        pool, _, _ = _make_pool()
        with pytest.raises(NoLiquidity):
            pool.get_price(A, B)

    def test_price_with_foreign_asset(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(InvalidTokens):
            pool.get_price(A, "0xdead")
        with pytest.raises(InvalidTokens):
            pool.get_price(A, A)

    def test_preview_withdraw_matches_withdraw(self):
        pool, _, _ = _seeded_pool()
        pool.swap("bob", 100, 0, A, B, "bob", DEADLINE)
        preview = pool.preview_withdraw(500)
        res = pool.withdraw("alice", 500, 0, 0, "alice", DEADLINE)
        assert preview == (res.amount_a, res.amount_b)

    def test_events_are_recorded_in_order(self):
        pool, _, _ = _seeded_pool()
        pool.swap("bob", 100, 0, A, B, "bob", DEADLINE)
        pool.withdraw("alice", 1414, 0, 0, "alice", DEADLINE)

        kinds = [e.event for e in pool.events]
        assert kinds == [Event.LIQUIDITY_ADDED, Event.SWAP_EXECUTED, Event.LIQUIDITY_REMOVED]

        added, swapped, removed = (e.to_dict() for e in pool.events)
        assert added == {
            "event": "LiquidityAdded",
            "provider": "alice",
            "amount_a": 1000,
            "amount_b": 2000,
            "shares_minted": 1414,
        }
        assert swapped == {
            "event": "SwapExecuted",
            "trader": "bob",
            "amount_in": 100,
            "amount_out": 181,
            "input_asset": A,
            "output_asset": B,
        }
        assert removed["shares_burned"] == 1414
        assert (removed["amount_a"], removed["amount_b"]) == (1100, 1819)

    def test_failed_operation_emits_nothing(self):
        pool, _, _ = _seeded_pool()
        with pytest.raises(SlippageExceeded):
            pool.swap("bob", 100, 10_000, A, B, "bob", DEADLINE)
        assert len(pool.events) == 1
