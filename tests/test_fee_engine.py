"""
Test suite for the fee-transfer engine

CRITICAL: validates the fee split arithmetic and that the sender always
loses exactly the gross amount.
"""

import pytest

from token_ledger.addresses import ZERO_ADDRESS
from token_ledger.base_ledger import BaseLedger
from token_ledger.errors import InsufficientBalance, InvalidAmount, ZeroAddress
from token_ledger.fee_engine import (
    BURN_RATE, TRANSFER_FEE_RATE, FeeSplit, FeeTransferEngine, compute_fee_split
)

from conftest import ALICE, BOB, FEE_RECIPIENT


@pytest.fixture
def base(storage):
    ledger = BaseLedger(storage)
    ledger.mint(ALICE, 1_000_000)
    return ledger


@pytest.fixture
def engine(base):
    return FeeTransferEngine(base, fee_recipient=lambda: FEE_RECIPIENT)


class TestComputeFeeSplit:

    def test_rates(self):
        assert TRANSFER_FEE_RATE == 10
        assert BURN_RATE == 50

    def test_thousand(self):
        assert compute_fee_split(1000) == FeeSplit(amount=1000, fee=100, burn=50,
                                                   fee_recipient_share=50, net=900)

    @pytest.mark.parametrize("amount,fee,burn,share,net", [
        (0, 0, 0, 0, 0),
        (9, 0, 0, 0, 9),
        (10, 1, 0, 1, 9),
        (19, 1, 0, 1, 18),
        (20, 2, 1, 1, 18),
        (33, 3, 1, 2, 30),
        (999, 99, 49, 50, 900),
    ])
    def test_floor_division(self, amount, fee, burn, share, net):
        split = compute_fee_split(amount)
        assert (split.fee, split.burn, split.fee_recipient_share, split.net) == (fee, burn, share, net)

    def test_parts_sum_to_amount(self):
        for amount in (1, 7, 101, 12345, 10 ** 24 + 3):
            split = compute_fee_split(amount)
            assert split.net + split.fee_recipient_share + split.burn == amount
            assert split.fee == amount * 10 // 100
            assert split.burn == split.fee * 50 // 100

    def test_negative_amount(self):
        with pytest.raises(InvalidAmount):
            compute_fee_split(-1)

    def test_to_dict_uses_strings(self):
        assert compute_fee_split(1000).to_dict() == {
            'amount': '1000', 'fee': '100', 'burn': '50',
            'fee_recipient_share': '50', 'net': '900'
        }


class TestFeeTransfer:

    def test_transfer_applies_split(self, engine, base):
        split = engine.transfer(ALICE, BOB, 1000)

        assert split.net == 900
        assert base.balance_of(ALICE) == 1_000_000 - 1000
        assert base.balance_of(BOB) == 900
        assert base.balance_of(FEE_RECIPIENT) == 50
        assert base.total_burned() == 50
        assert base.total_supply() == 1_000_000 - 50

    def test_conservation(self, engine, base):
        before_sender = base.balance_of(ALICE)
        engine.transfer(ALICE, BOB, 12_345)

        assert before_sender - base.balance_of(ALICE) == 12_345
        received = base.balance_of(BOB) + base.balance_of(FEE_RECIPIENT) + base.total_burned()
        assert received == 12_345

    def test_small_amount_has_no_fee(self, engine, base):
        engine.transfer(ALICE, BOB, 9)

        assert base.balance_of(BOB) == 9
        assert base.balance_of(FEE_RECIPIENT) == 0
        assert base.total_burned() == 0

    def test_zero_recipient(self, engine, base):
        with pytest.raises(ZeroAddress):
            engine.transfer(ALICE, ZERO_ADDRESS, 100)
        assert base.balance_of(ALICE) == 1_000_000

    def test_zero_sender(self, engine):
        with pytest.raises(ZeroAddress):
            engine.transfer(ZERO_ADDRESS, BOB, 100)

    def test_insufficient_balance_checked_before_burn(self, engine, base):
        with pytest.raises(InsufficientBalance):
            engine.transfer(BOB, ALICE, 1000)

        assert base.total_burned() == 0
        assert base.total_supply() == 1_000_000

    def test_fee_recipient_read_at_transfer_time(self, base):
        recipients = [FEE_RECIPIENT]
        engine = FeeTransferEngine(base, fee_recipient=lambda: recipients[-1])

        engine.transfer(ALICE, BOB, 1000)
        recipients.append(ALICE)
        engine.transfer(BOB, ALICE, 900)

        assert base.balance_of(FEE_RECIPIENT) == 50
        # ALICE receives net 810 plus the 45 share
        assert base.balance_of(ALICE) == 1_000_000 - 1000 + 810 + 45
