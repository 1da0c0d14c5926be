"""Tests for reward event validation and amount resolution"""

from decimal import Decimal

import pytest

from conftest import FIXED_TIME, RECIPIENT, make_event
from event_validator import EventValidator
from models import AmountSource, RawEvent, Rejected, TokenMeta, ValidatedReward


class TestValidate:
    def test_valid_reward_uses_event_value(self, validator, usdc):
        result = validator.validate(make_event(103, 500000), usdc)
        assert isinstance(result, ValidatedReward)
        assert result.amount == Decimal("0.5")
        assert result.recipient == RECIPIENT
        assert result.symbol == "USDC"
        assert result.amount_source is AmountSource.FALLBACK
        assert result.timestamp == FIXED_TIME

    def test_zero_value_rejected(self, validator, usdc):
        result = validator.validate(make_event(103, 0), usdc)
        assert isinstance(result, Rejected)
        assert "zero" in result.reason

    def test_dust_below_minimum_rejected(self, usdc):
        validator = EventValidator(min_amount=Decimal("0.01"), max_amount=Decimal("1000"))
        result = validator.validate(make_event(103, 5000), usdc)
        assert isinstance(result, Rejected)
        assert "below minimum" in result.reason

    def test_amount_above_ceiling_rejected(self, validator, usdc):
        result = validator.validate(make_event(103, 1_500_000 * 10 ** 6), usdc)
        assert isinstance(result, Rejected)
        assert "ceiling" in result.reason

    def test_amount_equal_to_bounds_accepted(self, usdc):
        validator = EventValidator(min_amount=Decimal("1"), max_amount=Decimal("10"))
        assert isinstance(validator.validate(make_event(1, 1_000_000), usdc), ValidatedReward)
        assert isinstance(validator.validate(make_event(1, 10_000_000), usdc), ValidatedReward)

    def test_missing_arguments_rejected(self, validator, usdc):
        event = RawEvent(tx_hash="0xaa", log_index=0, contract_address="0x0", args={"to": RECIPIENT}, block_number=1)
        assert isinstance(validator.validate(event, usdc), Rejected)

    def test_decimals_change_the_amount(self, validator):
        weth = TokenMeta(symbol="WETH", decimals=18)
        result = validator.validate(make_event(103, 5 * 10 ** 17), weth)
        assert result.amount == Decimal("0.5")

    def test_rejection_key_follows_key_mode(self, usdc):
        validator = EventValidator(min_amount=Decimal("0"), max_amount=Decimal("1"), key_mode="tx")
        result = validator.validate(make_event(103, 0, tx_hash="0xABC"), usdc)
        assert result.event_key == "0xabc"

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            EventValidator(min_amount=Decimal("5"), max_amount=Decimal("5"))


class TestResolveAmount:
    def test_authoritative_reading_wins(self, usdc):
        validator = EventValidator(
            min_amount=Decimal("0"), max_amount=Decimal("1000"), amount_reader=lambda addr: 2_000_000,
        )
        result = validator.validate(make_event(103, 500000), usdc)
        assert result.amount == Decimal("2")
        assert result.amount_source is AmountSource.AUTHORITATIVE

    def test_failed_reading_falls_back(self):
        def broken(addr):
            raise ConnectionError("execution reverted")

        validator = EventValidator(min_amount=Decimal("0"), max_amount=Decimal("1000"), amount_reader=broken)
        resolution = validator.resolve_amount(RECIPIENT, 500000)
        assert resolution.raw_amount == 500000
        assert resolution.source is AmountSource.FALLBACK

    def test_zero_reading_falls_back(self):
        validator = EventValidator(
            min_amount=Decimal("0"), max_amount=Decimal("1000"), amount_reader=lambda addr: 0,
        )
        resolution = validator.resolve_amount(RECIPIENT, 500000)
        assert resolution.raw_amount == 500000
        assert resolution.source is AmountSource.FALLBACK
