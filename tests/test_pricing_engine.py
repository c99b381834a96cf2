"""
Tests for the Pricing Engine

These tests verify the core pricing logic including:
- Base price for nights without an override
- Ledger price_override wins for its night
- Tax percentage and per-stay fee
- Half-open stay range (checkout night not priced)
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from roomsync.config import Settings
from roomsync.exceptions import NotFoundError
from roomsync.services.pricing_engine import PricingEngine, money

from conftest import START, TEST_SECRET


@pytest.fixture
def taxed_settings():
    return Settings(secret_key=TEST_SECRET, tax_percent=15, fee_per_stay=10)


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert money("10.005") == Decimal("10.01")
        assert money(None) == Decimal("0.00")
        assert money(99) == Decimal("99.00")


class TestPricingEngine:
    def test_base_price_per_night(self, db, ledger, settings, make_room_type):
        room_type = make_room_type(base_price="100.00")
        engine = PricingEngine(db, ledger, settings)

        price = engine.calculate_stay_price(room_type.id, START, START + timedelta(days=3))

        assert price.subtotal == Decimal("300.00")
        assert price.taxes == Decimal("0.00")
        assert price.fees == Decimal("0.00")
        assert len(price.nightly) == 3
        assert START + timedelta(days=3) not in price.nightly

    def test_override_wins_for_its_night(self, db, ledger, settings, make_room_type):
        room_type = make_room_type(base_price="100.00")
        ledger.bulk_update(room_type.id, START + timedelta(days=1), START + timedelta(days=1),
                           {"price_override": "150.00"})
        engine = PricingEngine(db, ledger, settings)

        price = engine.calculate_stay_price(room_type.id, START, START + timedelta(days=2))

        assert price.nightly == {START: Decimal("100.00"), START + timedelta(days=1): Decimal("150.00")}
        assert price.subtotal == Decimal("250.00")

    def test_taxes_and_fees(self, db, ledger, taxed_settings, make_room_type):
        """15% tax on 200 plus a 10 fee per stay"""
        room_type = make_room_type(base_price="100.00")
        engine = PricingEngine(db, ledger, taxed_settings)

        price = engine.calculate_stay_price(room_type.id, START, START + timedelta(days=2))

        assert price.subtotal == Decimal("200.00")
        assert price.taxes == Decimal("30.00")
        assert price.fees == Decimal("10.00")
        assert price.total == Decimal("240.00")

    def test_empty_stay_has_no_fee(self, db, ledger, taxed_settings, make_room_type):
        room_type = make_room_type()
        price = PricingEngine(db, ledger, taxed_settings).calculate_stay_price(room_type.id, START, START)
        assert price.total == Decimal("0.00")

    def test_unknown_room_type(self, db, ledger, settings):
        with pytest.raises(NotFoundError):
            PricingEngine(db, ledger, settings).calculate_stay_price("missing", START, START + timedelta(days=1))
