"""
Tests del motor de precios (resolve_price es pura: se prueba con objetos simples)
"""
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from models.core import RatePlan, SeasonalRate
from services.exceptions import InvalidDateRange, NotFound
from services.pricing_service import PricingService, count_nights, quantize_money, resolve_price


def _room_type(price="100.00"):
    return SimpleNamespace(id=1, base_price=Decimal(price))


def _plan(id, price, start, end, min_nights=1, active=True):
    return SimpleNamespace(id=id, price=Decimal(price), start_date=start, end_date=end, min_nights=min_nights, active=active)


def _season(id, multiplier, start, end, active=True):
    return SimpleNamespace(id=id, multiplier=Decimal(multiplier), start_date=start, end_date=end, active=active)


CI = date(2026, 1, 10)
CO = date(2026, 1, 13)


class TestHelpers:

    def test_quantize_money_rounds_half_up(self):
        assert quantize_money(Decimal("10.005")) == Decimal("10.01")
        assert quantize_money(Decimal("10.004")) == Decimal("10.00")
        assert quantize_money(3) == Decimal("3.00")

    def test_count_nights(self):
        assert count_nights(CI, CO) == 3
        assert count_nights(CI, CI) == 0


class TestResolvePrice:

    def test_base_price_without_rules(self):
        assert resolve_price(_room_type(), [], [], CI, CO) == Decimal("100.00")

    def test_cheapest_covering_plan_replaces_base(self):
        plans = [
            _plan(1, "90.00", date(2026, 1, 1), date(2026, 1, 31)),
            _plan(2, "80.00", date(2026, 1, 5), date(2026, 1, 20)),
        ]
        assert resolve_price(_room_type(), plans, [], CI, CO) == Decimal("80.00")

    def test_plan_not_covering_whole_stay_is_ignored(self):
        plans = [_plan(1, "50.00", date(2026, 1, 1), date(2026, 1, 12))]
        assert resolve_price(_room_type(), plans, [], CI, CO) == Decimal("100.00")

    def test_plan_min_nights_is_respected(self):
        plans = [_plan(1, "60.00", date(2026, 1, 1), date(2026, 1, 31), min_nights=4)]
        assert resolve_price(_room_type(), plans, [], CI, CO) == Decimal("100.00")

    def test_inactive_plan_is_ignored(self):
        plans = [_plan(1, "60.00", date(2026, 1, 1), date(2026, 1, 31), active=False)]
        assert resolve_price(_room_type(), plans, [], CI, CO) == Decimal("100.00")

    def test_highest_overlapping_multiplier_applies(self):
        seasons = [
            _season(1, "1.200", date(2026, 1, 12), date(2026, 1, 20)),
            _season(2, "1.500", date(2026, 1, 1), date(2026, 1, 11)),
            _season(3, "2.000", date(2026, 1, 13), date(2026, 1, 20)),  # empieza el día de salida
        ]
        assert resolve_price(_room_type(), [], seasons, CI, CO) == Decimal("150.00")

    def test_multiplier_applies_over_plan_price(self):
        plans = [_plan(1, "80.00", date(2026, 1, 1), date(2026, 1, 31))]
        seasons = [_season(1, "1.125", date(2026, 1, 1), date(2026, 2, 1))]
        assert resolve_price(_room_type(), plans, seasons, CI, CO) == Decimal("90.00")

    def test_result_is_rounded_to_cents(self):
        seasons = [_season(1, "1.333", date(2026, 1, 1), date(2026, 2, 1))]
        assert resolve_price(_room_type("99.99"), [], seasons, CI, CO) == Decimal("133.29")

    def test_zero_nights_is_rejected(self):
        with pytest.raises(InvalidDateRange):
            resolve_price(_room_type(), [], [], CI, CI)


class TestPricingService:

    def test_effective_price_loads_rules_from_db(self, db, hotel):
        standard = hotel["standard"]
        db.add_all([
            RatePlan(tenant_id=hotel["tenant_id"], room_type_id=standard.id, name="Promo",
                     price=Decimal("85.00"), start_date=date(2026, 1, 1), end_date=date(2026, 2, 1)),
            SeasonalRate(tenant_id=hotel["tenant_id"], room_type_id=standard.id, name="Alta",
                         multiplier=Decimal("1.100"), start_date=date(2026, 1, 12), end_date=date(2026, 1, 15)),
        ])
        db.commit()

        price = PricingService.get_effective_price(db, hotel["tenant_id"], standard.id, CI, CO)
        assert price == Decimal("93.50")

    def test_rules_of_other_room_type_do_not_apply(self, db, hotel):
        db.add(RatePlan(tenant_id=hotel["tenant_id"], room_type_id=hotel["suite"].id, name="Suite promo",
                        price=Decimal("10.00"), start_date=date(2026, 1, 1), end_date=date(2026, 2, 1)))
        db.commit()
        price = PricingService.get_effective_price(db, hotel["tenant_id"], hotel["standard"].id, CI, CO)
        assert price == Decimal("100.00")

    def test_unknown_room_type(self, db, hotel):
        with pytest.raises(NotFound):
            PricingService.get_effective_price(db, hotel["tenant_id"], 9999, CI, CO)

    def test_quote_total(self, db, hotel):
        quote = PricingService.quote(db, hotel["tenant_id"], hotel["suite"], CI, CO)
        assert quote.nights == 3
        assert quote.total_price == Decimal("750.00")
