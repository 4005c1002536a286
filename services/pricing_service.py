"""
Motor de precios

resolve_price es una función pura: recibe el tipo de habitación y las reglas ya
cargadas y devuelve el precio por noche. PricingService solo carga las reglas
candidatas desde la base y delega.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from models.core import RoomType, RatePlan, SeasonalRate
from services.exceptions import InvalidDateRange, NotFound

CENTS = Decimal("0.01")


def quantize_money(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def count_nights(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def _covers_stay(plan, check_in: date, check_out: date, nights: int) -> bool:
    return (
        plan.active
        and plan.start_date <= check_in
        and plan.end_date >= check_out
        and plan.min_nights <= nights
    )


def _overlaps_stay(rate, check_in: date, check_out: date) -> bool:
    return rate.active and rate.start_date < check_out and rate.end_date > check_in


def resolve_price(
    room_type,
    rate_plans: Iterable,
    seasonal_rates: Iterable,
    check_in: date,
    check_out: date,
    nights: Optional[int] = None,
) -> Decimal:
    """
    Precio efectivo por noche.

    1. Precio base del tipo de habitación
    2. El plan de tarifa más barato que cubra toda la estadía lo reemplaza
    3. El multiplicador de temporada más alto que toque la estadía se aplica encima
    4. Redondeo a 2 decimales (ROUND_HALF_UP)
    """
    if nights is None:
        nights = count_nights(check_in, check_out)
    if nights <= 0:
        raise InvalidDateRange()

    price = Decimal(room_type.base_price)

    covering = [p for p in rate_plans if _covers_stay(p, check_in, check_out, nights)]
    if covering:
        best_plan = min(covering, key=lambda p: (Decimal(p.price), p.id or 0))
        price = Decimal(best_plan.price)

    seasonal = [s for s in seasonal_rates if _overlaps_stay(s, check_in, check_out)]
    if seasonal:
        best_season = max(seasonal, key=lambda s: (Decimal(s.multiplier), -(s.id or 0)))
        price = price * Decimal(best_season.multiplier)

    return quantize_money(price)


@dataclass(frozen=True)
class PriceQuote:
    room_type_id: int
    nights: int
    nightly_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return quantize_money(self.nightly_price * self.nights)


class PricingService:

    @staticmethod
    def load_rules(
        db: Session,
        tenant_id: int,
        room_type_ids: Sequence[int],
        check_in: date,
        check_out: date,
    ) -> Dict[int, Dict[str, List]]:
        """Reglas activas que tocan el rango, agrupadas por tipo de habitación"""
        rules: Dict[int, Dict[str, List]] = {rt_id: {"rate_plans": [], "seasonal_rates": []} for rt_id in room_type_ids}
        if not room_type_ids:
            return rules

        plans = db.query(RatePlan).filter(
            RatePlan.tenant_id == tenant_id,
            RatePlan.room_type_id.in_(room_type_ids),
            RatePlan.active.is_(True),
            RatePlan.start_date <= check_in,
            RatePlan.end_date >= check_out,
        ).all()
        for plan in plans:
            rules[plan.room_type_id]["rate_plans"].append(plan)

        seasons = db.query(SeasonalRate).filter(
            SeasonalRate.tenant_id == tenant_id,
            SeasonalRate.room_type_id.in_(room_type_ids),
            SeasonalRate.active.is_(True),
            SeasonalRate.start_date < check_out,
            SeasonalRate.end_date > check_in,
        ).all()
        for season in seasons:
            rules[season.room_type_id]["seasonal_rates"].append(season)

        return rules

    @staticmethod
    def quote(db: Session, tenant_id: int, room_type: RoomType, check_in: date, check_out: date) -> PriceQuote:
        nights = count_nights(check_in, check_out)
        if nights <= 0:
            raise InvalidDateRange()
        rules = PricingService.load_rules(db, tenant_id, [room_type.id], check_in, check_out)[room_type.id]
        nightly = resolve_price(
            room_type, rules["rate_plans"], rules["seasonal_rates"], check_in, check_out, nights
        )
        return PriceQuote(room_type_id=room_type.id, nights=nights, nightly_price=nightly)

    @staticmethod
    def get_effective_price(
        db: Session,
        tenant_id: int,
        room_type_id: int,
        check_in: date,
        check_out: date,
    ) -> Decimal:
        if count_nights(check_in, check_out) <= 0:
            raise InvalidDateRange()
        room_type = db.query(RoomType).filter(
            RoomType.id == room_type_id,
            RoomType.tenant_id == tenant_id,
        ).first()
        if not room_type:
            raise NotFound("Room type", room_type_id)
        return PricingService.quote(db, tenant_id, room_type, check_in, check_out).nightly_price
