import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import NamedTuple, Optional, Union

from config.settings import settings
from utils.logger import app_logger

Number = Union[int, float, str, Decimal]


class PriceBreakdown(NamedTuple):
    daily_price: Decimal
    days: int
    app_fee: Decimal
    total: Decimal


def rental_days(start: datetime, end: datetime) -> int:
    """Whole days billed for a range: any started day counts, minimum one."""
    days = math.ceil(abs(end - start) / timedelta(days=1))
    return days if days > 0 else 1


def calculate_total_price(daily_price: Number, days: int, app_fee: Optional[Number] = None) -> Decimal:
    fee = Decimal(str(settings.APP_FEE if app_fee is None else app_fee))
    return Decimal(str(daily_price)) * days + fee


def get_price_breakdown(
        daily_price: Number,
        start: datetime,
        end: datetime,
        app_fee: Optional[Number] = None,
) -> PriceBreakdown:
    """
    The single pricing formula: price per day x billed days + app fee.

    Both the booking confirmation and the rental detail view call this, so
    the two can never disagree on a total.
    """
    days = rental_days(start, end)
    fee = Decimal(str(settings.APP_FEE if app_fee is None else app_fee))
    total = calculate_total_price(daily_price, days, fee)
    app_logger.debug(f"Price: {daily_price} x {days} day(s) + {fee} fee = {total}")
    return PriceBreakdown(daily_price=Decimal(str(daily_price)), days=days, app_fee=fee, total=total)
