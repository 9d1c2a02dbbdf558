from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


def _money_to_json(value: Decimal) -> Union[int, float]:
    return int(value) if value == value.to_integral_value() else float(value)


# Prices are Decimal in Python and plain JSON numbers on the wire.
Money = Annotated[Decimal, PlainSerializer(_money_to_json, return_type=Union[int, float], when_used="json")]


class ApiModel(BaseModel):
    """
    Base class for every entity exchanged with the backend.

    Fields are declared in snake_case and read from / written to the
    camelCase keys the REST API uses. Unknown keys are ignored so new
    backend fields never break parsing.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    def to_payload(self) -> dict:
        """Serializes the model into the camelCase JSON body the API expects."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class TimestampedModel(ApiModel):
    """Adds the server-managed created/updated timestamps."""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def isoformat_utc(moment: datetime) -> str:
    """Formats an aware datetime as a UTC ISO-8601 string with a 'Z' suffix."""
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
