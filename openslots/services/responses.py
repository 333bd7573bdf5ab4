"""
Client-facing slot query surface.

Wraps ``SlotFinderService`` and maps its results and errors onto the
response payload served to booking clients: camelCase keys, ISO-8601 UTC
instants and an HTTP-style status code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain.exceptions import InvalidRequestError, ProviderNotFoundError
from ..domain.models import GeneratedSlot
from ..domain.timezones import to_iso_utc
from .slot_finder import SlotFinderService, SlotSearchResult

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to fetch available slots"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True, frozen=True)


class LocationPayload(_Payload):
    display: str


class SlotPayload(_Payload):
    id: str
    start_time: str
    end_time: str
    duration: int
    location: LocationPayload
    available_services: List[str]
    slots_remaining: int
    type: str

    @classmethod
    def from_slot(cls, slot: GeneratedSlot) -> "SlotPayload":
        return cls(
            id=slot.id,
            start_time=to_iso_utc(slot.start),
            end_time=to_iso_utc(slot.end),
            duration=slot.duration_minutes,
            location=LocationPayload(display=slot.location_display),
            available_services=list(slot.available_services),
            slots_remaining=slot.remaining_capacity,
            type=slot.source_type.value,
        )


class ProviderPayload(_Payload):
    id: str
    name: str
    timezone: str


class SlotListPayload(_Payload):
    success: bool = True
    provider: ProviderPayload
    total_slots: int
    slots: List[SlotPayload] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SlotSearchResult) -> "SlotListPayload":
        slots = [SlotPayload.from_slot(slot) for slot in result.slots]
        return cls(
            provider=ProviderPayload(
                id=result.provider.id,
                name=result.provider.name,
                timezone=result.timezone,
            ),
            total_slots=len(slots),
            slots=slots,
        )


class ErrorPayload(_Payload):
    success: bool = False
    error: str
    message: Optional[str] = None


@dataclass(frozen=True)
class QueryOutcome:
    status: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status == 200


def _dump(payload: BaseModel) -> Dict[str, Any]:
    return payload.model_dump(by_alias=True, exclude_none=True)


class SlotQueryService:
    """Entry point used by the booking surface for open-slot queries."""

    def __init__(self, finder: SlotFinderService):
        self._finder = finder

    async def query_open_slots(
        self,
        provider_id: Optional[str],
        service_type: Optional[str] = None,
        days_ahead: Any = None,
    ) -> QueryOutcome:
        try:
            result = await self._finder.find_slots(
                provider_id,
                days_ahead=days_ahead,
                service_type=service_type or None,
            )
        except InvalidRequestError as exc:
            return QueryOutcome(400, _dump(ErrorPayload(error=str(exc))))
        except ProviderNotFoundError:
            return QueryOutcome(404, _dump(ErrorPayload(error="Provider not found")))
        except Exception:
            logger.exception("Slot query failed for provider %s", provider_id)
            return QueryOutcome(
                500,
                _dump(ErrorPayload(error=GENERIC_ERROR_MESSAGE, message="Internal server error")),
            )

        return QueryOutcome(200, _dump(SlotListPayload.from_result(result)))
