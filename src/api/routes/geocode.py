"""
Address search routes (onboarding business address).

Endpoints:
- GET / - Search (?text=&limit=)
- POST /autocomplete - Autocomplete with filters
"""

from typing import Optional

from fastapi import APIRouter, Query

from ...lib import GeocodingService
from ...models import GeocodeAutocompleteRequest


router = APIRouter()


@router.get("")
async def search(
    text: Optional[str] = Query(default=None),
    limit: int = Query(default=5, ge=1, le=20),
):
    """
    Returns the GeoJSON FeatureCollection from the geocoder.

    Errors: 400 short text, 408 timeout, 429 rate limited, 503 unavailable.
    """
    service = GeocodingService()
    return await service.search(text, limit)


@router.post("/autocomplete")
async def autocomplete(body: GeocodeAutocompleteRequest):
    service = GeocodingService()
    return await service.autocomplete(
        body.text,
        limit=body.limit,
        type=body.type,
        countrycode=body.countrycode,
    )
