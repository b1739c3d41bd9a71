from __future__ import annotations

from pydantic import BaseModel, Field


class Caller(BaseModel):
    # Identity resolved by the authentication collaborator for one request.
    uid: str | None = None
    is_logged_in: bool = False
    email: str | None = None
    display_name: str | None = None


ANONYMOUS = Caller()


class CategoryInput(BaseModel):
    mission_name: str | None = None
    sub_type_name: str | None = None
    target_name: str | None = None

    model_config = {"extra": "forbid"}


class CoordinatesInput(BaseModel):
    # Decimal strings as sent by map clients; numbers are accepted too.
    latitude: str | float | None = None
    longitude: str | float | None = None

    model_config = {"extra": "forbid"}


class StreetViewInput(BaseModel):
    pov_heading: float
    pov_pitch: float
    pano_id: str
    camera_latitude: float
    camera_longitude: float

    model_config = {"extra": "forbid"}


class NewTagInput(BaseModel):
    # Required fields are checked by the lifecycle engine so direct callers get ValidationError too.
    location_name: str | None = None
    accessibility: float | None = None
    category: CategoryInput | None = None
    coordinates: CoordinatesInput | None = None
    floor: int | None = None
    description: str | None = None
    street_view_info: StreetViewInput | None = None
    image_upload_number: int = Field(default=0, ge=0, le=20)

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "examples": [
                {
                    "location_name": "North gate ramp",
                    "accessibility": 4.5,
                    "category": {"mission_name": "facility", "sub_type_name": "ramp"},
                    "coordinates": {"latitude": "25.0173", "longitude": "121.5398"},
                    "floor": 1,
                    "description": "Wide ramp next to the bike racks",
                    "image_upload_number": 2,
                }
            ]
        },
    }


class TagPatch(BaseModel):
    location_name: str | None = None
    accessibility: float | None = None
    category: CategoryInput | None = None
    coordinates: CoordinatesInput | None = None
    floor: int | None = None
    description: str | None = None
    street_view_info: StreetViewInput | None = None
    image_delete_urls: list[str] = Field(default_factory=list)
    image_upload_number: int = Field(default=0, ge=0, le=20)

    model_config = {"extra": "forbid"}


class PageParams(BaseModel):
    cursor: str | None = None
    page_size: int | None = None
