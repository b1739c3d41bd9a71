from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass

from tagmap.domain.models import Base
from tagmap.domain.schemas import Caller, NewTagInput
from tagmap.services.container import build_services


DEMO_AUTHOR = Caller(uid="demo-author", is_logged_in=True, display_name="Demo Author")


@dataclass(frozen=True)
class DemoTag:
    # Small fixed set so the map has something to show on a fresh database.
    location_name: str
    mission_name: str
    sub_type_name: str
    latitude: str
    longitude: str
    votes: int


DEMO_TAGS = (
    DemoTag("North gate ramp", "facility", "ramp", "25.0173", "121.5398", 0),
    DemoTag("Library elevator", "facility", "elevator", "25.0169", "121.5405", 5),
    DemoTag("Main hall accessible toilet", "facility", "toilet", "25.0178", "121.5390", 2),
)


async def seed(*, create_schema: bool = False) -> int:
    services = build_services()
    try:
        if create_schema:
            async with services.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        for demo in DEMO_TAGS:
            result = await services.lifecycle.create_tag(
                NewTagInput(
                    location_name=demo.location_name,
                    category={"mission_name": demo.mission_name, "sub_type_name": demo.sub_type_name},
                    coordinates={"latitude": demo.latitude, "longitude": demo.longitude},
                ),
                DEMO_AUTHOR,
            )
            for index in range(demo.votes):
                voter = Caller(uid=f"demo-voter-{index}", is_logged_in=True)
                await services.lifecycle.apply_up_vote_action(result.view.tag.id, "upvote", voter)
        return len(DEMO_TAGS)
    finally:
        await services.aclose()


def main() -> None:
    # Pass --create-schema for throwaway databases that skipped migrations.
    created = asyncio.run(seed(create_schema="--create-schema" in sys.argv[1:]))
    print(f"seeded {created} demo tags")


if __name__ == "__main__":
    main()
