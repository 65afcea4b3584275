# scripts/preload_locations.py

import asyncio
import sys

from streak_bot.quiz.manager import LocationResolver
from streak_bot.quiz.maps import MAP_NAMES, resolve_map_name


async def main(names):
    resolver = LocationResolver()
    try:
        maps = [resolve_map_name(n) or n for n in names] or MAP_NAMES
        cached = await resolver.preload(maps)
        for name in maps:
            print(f"{name}: {len(resolver.cached_locations(name))} usable locations")
        print(f"✅ {cached} coordinates geocoded")
    finally:
        await resolver.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
