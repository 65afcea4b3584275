# streak_bot/quiz/maps.py
"""
Map table.

The packaged data/maps.json is the default. Once a map is added or deleted
at runtime the whole table is saved to MAPS_PATH, which then wins on the
next start. MAPS, MAP_NAMES, MAP_ALIASES and MAP_IMAGES are updated in place
so modules that imported them see the change.
"""

import logging
import os
import re
from typing import Dict, List, Optional
from urllib.parse import urlencode

from streak_bot.config import EMBED_BASE_URL, MAPS_PATH
from streak_bot.db import load_json_file, save_json_file

logger = logging.getLogger(__name__)

_DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "maps.json")


def _load_maps(path: str = MAPS_PATH) -> Dict[str, dict]:
    data = load_json_file(path, None)
    if isinstance(data, dict):
        return data
    return load_json_file(_DEFAULT_PATH, {})


MAP_DATA: Dict[str, dict] = {}

# map name -> catalog slug
MAPS: Dict[str, str] = {}
MAP_NAMES: List[str] = []

# lowercased name or alias -> map name
MAP_ALIASES: Dict[str, str] = {}

# map name -> distribution image file name
MAP_IMAGES: Dict[str, str] = {}


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def refresh_maps(data: Dict[str, dict]) -> None:
    """Rebuild every lookup table from `data`."""
    MAP_DATA.clear()
    MAP_DATA.update(data)

    MAPS.clear()
    MAP_ALIASES.clear()
    MAP_IMAGES.clear()
    for name, info in MAP_DATA.items():
        MAPS[name] = info.get("slug") or slugify(name)
        MAP_ALIASES[name.lower()] = name
        for alias in info.get("aliases", []):
            MAP_ALIASES.setdefault(alias.strip().lower(), name)
        if info.get("distribution"):
            MAP_IMAGES[name] = info["distribution"]

    MAP_NAMES[:] = list(MAPS)


def resolve_map_name(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return MAP_ALIASES.get(value.strip().lower())


def map_image(value: Optional[str]) -> Optional[str]:
    """Distribution image file name of a map given by name or alias."""
    name = resolve_map_name(value)
    return MAP_IMAGES.get(name) if name else None


def add_map(
    name: str,
    aliases: List[str],
    slug: Optional[str] = None,
    distribution: Optional[str] = None,
    path: str = MAPS_PATH,
) -> str:
    """Add or replace a map, save the table and rebuild the lookups."""
    name = name.strip()
    if not name:
        raise ValueError("Map name is empty")

    info: Dict[str, object] = {
        "slug": slug or slugify(name),
        "aliases": [a.strip() for a in aliases if a.strip()],
    }
    if distribution:
        info["distribution"] = distribution

    data = dict(MAP_DATA)
    data[name] = info
    save_json_file(path, data)
    refresh_maps(data)
    logger.info("Added map %s (%s)", name, info["slug"])
    return name


def delete_map(value: str, path: str = MAPS_PATH) -> Optional[str]:
    """Delete a map by name or alias; returns its name, or None if unknown."""
    name = resolve_map_name(value)
    if name is None:
        return None

    data = {k: v for k, v in MAP_DATA.items() if k != name}
    save_json_file(path, data)
    refresh_maps(data)
    logger.info("Deleted map %s", name)
    return name


def build_embed_url(location: dict, base_url: str = EMBED_BASE_URL) -> Optional[str]:
    """Viewer URL for a location: no markers, no road labels, answer hidden."""
    if not location:
        return None

    params = {
        "nm": "true",
        "npz": "false",
        "showRoadLabels": "false",
        "lat": location["lat"],
        "long": location["lng"],
        "showAnswer": "false",
    }
    for key in ("heading", "pitch", "zoom"):
        if location.get(key) is not None:
            params[key] = location[key]

    return f"{base_url}?{urlencode(params)}"


def street_view_link(lat: float, lng: float) -> str:
    return (
        "https://www.google.com/maps/@?api=1&map_action=pano"
        f"&viewpoint={lat},{lng}&heading=0&pitch=0"
    )


refresh_maps(_load_maps())
