# streak_bot/config.py

import os
from dotenv import load_dotenv

# Load .env file if present (local development)
load_dotenv()

BOT_TOKEN = os.getenv("BOT_TOKEN")
DATA_DIR = os.getenv("DATA_DIR", "data")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

MAP_CATALOG_URL = os.getenv("MAP_CATALOG_URL", "https://api.worldguessr.com")
EMBED_BASE_URL = os.getenv("EMBED_BASE_URL", "https://www.worldguessr.com/svEmbed")
GEOCODE_URL = os.getenv("GEOCODE_URL", "https://nominatim.openstreetmap.org/reverse")
GEOCODE_USER_AGENT = os.getenv("GEOCODE_USER_AGENT", "GeoBot/1.0")

BROWSER_MAX_AGE_SECONDS = int(os.getenv("BROWSER_MAX_AGE_SECONDS", "600"))

PB_STREAK_PATH = os.path.join(DATA_DIR, "pb_streak.json")
LB_STREAK_PATH = os.path.join(DATA_DIR, "lb_streak.json")
SERVER_CONFIG_PATH = os.path.join(DATA_DIR, "server_config.json")

# Maps added or deleted at runtime are saved here; the packaged table is the default
MAPS_PATH = os.getenv("MAPS_PATH", os.path.join(DATA_DIR, "maps.json"))
ASSETS_DIR = os.getenv("ASSETS_DIR", os.path.join(DATA_DIR, "assets"))


def require_bot_token() -> str:
    if not BOT_TOKEN:
        raise ValueError("BOT_TOKEN is missing. Add it to .env or environment variables.")
    return BOT_TOKEN
