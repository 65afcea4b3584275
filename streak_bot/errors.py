# streak_bot/errors.py


class StreakBotError(Exception):
    """Base class for everything the quiz core raises on purpose."""


class UnknownMapError(StreakBotError):
    def __init__(self, map_name: str):
        super().__init__(f"Unknown map name: {map_name}")
        self.map_name = map_name


class MapNotReadyError(StreakBotError):
    def __init__(self, map_name: str, reason: str = "not ready or contains no locations"):
        super().__init__(f'Map "{map_name}" is {reason}.')
        self.map_name = map_name


class RenderError(StreakBotError):
    pass


class ResourceLaunchError(StreakBotError):
    pass


class GeocodeUnresolvedError(StreakBotError):
    def __init__(self, lat: float, lng: float):
        super().__init__(f"No country found for coordinates {lat}, {lng}")
        self.lat = lat
        self.lng = lng


class NoResolvableLocationError(StreakBotError):
    def __init__(self, map_name: str):
        super().__init__(f'Every location of map "{map_name}" failed to resolve.')
        self.map_name = map_name
