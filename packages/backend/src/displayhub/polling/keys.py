"""Weather poll keys.

Learn: Coordinates are rounded to a fixed number of decimals before
they become a key, so two displays a few metres apart (or the same
coordinates with floating-point noise) share one upstream poll.
Two decimals is roughly 1 km — finer than the weather model itself.
"""


def location_key(lat: float, lon: float, precision: int = 2) -> str:
    """Canonical "lat,lon" key, e.g. location_key(52.5201, 13.4049) == "52.52,13.40"."""
    if precision < 0:
        raise ValueError("precision must be >= 0")
    return f"{_fixed(lat, precision)},{_fixed(lon, precision)}"


def parse_location_key(key: str) -> tuple[float, float]:
    try:
        lat, lon = key.split(",")
        return float(lat), float(lon)
    except ValueError:
        raise ValueError(f"Not a location key: {key!r}")


def _fixed(value: float, precision: int) -> str:
    text = f"{round(value, precision):.{precision}f}"
    # "-0.00" and "0.00" must be the same key
    if text.startswith("-") and float(text) == 0:
        text = text[1:]
    return text
