"""DisplayHub — backend for a personal smart display.

REST endpoints for accounts and settings, plus a WebSocket channel that
pushes live widgets (currently-playing music, weather) to the display.
The live widgets are fed by per-user and per-location poll engines that
share upstream calls and only publish meaningful changes.
"""

__version__ = "0.1.0"
