"""Localizable turn-by-turn text for synthesized routes."""
from __future__ import annotations

from typing import Dict

DIRECTION_NAMES: Dict[str, Dict[str, str]] = {
    "en": {
        "north": "north", "northeast": "northeast", "east": "east", "southeast": "southeast",
        "south": "south", "southwest": "southwest", "west": "west", "northwest": "northwest",
    },
    "vi": {
        "north": "về phía Bắc", "northeast": "về phía Đông Bắc", "east": "về phía Đông",
        "southeast": "về phía Đông Nam", "south": "về phía Nam", "southwest": "về phía Tây Nam",
        "west": "về phía Tây", "northwest": "về phía Tây Bắc",
    },
}

TEMPLATES: Dict[str, Dict[str, str]] = {
    "en": {
        "first": "Head {direction} for {meters} m",
        "next": "Continue {direction} for {meters} m",
    },
    "vi": {
        "first": "Đi {direction} {meters}m",
        "next": "Tiếp tục {direction} {meters}m",
    },
}


def walking_instruction(direction: str, meters: float, first: bool, language: str = "en") -> str:
    """Render one leg's instruction; unknown languages fall back to English."""
    lang = language if language in TEMPLATES else "en"
    name = DIRECTION_NAMES[lang].get(direction, direction)
    tpl = TEMPLATES[lang]["first" if first else "next"]
    return tpl.format(direction=name, meters=int(round(meters)))
