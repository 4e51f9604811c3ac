"""
Color helpers for pass.json.

parse_color never raises: malformed input returns the caller's fallback so a
pass always renders with some valid color.
"""
import re
from typing import Optional, Tuple

RGB = Tuple[int, int, int]

BLACK: RGB = (0, 0, 0)
WHITE: RGB = (255, 255, 255)

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def parse_color(value: Optional[str], fallback: RGB) -> RGB:
    """
    Parse "#rgb" / "#rrggbb" (leading "#" optional) into an RGB triple.

    Returns `fallback` for None, empty strings, non-strings and anything
    that is not a 3- or 6-digit hex color.
    """
    if not isinstance(value, str):
        return fallback
    match = _HEX_RE.match(value.strip())
    if not match:
        return fallback
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def format_rgb(color: RGB) -> str:
    """Render a triple the way pass.json expects: rgb(r, g, b)"""
    r, g, b = color
    return f"rgb({r}, {g}, {b})"
