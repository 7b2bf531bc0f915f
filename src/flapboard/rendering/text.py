"""Reference text renderer.

Turns plain text into a 6×22 Vestaboard character-code matrix.  Real
deployments plug in their own renderers (weather, events, ...) through the
``Renderer`` protocol; this one covers free-text messages and gives the
CLI and tests a working default.

Screen types:
    MESSAGE / CUSTOM_MESSAGE
        ``{"message": "..."}``  word-wrapped and centered vertically, or
        ``{"lines": ["...", ...]}`` one string per row.
        Optional ``"align"`` (``center`` | ``left`` | ``right``) and
        ``"border"`` (a color name such as ``"RED"``).
    BLANK
        All-blank screen.

Characters without a code render as blank.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from flapboard.core.errors import RenderError
from flapboard.core.protocols import Matrix

ROWS = 6
COLUMNS = 22

CHAR_CODES: dict[str, int] = {
    " ": 0,
    **{chr(ord("A") + i): i + 1 for i in range(26)},
    **{str(d): 26 + d for d in range(1, 10)},
    "0": 36,
    "!": 37,
    "@": 38,
    "#": 39,
    "$": 40,
    "(": 41,
    ")": 42,
    "-": 44,
    "+": 46,
    "&": 47,
    "=": 48,
    ";": 49,
    ":": 50,
    "'": 52,
    '"': 53,
    "%": 54,
    ",": 55,
    ".": 56,
    "/": 59,
    "?": 60,
    "°": 62,
}

COLOR_CODES: dict[str, int] = {
    "RED": 63,
    "ORANGE": 64,
    "YELLOW": 65,
    "GREEN": 66,
    "BLUE": 67,
    "VIOLET": 68,
    "WHITE": 69,
    "BLACK": 70,
}


def text_to_codes(text: str) -> list[int]:
    return [CHAR_CODES.get(char, 0) for char in text.upper()]


def wrap_text(text: str, width: int) -> list[str]:
    """Greedy word wrap; words longer than ``width`` are truncated."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= width:
            current = candidate
        elif current:
            lines.append(current)
            current = word[:width]
        else:
            lines.append(word[:width])
    if current:
        lines.append(current)
    return lines


def align_codes(text: str, width: int, align: str = "center") -> list[int]:
    codes = text_to_codes(text)[:width]
    row = [0] * width
    if align == "left":
        offset = 0
    elif align == "right":
        offset = width - len(codes)
    else:
        offset = (width - len(codes)) // 2
    row[offset : offset + len(codes)] = codes
    return row


def blank_matrix() -> Matrix:
    return [[0] * COLUMNS for _ in range(ROWS)]


class TextRenderer:
    """Renderer for free-text screens."""

    TEXT_TYPES = frozenset({"MESSAGE", "CUSTOM_MESSAGE"})

    async def render(self, screen_type: str, config: Mapping[str, Any]) -> Matrix:
        if screen_type == "BLANK":
            return blank_matrix()
        if screen_type not in self.TEXT_TYPES:
            raise RenderError(f"Unknown screen type: {screen_type}")
        return self.render_text(config)

    def render_text(self, config: Mapping[str, Any]) -> Matrix:
        align = config.get("align", "center")
        if align not in ("center", "left", "right"):
            raise RenderError(f"Unknown alignment: {align}")

        border = config.get("border")
        border_code = None
        if border:
            border_code = COLOR_CODES.get(str(border).upper())
            if border_code is None:
                raise RenderError(f"Unknown border color: {border}")

        # A border eats the outer ring of the grid
        inset = 1 if border_code is not None else 0
        width = COLUMNS - 2 * inset
        height = ROWS - 2 * inset

        if "lines" in config:
            lines = [str(line) for line in config["lines"]][:height]
            top = inset
        else:
            message = config.get("message")
            if not message:
                raise RenderError("Text screen requires 'message' or 'lines'")
            lines = wrap_text(str(message), width)[:height]
            top = inset + (height - len(lines)) // 2

        matrix = blank_matrix()
        if border_code is not None:
            for col in range(COLUMNS):
                matrix[0][col] = matrix[ROWS - 1][col] = border_code
            for row in range(ROWS):
                matrix[row][0] = matrix[row][COLUMNS - 1] = border_code

        for offset, line in enumerate(lines):
            matrix[top + offset][inset : inset + width] = align_codes(line, width, align)
        return matrix
