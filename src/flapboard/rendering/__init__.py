"""Screen renderers."""

from flapboard.rendering.text import COLOR_CODES, TextRenderer, text_to_codes, wrap_text

__all__ = ["COLOR_CODES", "TextRenderer", "text_to_codes", "wrap_text"]
