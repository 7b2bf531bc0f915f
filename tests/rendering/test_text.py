"""Tests for the reference text renderer."""

import pytest

from flapboard.core.errors import RenderError
from flapboard.rendering import COLOR_CODES, TextRenderer, text_to_codes, wrap_text
from flapboard.transports.vestaboard import validate_matrix


@pytest.fixture
def renderer():
    return TextRenderer()


class TestCharacterCodes:
    def test_letters_digits_and_punctuation(self):
        assert text_to_codes("Az") == [1, 26]
        assert text_to_codes("19 0") == [27, 35, 0, 36]
        assert text_to_codes("!?") == [37, 60]

    def test_unknown_characters_are_blank(self):
        assert text_to_codes("A~B") == [1, 0, 2]


class TestWrapText:
    def test_greedy_wrap(self):
        assert wrap_text("FIRE DRILL AT NOON TODAY", 10) == ["FIRE DRILL", "AT NOON", "TODAY"]

    def test_long_words_are_truncated(self):
        assert wrap_text("SUPERCALIFRAGILISTIC OK", 5) == ["SUPER", "OK"]

    def test_empty(self):
        assert wrap_text("   ", 22) == []


class TestTextRenderer:
    @pytest.mark.asyncio
    async def test_message_is_centered(self, renderer):
        matrix = await renderer.render("MESSAGE", {"message": "HI"})

        validate_matrix(matrix)
        assert matrix[2][10:12] == [8, 9]
        assert sum(code for row in matrix for code in row) == 17

    @pytest.mark.asyncio
    async def test_lines_start_at_top(self, renderer):
        matrix = await renderer.render("CUSTOM_MESSAGE", {"lines": ["A", "B"], "align": "left"})
        assert matrix[0][0] == 1
        assert matrix[1][0] == 2
        assert matrix[2] == [0] * 22

    @pytest.mark.asyncio
    async def test_right_alignment(self, renderer):
        matrix = await renderer.render("MESSAGE", {"lines": ["AB"], "align": "right"})
        assert matrix[0][-2:] == [1, 2]

    @pytest.mark.asyncio
    async def test_border(self, renderer):
        matrix = await renderer.render("MESSAGE", {"message": "OK", "border": "red", "align": "left"})
        red = COLOR_CODES["RED"]

        assert matrix[0] == [red] * 22
        assert matrix[5] == [red] * 22
        assert all(row[0] == red and row[21] == red for row in matrix)
        assert matrix[2][1:3] == [15, 11]

    @pytest.mark.asyncio
    async def test_blank(self, renderer):
        matrix = await renderer.render("BLANK", {})
        assert matrix == [[0] * 22 for _ in range(6)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("screen_type", "config", "message"),
        [
            ("WEATHER", {}, "Unknown screen type: WEATHER"),
            ("MESSAGE", {}, "Text screen requires 'message' or 'lines'"),
            ("MESSAGE", {"message": "X", "align": "justify"}, "Unknown alignment: justify"),
            ("MESSAGE", {"message": "X", "border": "PINK"}, "Unknown border color: PINK"),
        ],
    )
    async def test_render_errors(self, renderer, screen_type, config, message):
        with pytest.raises(RenderError) as exc_info:
            await renderer.render(screen_type, config)
        assert exc_info.value.message == message
