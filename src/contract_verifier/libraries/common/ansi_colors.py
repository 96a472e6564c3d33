import re
from enum import StrEnum
from typing import Any

PATTERN_COLOR_CODE = re.compile(r"\x1b\[[0-9;]*m")


class ColorCodes(StrEnum):
    RESET = "\x1b[0m"
    BOLD = "\x1b[1m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    DARK_GREY = "\x1b[90m"


def color(value: Any, color_code: str | None = ColorCodes.GREEN, bold: bool = False) -> str:
    """Wrap the value in ANSI color codes

    :param value: Value to color
    :param color_code: ANSI color code. No color is added when None
    :param bold: Make the text bold
    """
    prefix = (color_code or "") + (ColorCodes.BOLD if bold else "")
    if not prefix:
        return str(value)
    return f"{prefix}{value}{ColorCodes.RESET}"


def remove_color_code(text: str) -> str:
    return PATTERN_COLOR_CODE.sub("", text)
