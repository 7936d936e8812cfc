"""Flag colors encoded as the three $MailFlagBit keywords.

Apple Mail and Fastmail store a flag's color as a 3-bit value (0-6) split
across the keywords $MailFlagBit0, $MailFlagBit1 and $MailFlagBit2
(draft-eggert-mailflagcolors). The conversions here are the only place that
knows about the bits.
"""

from __future__ import annotations

from enum import IntEnum

COLOR_BIT_KEYWORDS = ("$MailFlagBit0", "$MailFlagBit1", "$MailFlagBit2")


class FlagColor(IntEnum):
    RED = 0
    ORANGE = 1
    YELLOW = 2
    GREEN = 3
    BLUE = 4
    PURPLE = 5
    GRAY = 6

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def names(cls) -> list[str]:
        return [str(c) for c in cls]

    @classmethod
    def parse(cls, value: str) -> FlagColor:
        """Parse a color name, case-insensitively."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(
                f"invalid color {value!r}; valid colors: {', '.join(cls.names())}"
            ) from None


def color_to_bits(color: FlagColor) -> tuple[bool, bool, bool]:
    return tuple(bool(int(color) & (1 << pos)) for pos in range(3))  # type: ignore[return-value]


def color_from_bits(bits: tuple[bool, bool, bool]) -> FlagColor:
    """Inverse of color_to_bits. All three bits set (7) is not a color."""
    value = sum(1 << pos for pos, bit in enumerate(bits) if bit)
    return FlagColor(value)


def color_from_keywords(keywords: dict) -> FlagColor | None:
    """Color of a flagged email from its keywords, or None if not flagged."""
    if not keywords.get("$flagged"):
        return None
    bits = tuple(bool(keywords.get(k)) for k in COLOR_BIT_KEYWORDS)
    try:
        return color_from_bits(bits)  # type: ignore[arg-type]
    except ValueError:
        return None


def color_patch(color: FlagColor) -> dict:
    """Patch setting the color bits: True for set bits, None (remove) for clear ones."""
    return {
        f"keywords/{keyword}": (True if bit else None)
        for keyword, bit in zip(COLOR_BIT_KEYWORDS, color_to_bits(color))
    }


def clear_color_patch() -> dict:
    return {f"keywords/{keyword}": None for keyword in COLOR_BIT_KEYWORDS}
