import math

AVATAR_COLORS = (
    "#2196F3", "#32c787", "#00BCD4", "#ff5652",
    "#ffc107", "#ff85af", "#FF9800", "#39bbb0",
)


def _utf16_units(text: str):
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def get_avatar_color(sender: str) -> str:
    """Pick the palette color for a user.

    The hash runs in double precision over UTF-16 code units so that every
    participant, browser or terminal, paints the same user the same color.
    """
    h = 0.0
    for unit in _utf16_units(sender):
        h = 31 * h + unit
    if math.isinf(h):
        # names of a few hundred characters overflow the double
        return AVATAR_COLORS[0]
    return AVATAR_COLORS[int(abs(math.fmod(h, len(AVATAR_COLORS))))]


def avatar_initial(sender: str) -> str:
    return sender[:1]
