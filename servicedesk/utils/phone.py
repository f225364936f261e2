"""Saudi mobile number normalization.

Numbers arrive from staff forms and the orders webhook in every shape
(``05xxxxxxxx``, ``9665xxxxxxxx``, ``+966 5x xxx xxxx``); storage keeps the
``+966`` form so technicians can be matched by phone.
"""

import re

_NON_PHONE_CHARS = re.compile(r"[^\d+]")


def normalize_phone(raw) -> str | None:
    """Return *raw* in +966 form where it looks like a Saudi mobile number.

    Anything unrecognised comes back stripped of separators but otherwise
    untouched; empty input returns None.
    """
    if raw is None:
        return None
    cleaned = _NON_PHONE_CHARS.sub("", str(raw))
    if not cleaned:
        return None

    if cleaned.startswith("+966"):
        return cleaned
    if cleaned.startswith("966"):
        return "+" + cleaned
    if cleaned.startswith("05"):
        return "+966" + cleaned[1:]
    if cleaned.startswith("5") and len(cleaned) == 9:
        return "+966" + cleaned
    return cleaned
