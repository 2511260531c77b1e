"""Slug helpers: display name normalization, identifier validation, tag parsing.

Slugs name organizations and datasets and end up in bucket names, so the
validator is the gate every identifier passes before it reaches the database
or the object store. ``make_slug`` is best effort and may return an invalid
(even empty) string; callers validate its output like any other input.
"""

from __future__ import annotations

import codecs
import re
import threading
import unicodedata

# Only lowercase letters, numbers, - and _. Max length 255
_SAFE_NAME_RE = re.compile(r"[a-z0-9\-_]{1,255}")

TRANSLIT_ERROR_HANDLER = "registry-slug-translit"

# Letters without a Unicode decomposition to an ASCII base
_TRANSLIT_OVERRIDES = {
    "ß": "ss",
    "ẞ": "SS",
    "æ": "ae",
    "Æ": "AE",
    "ø": "o",
    "Ø": "O",
    "œ": "oe",
    "Œ": "OE",
    "đ": "d",
    "Đ": "D",
    "ł": "l",
    "Ł": "L",
    "þ": "th",
    "Þ": "TH",
    "ð": "d",
    "Ð": "D",
    "ı": "i",
}

_handler_registered = False
_handler_lock = threading.Lock()


def _transliterate_char(char: str) -> str:
    override = _TRANSLIT_OVERRIDES.get(char)
    if override is not None:
        return override
    decomposed = unicodedata.normalize("NFKD", char)
    return "".join(c for c in decomposed if c.isascii() and not unicodedata.combining(c))


def _translit_errors(exc: UnicodeError) -> tuple[str, int]:
    if not isinstance(exc, UnicodeEncodeError):
        raise exc
    chunk = exc.object[exc.start:exc.end]
    return "".join(_transliterate_char(c) for c in chunk), exc.end


def _ensure_translit_handler() -> None:
    """Register the transliteration error handler once per process."""
    global _handler_registered
    if _handler_registered:
        return
    with _handler_lock:
        if not _handler_registered:
            codecs.register_error(TRANSLIT_ERROR_HANDLER, _translit_errors)
            _handler_registered = True


def _dash_spaces(text: str) -> str:
    return "".join("-" if c.isspace() else c for c in text)


def make_slug(name: str) -> str:
    """Turn a display name into a slug candidate.

    Non-ASCII letters are folded to ASCII (accents stripped, a few ligatures
    spelled out, anything else dropped), whitespace becomes ``-`` and the
    result is lowercased. No other characters are removed.
    """
    _ensure_translit_handler()
    # Separators go first: U+2028 and U+2029 have no ASCII form to survive transliteration
    dashed = _dash_spaces(name or "")
    ascii_name = dashed.encode("ascii", errors=TRANSLIT_ERROR_HANDLER).decode("ascii")
    return _dash_spaces(ascii_name).lower()


def is_slug_valid(name: object) -> bool:
    return isinstance(name, str) and _SAFE_NAME_RE.fullmatch(name) is not None


def split_tag(tag: str) -> tuple[str, str]:
    """Split ``org/dataset`` into its halves without validating them.

    A tag without ``/`` names a dataset only; the organization half is empty.
    """
    if not tag:
        return "", ""
    org, sep, dataset = tag.partition("/")
    if not sep:
        return "", tag
    return org, dataset


def dataset_slug_from_tag(tag: str) -> str:
    return split_tag(tag)[1]


def organization_slug_from_tag(tag: str) -> str:
    return split_tag(tag)[0]
