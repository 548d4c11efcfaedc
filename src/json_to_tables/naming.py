"""Safe, length-bounded table and column identifiers."""

from __future__ import annotations

import hashlib
import re
from typing import Sequence

MAX_NAME_LENGTH = 64

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9-]")
_WORDS = re.compile(r"[A-Za-z'-]+")
_INITIALS = re.compile(r"\b(\w)")


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def sanitize_name(name: str) -> str:
    """Return *name* as an identifier of at most 64 ``[A-Za-z0-9-]`` chars.

    Over-long names are shortened to the initials of their words (or an md5
    digest for single words), an underscore, and as much of the original
    tail as fits, starting at a space or underscore boundary.

    Names made only of punctuation sanitize to an empty string.
    """
    if len(name) > MAX_NAME_LENGTH:
        short = ""
        if len(_WORDS.findall(name)) > 1:
            short = "".join(_INITIALS.findall(name))
        if not short or len(short) >= MAX_NAME_LENGTH - 1:
            short = md5_hex(name)
        short += "_"

        start = len(name) - (MAX_NAME_LENGTH - len(short))
        boundary = name.find(" ", start)
        if boundary == -1:
            boundary = name.find("_", start)

        name = short + name[boundary:] if boundary != -1 else short

    return _UNSAFE_CHARS.sub("_", name).strip("_")


def validate_header(header: Sequence[str]) -> list[str]:
    """Sanitize every column name, hashing later duplicates.

    When two distinct names collapse onto the same safe name, the later one
    is replaced with the md5 of its *original* name so the result is unique.
    """
    safe: list[str] = []
    taken: set[str] = set()
    for column in header:
        new_name = sanitize_name(column)
        if new_name in taken:
            new_name = md5_hex(column)
            while new_name in taken:
                new_name = md5_hex(new_name)
        taken.add(new_name)
        safe.append(new_name)
    return safe
