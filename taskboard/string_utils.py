"""
Small text helpers shared by the normalizer and the relational client.
"""

from __future__ import annotations


def make_initials(name: str | None) -> str:
    """First letter of each word in ``name``, upper-cased ("Max Muster" -> "MM")."""
    if not name:
        return ""
    return "".join(word[0].upper() for word in name.split() if word)


def normalize_email(value: str | None) -> str | None:
    if value is None:
        return None
    email = str(value).strip().lower()
    return email or None
