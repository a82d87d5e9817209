"""Helpers shared by the TXT-record based checkers."""

from __future__ import annotations


def filter_records(records: list[str], prefix: str) -> list[str]:
    """Return the stripped records whose value starts with *prefix*.

    The comparison is case-insensitive, e.g. ``v=DMARC1`` and ``v=dmarc1``
    both match the prefix ``"v=dmarc1"``.
    """
    prefix = prefix.lower()
    matches: list[str] = []
    for record in records:
        stripped = record.strip()
        if stripped.lower().startswith(prefix):
            matches.append(stripped)
    return matches


def parse_tags(record: str) -> dict[str, str]:
    """Parse semicolon-separated tag=value pairs from a DNS TXT record.

    Keys are lower-cased; whitespace around keys and values is stripped.
    Parts without ``=`` are ignored, and the first occurrence of a
    repeated tag wins.
    """
    tags: dict[str, str] = {}
    for part in record.split(";"):
        part = part.strip()
        if "=" not in part:
            continue
        key, _, value = part.partition("=")
        key = key.strip().lower()
        if key and key not in tags:
            tags[key] = value.strip()
    return tags


def split_addresses(value: str | None) -> list[str]:
    """Split a comma-delimited reporting address list."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
