"""Parsing of 'key=value:key=value' option strings."""

from __future__ import annotations


def parse_complex_params(text: str) -> dict[str, str]:
    """Split 'format=mp4:muxer=ffmpeg' into a dict; quoted values lose their quotes.

    Parts without '=' are skipped; a later key overrides an earlier one.
    """
    params: dict[str, str] = {}
    if not text:
        return params
    for part in text.split(":"):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key, value = key.strip(), value.strip()
        if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
            value = value[1:-1]
        params[key] = value
    return params