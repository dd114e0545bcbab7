"""Parsing of ToUnicode CMaps into code-to-text tables."""

from __future__ import annotations

import string

CMapTable = dict[int, str]
"""Maps a character code (0..0xFFFF) to the Unicode text it stands for."""

_HEX_CHARS = frozenset(string.hexdigits)
_REPLACEMENT = "\ufffd"


def parse_cmap(data: bytes | str) -> CMapTable:
    """Parse the bfchar and bfrange sections of a decoded ToUnicode CMap.

    Multi-codepoint destinations (ligatures such as ``fi``) are kept whole.
    """
    text = data.decode("latin-1") if isinstance(data, (bytes, bytearray)) else data
    table: CMapTable = {}
    for block in _sections(text, "beginbfchar", "endbfchar"):
        _parse_bfchar_block(block, table)
    for block in _sections(text, "beginbfrange", "endbfrange"):
        _parse_bfrange_block(block, table)
    return table


def _sections(text: str, begin: str, end: str):
    """Yield the body of every ``begin ... end`` block, in order."""
    while True:
        start = text.find(begin)
        if start == -1:
            return
        text = text[start + len(begin):]
        stop = text.find(end)
        if stop == -1:
            return
        yield text[:stop]
        text = text[stop + len(end):]


def _parse_bfchar_block(block: str, table: CMapTable) -> None:
    tokens = _hex_tokens(block)
    for src_token, dst_token in zip(tokens[0::2], tokens[1::2]):
        code = _parse_char_code(src_token)
        if code is None:
            continue
        dst = _parse_unicode_string(dst_token)
        if dst:
            table[code] = dst


def _parse_bfrange_block(block: str, table: CMapTable) -> None:
    tokens = _range_tokens(block)
    for i in range(0, len(tokens) - 2, 3):
        start = _parse_char_code(tokens[i])
        if start is None:
            continue
        end = _parse_char_code(tokens[i + 1])
        if end is None:
            continue
        third = tokens[i + 2]

        if third.startswith("["):
            inner = third[1:]
            if inner.endswith("]"):
                inner = inner[:-1]
            span = (end - start) & 0xFFFF
            for offset, dst_token in enumerate(_hex_tokens(inner)[: span + 1]):
                dst = _parse_unicode_string(dst_token)
                if dst:
                    table[(start + offset) & 0xFFFF] = dst
        else:
            base = _parse_first_codepoint(third)
            if base is None:
                continue
            for offset in range(end - start + 1):
                table[start + offset] = _codepoint_text(base + offset)


def _codepoint_text(cp: int) -> str:
    if 0xD800 <= cp <= 0xDFFF or cp > 0x10FFFF or cp < 0:
        return _REPLACEMENT
    return chr(cp)


def _hex_tokens(text: str) -> list[str]:
    """Extract every ``<...>`` token from ``text``."""
    tokens: list[str] = []
    while True:
        opening = text.find("<")
        if opening == -1:
            break
        closing = text.find(">", opening)
        if closing == -1:
            break
        tokens.append(text[opening:closing + 1])
        text = text[closing + 1:]
    return tokens


def _range_tokens(text: str) -> list[str]:
    """Extract ``<...>`` tokens and whole ``[...]`` arrays from a bfrange body."""
    tokens: list[str] = []
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ch in "<[":
            closing = text.find(">" if ch == "<" else "]", pos)
            if closing == -1:
                return tokens
            tokens.append(text[pos:closing + 1])
            pos = closing + 1
        else:
            pos += 1
    return tokens


def _strip_angles(token: str) -> str:
    if token.startswith("<"):
        token = token[1:]
    if token.endswith(">"):
        token = token[:-1]
    return token.strip()


def _decode_hex(raw: str) -> bytes | None:
    if len(raw) % 2:
        raw = "0" + raw
    if not all(c in _HEX_CHARS for c in raw):
        return None
    return bytes.fromhex(raw)


def _parse_char_code(token: str) -> int | None:
    """Convert a token such as ``<20>`` or ``<0020>`` to a character code."""
    raw = _strip_angles(token)
    if not raw or len(raw) > 4:
        return None
    decoded = _decode_hex(raw)
    if not decoded:
        return None
    return int.from_bytes(decoded, "big")


def _parse_unicode_string(token: str) -> str:
    """Decode a hex token holding UTF-16BE code units into text."""
    raw = _strip_angles(token)
    if not raw:
        return ""
    decoded = _decode_hex(raw)
    if not decoded:
        return ""
    if len(decoded) == 1:
        return chr(decoded[0])
    units = [
        decoded[i] << 8 | decoded[i + 1] for i in range(0, len(decoded) - 1, 2)
    ]
    return _decode_utf16(units)


def _decode_utf16(units: list[int]) -> str:
    out: list[str] = []
    i = 0
    while i < len(units):
        unit = units[i]
        if (
            0xD800 <= unit < 0xDC00
            and i + 1 < len(units)
            and 0xDC00 <= units[i + 1] <= 0xDFFF
        ):
            out.append(chr(0x10000 + ((unit - 0xD800) << 10) + (units[i + 1] - 0xDC00)))
            i += 2
            continue
        out.append(_REPLACEMENT if 0xD800 <= unit <= 0xDFFF else chr(unit))
        i += 1
    return "".join(out)


def _parse_first_codepoint(token: str) -> int | None:
    text = _parse_unicode_string(token)
    return ord(text[0]) if text else None