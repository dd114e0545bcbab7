"""Lexer and recursive-descent parser for PDF object syntax."""

from __future__ import annotations

from .objects import PdfError, PdfName, PdfNull, PdfRef, PdfString

MAX_PARSE_DEPTH = 256
"""Maximum nesting of arrays, dictionaries and inline objects."""

_WHITESPACE = frozenset(b" \t\n\r\f\x00")
_DELIMITERS = frozenset(b"()<>[]{}/%")
_DIGITS = frozenset(b"0123456789")
_SIGNS = frozenset(b"+-")
_OCTAL = frozenset(b"01234567")

_CR = ord("\r")
_LF = ord("\n")
_BACKSLASH = ord("\\")
_LPAREN = ord("(")
_RPAREN = ord(")")
_LT = ord("<")
_GT = ord(">")
_LBRACKET = ord("[")
_RBRACKET = ord("]")
_SLASH = ord("/")
_PERCENT = ord("%")
_DOT = ord(".")

_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    _LPAREN: b"(",
    _RPAREN: b")",
    _BACKSLASH: b"\\",
}

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def is_whitespace(b: int) -> bool:
    """Report whether byte value ``b`` is PDF whitespace."""
    return b in _WHITESPACE


def is_delimiter(b: int) -> bool:
    """Report whether byte value ``b`` is a PDF delimiter character."""
    return b in _DELIMITERS


def skip_whitespace(data: bytes, pos: int) -> int:
    """Return the first position at or after ``pos`` that is not whitespace."""
    n = len(data)
    while pos < n and data[pos] in _WHITESPACE:
        pos += 1
    return pos


def skip_whitespace_and_comments(data: bytes, pos: int) -> int:
    """Skip whitespace and ``%`` comments up to the end of their line."""
    n = len(data)
    while pos < n:
        ch = data[pos]
        if ch in _WHITESPACE:
            pos += 1
        elif ch == _PERCENT:
            while pos < n and data[pos] not in (_LF, _CR):
                pos += 1
        else:
            break
    return pos


def skip_newline(data: bytes, pos: int) -> int:
    """Skip exactly one line ending (``\\r\\n``, ``\\r`` or ``\\n``) if present."""
    if pos >= len(data):
        return pos
    if data[pos] == _CR:
        pos += 1
        if pos < len(data) and data[pos] == _LF:
            pos += 1
        return pos
    if data[pos] == _LF:
        return pos + 1
    return pos


def read_int(data: bytes, pos: int) -> tuple[int, int]:
    """Read a signed decimal integer; return it and the position after it."""
    start = pos
    n = len(data)
    if pos < n and data[pos] in _SIGNS:
        pos += 1
    if pos >= n or data[pos] not in _DIGITS:
        raise PdfError(f"expected integer at offset {start}")
    while pos < n and data[pos] in _DIGITS:
        pos += 1
    return int(data[start:pos]), pos


def read_raw_number(data: bytes, pos: int) -> tuple[str, int]:
    """Read the raw text of an integer or real number token."""
    start = pos
    n = len(data)
    if pos < n and data[pos] in _SIGNS:
        pos += 1
    body_start = pos
    while pos < n and (data[pos] in _DIGITS or data[pos] == _DOT):
        pos += 1
    if pos == body_start:
        raise PdfError(f"expected number at offset {start}")
    return data[start:pos].decode("ascii"), pos


def parse_value(data: bytes, pos: int = 0) -> tuple[object, int]:
    """Parse one PDF value at ``pos``; return it and the position after it."""
    return _parse_value(data, pos, 0)


def _parse_value(data: bytes, pos: int, depth: int) -> tuple[object, int]:
    if depth > MAX_PARSE_DEPTH:
        raise PdfError(
            f"parser: exceeded max nesting depth {MAX_PARSE_DEPTH} at offset {pos}"
        )
    pos = skip_whitespace_and_comments(data, pos)
    if pos >= len(data):
        raise PdfError("unexpected end of data")

    ch = data[pos]
    if ch == _LT and data.startswith(b"<", pos + 1):
        return _parse_dict(data, pos, depth + 1)
    if ch == _LT:
        return _parse_hex_string(data, pos)
    if ch == _LPAREN:
        return _parse_literal_string(data, pos)
    if ch == _LBRACKET:
        return _parse_array(data, pos, depth + 1)
    if ch == _SLASH:
        return _parse_name(data, pos)
    if data.startswith(b"true", pos):
        return True, pos + 4
    if data.startswith(b"false", pos):
        return False, pos + 5
    if data.startswith(b"null", pos):
        return PdfNull(), pos + 4
    if ch in _SIGNS or ch == _DOT or ch in _DIGITS:
        return _parse_number_or_ref(data, pos, depth)
    raise PdfError(f"unexpected character {chr(ch)!r} at offset {pos}")


def _parse_dict(data: bytes, pos: int, depth: int) -> tuple[dict[str, object], int]:
    pos += 2
    result: dict[str, object] = {}
    while True:
        pos = skip_whitespace_and_comments(data, pos)
        if pos >= len(data):
            raise PdfError("unterminated dictionary")
        if data[pos] == _GT and data.startswith(b">", pos + 1):
            return result, pos + 2
        if data[pos] != _SLASH:
            raise PdfError(
                f"expected name key in dictionary, got {chr(data[pos])!r}"
            )
        key, pos = _parse_name(data, pos)
        pos = skip_whitespace_and_comments(data, pos)
        try:
            value, pos = _parse_value(data, pos, depth)
        except PdfError as exc:
            raise PdfError(
                f"parsing dictionary value for key {str(key)!r}: {exc}"
            ) from exc
        result[str(key)] = value


def _parse_array(data: bytes, pos: int, depth: int) -> tuple[list[object], int]:
    pos += 1
    items: list[object] = []
    while True:
        pos = skip_whitespace_and_comments(data, pos)
        if pos >= len(data):
            raise PdfError("unterminated array")
        if data[pos] == _RBRACKET:
            return items, pos + 1
        try:
            value, pos = _parse_value(data, pos, depth)
        except PdfError as exc:
            raise PdfError(f"parsing array element: {exc}") from exc
        items.append(value)


def _parse_name(data: bytes, pos: int) -> tuple[PdfName, int]:
    pos += 1
    start = pos
    n = len(data)
    while pos < n and data[pos] not in _DELIMITERS and data[pos] not in _WHITESPACE:
        pos += 1
    return PdfName(data[start:pos].decode("latin-1")), pos


def _parse_literal_string(data: bytes, pos: int) -> tuple[PdfString, int]:
    pos += 1
    out = bytearray()
    depth = 1
    n = len(data)
    while pos < n:
        ch = data[pos]
        if ch == _BACKSLASH and pos + 1 < n:
            pos += 1
            esc = data[pos]
            if esc in _ESCAPES:
                out += _ESCAPES[esc]
            elif esc == _CR:
                if pos + 1 < n and data[pos + 1] == _LF:
                    pos += 1
            elif esc == _LF:
                pass  # line continuation
            elif esc in _OCTAL:
                octal = bytearray([esc])
                for _ in range(2):
                    if pos + 1 >= n or data[pos + 1] not in _OCTAL:
                        break
                    pos += 1
                    octal.append(data[pos])
                out.append(min(int(bytes(octal), 8), 0xFF))
            else:
                out.append(esc)
            pos += 1
        elif ch == _LPAREN:
            depth += 1
            out.append(ch)
            pos += 1
        elif ch == _RPAREN:
            depth -= 1
            if depth == 0:
                return PdfString(out), pos + 1
            out.append(ch)
            pos += 1
        else:
            out.append(ch)
            pos += 1
    raise PdfError("unterminated literal string")


def _hex_nibble(ch: int) -> int:
    if 0x30 <= ch <= 0x39:
        return ch - 0x30
    if 0x61 <= ch <= 0x66:
        return ch - 0x61 + 10
    if 0x41 <= ch <= 0x46:
        return ch - 0x41 + 10
    return 0


def _parse_hex_string(data: bytes, pos: int) -> tuple[PdfString, int]:
    pos += 1
    out = bytearray()
    n = len(data)
    while pos < n:
        ch = data[pos]
        if ch == _GT:
            return PdfString(out), pos + 1
        if ch in _WHITESPACE:
            pos += 1
            continue
        hi = _hex_nibble(ch)
        pos += 1
        lo = 0
        if pos < n and data[pos] != _GT and data[pos] not in _WHITESPACE:
            lo = _hex_nibble(data[pos])
            pos += 1
        out.append(hi << 4 | lo)
    raise PdfError("unterminated hex string")


def _is_integer(text: str) -> bool:
    body = text[1:] if text[:1] in ("+", "-") else text
    return bool(body) and all("0" <= c <= "9" for c in body)


def _is_token_end(data: bytes, pos: int) -> bool:
    if pos >= len(data):
        return True
    return data[pos] in _WHITESPACE or data[pos] in _DELIMITERS


def _parse_number_or_ref(data: bytes, pos: int, depth: int) -> tuple[object, int]:
    try:
        first, new_pos = read_raw_number(data, pos)
    except PdfError as exc:
        raise PdfError(f"parsing number: {exc}") from exc

    if _is_integer(first):
        peek = skip_whitespace_and_comments(data, new_pos)
        if peek < len(data) and data[peek] in _DIGITS:
            second, peek2 = read_raw_number(data, peek)
            if _is_integer(second):
                peek2 = skip_whitespace_and_comments(data, peek2)
                if data.startswith(b"R", peek2) and _is_token_end(data, peek2 + 1):
                    return PdfRef(int(first), int(second)), peek2 + 1
                if data.startswith(b"obj", peek2) and _is_token_end(data, peek2 + 3):
                    body = skip_whitespace(data, peek2 + 3)
                    try:
                        value, after = _parse_value(data, body, depth + 1)
                    except PdfError as exc:
                        raise PdfError(f"parsing inline object: {exc}") from exc
                    after = skip_whitespace(data, after)
                    if data.startswith(b"endobj", after):
                        after += len(b"endobj")
                    return value, after

    if "." in first:
        try:
            return float(first), new_pos
        except ValueError as exc:
            raise PdfError(f"parsing float {first!r}: {exc}") from exc

    try:
        number = int(first)
    except ValueError as exc:
        raise PdfError(f"parsing integer {first!r}: {exc}") from exc
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise PdfError(f"parsing integer {first!r}: value out of range")
    return number, new_pos