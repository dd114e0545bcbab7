"""Plain-text extraction from decoded PDF page content streams."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass

from .parser import is_delimiter, is_whitespace

_HEX_CHARS = frozenset(b"0123456789abcdefABCDEF")
_DIGITS = frozenset(b"0123456789")
_OCTAL = frozenset(b"01234567")
_NUMBER_START = frozenset(b"+-.0123456789")

_ESCAPES = {
    ord("n"): 0x0A,
    ord("r"): 0x0D,
    ord("t"): 0x09,
    ord("b"): 0x08,
    ord("f"): 0x0C,
    ord("("): ord("("),
    ord(")"): ord(")"),
    ord("\\"): ord("\\"),
}

_WORD_GAP = -100


class TokenKind(enum.Enum):
    """The kinds of token found in a content stream."""

    NUMBER = "number"
    STRING = "string"
    NAME = "name"
    OPERATOR = "operator"
    ARRAY = "array"


@dataclass(frozen=True)
class Token:
    """One lexical token of a content stream.

    ``text`` holds names (with their leading slash) and operators, ``raw``
    holds string bytes, ``number`` numeric values and ``items`` the string
    and number elements of an array.
    """

    kind: TokenKind
    text: str = ""
    raw: bytes = b""
    number: float = 0.0
    items: tuple[Token, ...] = ()


def extract_text(
    content: bytes | None, fonts: Mapping[str, Mapping[int, str]] | None
) -> str:
    """Return the plain text drawn by a decoded content stream.

    ``fonts`` maps font resource names (without ``/``) to CMap tables.
    """
    return _ContentParser(content or b"", fonts or {}).parse()


class _ContentParser:
    def __init__(self, data: bytes, fonts: Mapping[str, Mapping[int, str]]):
        self.data = data
        self.fonts = fonts
        self.operands: list[Token] = []
        self.in_text = False
        self.current_font = ""
        self.y_pos = 0.0
        self.y_set = False
        self.out: list[str] = []
        self.last_char = ""

    def parse(self) -> str:
        for tok in _tokens(self.data):
            if tok.kind is TokenKind.OPERATOR:
                self.execute(tok.text)
                self.operands.clear()
            else:
                self.operands.append(tok)
        return normalize_text("".join(self.out))

    def execute(self, op: str) -> None:
        if op == "BT":
            self.in_text = True
            self.y_set = False
        elif op == "ET":
            self.in_text = False
            self.write_newline()
        elif op == "Tf":
            self.exec_tf()
        elif op == "Tj":
            self.exec_tj()
        elif op == "TJ":
            self.exec_tj_array()
        elif op in ("'", '"'):
            self.write_newline()
            self.exec_tj()
        elif op == "Tm":
            self.exec_tm()
        elif op in ("Td", "TD"):
            self.exec_td()
        elif op == "T*":
            self.write_newline()

    def exec_tf(self) -> None:
        if len(self.operands) < 2:
            return
        name_tok = self.operands[-2]
        if name_tok.kind is not TokenKind.NAME:
            return
        self.current_font = name_tok.text.removeprefix("/")

    def exec_tj(self) -> None:
        if not self.operands:
            return
        tok = self.operands[-1]
        if tok.kind is TokenKind.STRING:
            self.write_string(tok.raw)

    def exec_tj_array(self) -> None:
        if not self.operands:
            return
        tok = self.operands[-1]
        if tok.kind is not TokenKind.ARRAY:
            return
        for elem in tok.items:
            if elem.kind is TokenKind.STRING:
                self.write_string(elem.raw)
            elif elem.kind is TokenKind.NUMBER and elem.number < _WORD_GAP:
                self.write_space()

    def exec_tm(self) -> None:
        if len(self.operands) < 6:
            return
        y = self.operands[5].number
        if self.y_set and abs(y - self.y_pos) > 1.0:
            self.write_newline()
        self.y_pos = y
        self.y_set = True

    def exec_td(self) -> None:
        if len(self.operands) < 2:
            return
        ty = self.operands[1].number
        if ty != 0:
            self.write_newline()
            if self.y_set:
                self.y_pos += ty

    def write_newline(self) -> None:
        if self.last_char == "\n":
            return
        self.out.append("\n")
        self.last_char = "\n"

    def write_space(self) -> None:
        if self.last_char in (" ", "\n"):
            return
        self.out.append(" ")
        self.last_char = " "

    def _emit(self, mapped: str) -> None:
        self.out.append(mapped)
        if mapped:
            self.last_char = mapped[-1]

    def write_string(self, raw: bytes) -> None:
        cmap = self.fonts.get(self.current_font)
        i = 0
        while i < len(raw):
            if cmap and i + 1 < len(raw):
                mapped = cmap.get(raw[i] << 8 | raw[i + 1])
                if mapped is not None:
                    self._emit(mapped)
                    i += 2
                    continue
            mapped = cmap.get(raw[i]) if cmap else None
            if mapped is not None:
                self._emit(mapped)
            else:
                ch = chr(raw[i])
                self.out.append(ch)
                self.last_char = ch
            i += 1


def _tokens(data: bytes):
    """Yield every token of a content stream, skipping unreadable bytes."""
    pos = 0
    while pos < len(data):
        pos = skip_content_ws(data, pos)
        if pos >= len(data):
            break
        result = read_token(data, pos)
        if result is None:
            pos += 1
            continue
        tok, pos = result
        yield tok


def skip_content_ws(data: bytes, pos: int) -> int:
    """Skip whitespace and ``%`` comments inside a content stream."""
    n = len(data)
    while pos < n:
        b = data[pos]
        if b == 0x25:
            while pos < n and data[pos] not in (0x0A, 0x0D):
                pos += 1
        elif is_whitespace(b):
            pos += 1
        else:
            break
    return pos


def read_token(data: bytes, pos: int) -> tuple[Token, int] | None:
    """Read one token at ``pos``; return it and the next position, or None."""
    if pos >= len(data):
        return None
    b = data[pos]
    if b == 0x28:
        raw, nxt = _read_literal_string(data, pos)
        return Token(TokenKind.STRING, raw=raw), nxt
    if b == 0x3C and pos + 1 < len(data) and data[pos + 1] != 0x3C:
        raw, nxt = _read_hex_string(data, pos)
        return Token(TokenKind.STRING, raw=raw), nxt
    if b == 0x2F:
        name, nxt = _read_word(data, pos + 1)
        return Token(TokenKind.NAME, text="/" + name), nxt
    if b == 0x5B:
        items, nxt = _read_array(data, pos)
        return Token(TokenKind.ARRAY, items=items), nxt
    if b in _NUMBER_START:
        number = _read_number(data, pos)
        if number is not None:
            value, nxt = number
            return Token(TokenKind.NUMBER, number=value), nxt
    op, nxt = _read_word(data, pos)
    if not op:
        return None
    return Token(TokenKind.OPERATOR, text=op), nxt


def _read_word(data: bytes, pos: int) -> tuple[str, int]:
    start = pos
    n = len(data)
    while pos < n and not is_delimiter(data[pos]) and not is_whitespace(data[pos]):
        pos += 1
    return data[start:pos].decode("latin-1"), pos


def _read_literal_string(data: bytes, pos: int) -> tuple[bytes, int]:
    pos += 1
    out = bytearray()
    depth = 1
    n = len(data)
    while pos < n and depth > 0:
        b = data[pos]
        if b == 0x28:
            depth += 1
            out.append(b)
            pos += 1
        elif b == 0x29:
            depth -= 1
            if depth > 0:
                out.append(b)
            pos += 1
        elif b == 0x5C:
            pos += 1
            if pos >= n:
                break
            esc = data[pos]
            pos += 1
            if esc in _ESCAPES:
                out.append(_ESCAPES[esc])
            elif esc in (0x0A, 0x0D):
                if esc == 0x0D and pos < n and data[pos] == 0x0A:
                    pos += 1
            elif esc in _OCTAL:
                value = esc - 0x30
                for _ in range(2):
                    if pos >= n or data[pos] not in _OCTAL:
                        break
                    value = value * 8 + data[pos] - 0x30
                    pos += 1
                out.append(value & 0xFF)
            else:
                out.append(esc)
        else:
            out.append(b)
            pos += 1
    return bytes(out), pos


def _read_hex_string(data: bytes, pos: int) -> tuple[bytes, int]:
    pos += 1
    digits = bytearray()
    n = len(data)
    while pos < n and data[pos] != 0x3E:
        if data[pos] in _HEX_CHARS:
            digits.append(data[pos])
        pos += 1
    if pos < n:
        pos += 1
    if len(digits) % 2:
        digits.append(0x30)
    return bytes.fromhex(digits.decode("ascii")), pos


def _read_array(data: bytes, pos: int) -> tuple[tuple[Token, ...], int]:
    pos += 1
    items: list[Token] = []
    n = len(data)
    while pos < n:
        pos = skip_content_ws(data, pos)
        if pos >= n:
            break
        if data[pos] == 0x5D:
            pos += 1
            break
        result = read_token(data, pos)
        if result is None:
            pos += 1
            continue
        tok, pos = result
        if tok.kind in (TokenKind.STRING, TokenKind.NUMBER):
            items.append(tok)
    return tuple(items), pos


def _read_number(data: bytes, pos: int) -> tuple[float, int] | None:
    start = pos
    n = len(data)
    if pos < n and data[pos] in (0x2B, 0x2D):
        pos += 1
    has_digit = False
    while pos < n and data[pos] in _DIGITS:
        has_digit = True
        pos += 1
    if pos < n and data[pos] == 0x2E:
        pos += 1
        while pos < n and data[pos] in _DIGITS:
            has_digit = True
            pos += 1
    if not has_digit:
        return None
    if pos < n and not is_delimiter(data[pos]) and not is_whitespace(data[pos]):
        return None
    return float(data[start:pos].decode("ascii")), pos


def _collapse_spaces(line: str) -> str:
    out: list[str] = []
    prev_space = False
    for ch in line:
        if ch in " \t":
            if not prev_space:
                out.append(" ")
            prev_space = True
        else:
            out.append(ch)
            prev_space = False
    return "".join(out)


def normalize_text(s: str) -> str:
    """Collapse runs of spaces and tabs, trim line ends and outer newlines."""
    lines = (_collapse_spaces(line).rstrip() for line in s.split("\n"))
    return "\n".join(lines).strip("\n")