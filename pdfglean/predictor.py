"""Reversal of PNG row prediction applied before Flate compression."""

from __future__ import annotations

from collections.abc import Mapping

from .objects import PdfError


def _number(parms: Mapping[str, object], key: str, default: int) -> int:
    value = parms.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return default


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def apply_predictor(data: bytes, parms: Mapping[str, object]) -> bytes:
    """Undo the row prediction described by a /DecodeParms dictionary.

    Predictor 1 passes data through; 10 to 15 are PNG predictors, where
    each row's leading filter byte decides how that row is decoded.
    """
    predictor = _number(parms, "Predictor", 1)
    if predictor == 1:
        return bytes(data)
    if not 10 <= predictor <= 15:
        raise PdfError(f"predictor {predictor} not yet implemented")

    columns = _number(parms, "Columns", 1)
    colors = _number(parms, "Colors", 1)
    bits = _number(parms, "BitsPerComponent", 8)

    bpp = max((colors * bits + 7) // 8, 1)
    row_bytes = (columns * colors * bits + 7) // 8
    stride = row_bytes + 1

    if stride <= 1:
        raise PdfError(
            f"predictor: invalid row stride {stride} "
            f"(columns={columns} colors={colors} bits={bits})"
        )
    if len(data) % stride:
        raise PdfError(
            f"predictor: filtered length {len(data)} not a multiple of stride {stride}"
        )

    out = bytearray()
    prev = bytearray(row_bytes)
    for r in range(len(data) // stride):
        base = r * stride
        kind = data[base]
        filtered = data[base + 1:base + stride]
        row = bytearray(row_bytes)

        if kind == 0:
            row[:] = filtered
        elif kind == 1:
            for i, value in enumerate(filtered):
                left = row[i - bpp] if i >= bpp else 0
                row[i] = (value + left) & 0xFF
        elif kind == 2:
            for i, value in enumerate(filtered):
                row[i] = (value + prev[i]) & 0xFF
        elif kind == 3:
            for i, value in enumerate(filtered):
                left = row[i - bpp] if i >= bpp else 0
                row[i] = (value + (left + prev[i]) // 2) & 0xFF
        elif kind == 4:
            for i, value in enumerate(filtered):
                if i >= bpp:
                    a, c = row[i - bpp], prev[i - bpp]
                else:
                    a = c = 0
                row[i] = (value + _paeth(a, prev[i], c)) & 0xFF
        else:
            raise PdfError(f"predictor: unknown PNG filter byte {kind} at row {r}")

        out += row
        prev = row

    return bytes(out)