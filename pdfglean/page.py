"""Page-tree traversal, font maps and per-page text extraction."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .cmap import CMapTable, parse_cmap
from .document import PdfFile
from .objects import PdfError, PdfRef, PdfStream
from .text import extract_text

log = logging.getLogger(__name__)

_WIN_ANSI_HIGH = {
    0x80: 0x20AC,
    0x82: 0x201A,
    0x83: 0x0192,
    0x84: 0x201E,
    0x85: 0x2026,
    0x86: 0x2020,
    0x87: 0x2021,
    0x88: 0x02C6,
    0x89: 0x2030,
    0x8A: 0x0160,
    0x8B: 0x2039,
    0x8C: 0x0152,
    0x8E: 0x017D,
    0x91: 0x2018,
    0x92: 0x2019,
    0x93: 0x201C,
    0x94: 0x201D,
    0x95: 0x2022,
    0x96: 0x2013,
    0x97: 0x2014,
    0x98: 0x02DC,
    0x99: 0x2122,
    0x9A: 0x0161,
    0x9B: 0x203A,
    0x9C: 0x0153,
    0x9E: 0x017E,
    0x9F: 0x0178,
}


def get_pages(doc: PdfFile) -> list[PdfRef]:
    """Return references to every page object, in document order."""
    root = doc.get_dict(doc.trailer.get("Root"))
    if root is None:
        raise PdfError("no /Root in trailer")
    pages = doc.get_dict(root.get("Pages"))
    if pages is None:
        raise PdfError("no /Pages in root")
    return collect_pages(doc, pages)


def collect_pages(doc: PdfFile, node: dict[str, object]) -> list[PdfRef]:
    """Walk a /Pages node and collect references to its leaf pages."""
    return list(_walk_pages(doc, node, set()))


def _walk_pages(doc: PdfFile, node: dict[str, object], visited: set[int]):
    if doc.get_name(node.get("Type")) == "Page":
        return
    for kid in doc.get_array(node.get("Kids")) or []:
        if not isinstance(kid, PdfRef):
            continue
        kid_obj = doc.get_dict(kid)
        if kid_obj is None:
            continue
        kind = doc.get_name(kid_obj.get("Type"))
        if kind == "Page":
            yield kid
        elif kind == "Pages" and kid.num not in visited:
            visited.add(kid.num)
            yield from _walk_pages(doc, kid_obj, visited)


def extract_page_text(doc: PdfFile, ref: PdfRef) -> str:
    """Extract the plain text of the page that ``ref`` points to."""
    page = doc.get_dict(doc.resolve(ref))
    if page is None:
        raise PdfError(f"page object {ref.num} is not a dict")
    fonts = build_font_maps(doc, page)
    content = get_page_content(doc, page)
    return extract_text(content, fonts)


def build_font_maps(doc: PdfFile, page: dict[str, object]) -> dict[str, CMapTable]:
    """Build a character map for each font in the page's resources.

    Fonts with a readable ToUnicode CMap use it; others fall back to
    :func:`build_encoding_map`.
    """
    fonts: dict[str, CMapTable] = {}
    resources = doc.get_dict(page.get("Resources"))
    if resources is None:
        return fonts
    font_dict = doc.get_dict(resources.get("Font"))
    if font_dict is None:
        return fonts

    for name, font_ref in font_dict.items():
        font = doc.get_dict(font_ref)
        if font is None:
            log.warning("font %r could not be resolved", name)
            continue
        to_unicode = font.get("ToUnicode")
        if to_unicode is None:
            fonts[name] = build_encoding_map()
            continue
        stream = doc.get_stream(to_unicode)
        if stream is None:
            log.warning("font %r ToUnicode stream could not be read", name)
            fonts[name] = build_encoding_map()
            continue
        try:
            decoded = doc.decode_stream(stream)
        except PdfError as exc:
            log.warning("font %r ToUnicode stream decode error: %s", name, exc)
            fonts[name] = build_encoding_map()
            continue
        fonts[name] = parse_cmap(decoded)
    return fonts


def build_encoding_map() -> CMapTable:
    """Return a WinAnsi-style map for fonts without a ToUnicode CMap."""
    table: CMapTable = {code: chr(code) for code in range(32, 128)}
    for code in range(128, 256):
        table[code] = chr(_WIN_ANSI_HIGH.get(code, code))
    return table


def get_page_content(doc: PdfFile, page: dict[str, object]) -> bytes:
    """Decode and join the page's content stream(s); empty if it has none."""
    contents = page.get("Contents")
    if contents is None:
        return b""
    resolved = doc.resolve(contents)
    if isinstance(resolved, PdfStream):
        return doc.decode_stream(resolved)
    if isinstance(resolved, list):
        return decode_stream_array(doc, resolved)
    stream = doc.get_stream(contents)
    if stream is not None:
        return doc.decode_stream(stream)
    raise PdfError(f"unexpected Contents type: {type(resolved).__name__}")


def decode_stream_array(doc: PdfFile, items: Iterable[object]) -> bytes:
    """Decode each stream in ``items`` and join them, each followed by a newline.

    Entries that are not streams are skipped.
    """
    out = bytearray()
    for i, item in enumerate(items):
        stream = doc.get_stream(item)
        if stream is None:
            continue
        try:
            decoded = doc.decode_stream(stream)
        except PdfError as exc:
            num = item.num if isinstance(item, PdfRef) else 0
            raise PdfError(f"stream {i} (obj {num}): {exc}") from exc
        out += decoded
        out += b"\n"
    return bytes(out)