"""Extraction of Image XObjects from pages as ready-to-write files."""

from __future__ import annotations

import io
import logging
import struct
from collections.abc import Mapping
from dataclasses import dataclass

from PIL import Image as PILImage

from .bbox import BBox, walk_xobject_placements
from .document import PdfFile
from .objects import PdfError, PdfName, PdfRef, PdfStream, PdfString
from .page import get_page_content

log = logging.getLogger(__name__)

MAX_IMAGE_PIXELS = 100 * 1000 * 1000
"""Largest width x height an extracted image may declare."""


@dataclass
class Image:
    """An extracted image whose ``data`` is already encoded as ``ext``.

    The bbox fields give the painted location on the page in points
    (lower-left origin); they stay zero when the image is never painted.
    """

    page: int = 0
    name: str = ""
    width: int = 0
    height: int = 0
    bits_per_component: int = 0
    color_space: str = ""
    filter: str = ""
    ext: str = ""
    data: bytes = b""
    bbox_x: float = 0.0
    bbox_y: float = 0.0
    bbox_w: float = 0.0
    bbox_h: float = 0.0


@dataclass(frozen=True)
class ColorSpace:
    """A resolved image colour space.

    ``kind`` is one of "gray", "rgb", "cmyk", "indexed_rgb", or "" when the
    space is not supported; ``label`` names it for reports. For indexed
    spaces ``palette_rgb`` holds the palette projected into RGB triples.
    """

    kind: str = ""
    label: str = ""
    palette_rgb: bytes = b""


class ImageSkipped(Exception):
    """Raised when an image cannot be written in its current form."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


_GRAY_NAMES = frozenset({"DeviceGray", "CalGray", "G"})
_RGB_NAMES = frozenset({"DeviceRGB", "CalRGB", "RGB"})
_CMYK_NAMES = frozenset({"DeviceCMYK", "CMYK"})
_STRIDES = {"gray": 1, "rgb": 3, "cmyk": 4}


def extract_page_images(doc: PdfFile, ref: PdfRef, page_num: int) -> list[Image]:
    """Return every Image XObject of a page, ordered by resource name.

    Images that cannot be written are logged and skipped.
    """
    page = doc.get_dict(doc.resolve(ref))
    if page is None:
        raise PdfError(f"page object {ref.num} is not a dict")

    resources = doc.get_dict(page.get("Resources"))
    if resources is None:
        return []
    xobjects = doc.get_dict(resources.get("XObject"))
    if xobjects is None:
        return []

    boxes: dict[str, BBox] = {}
    try:
        content = get_page_content(doc, page)
    except PdfError:
        content = b""
    for placement in walk_xobject_placements(content):
        boxes.setdefault(placement.name, placement.box)

    images: list[Image] = []
    for name in sorted(xobjects):
        stream = doc.get_stream(xobjects[name])
        if stream is None:
            continue
        if doc.get_name(stream.dictionary.get("Subtype")) != "Image":
            continue
        try:
            img = image_from_stream(doc, stream, page_num, name)
        except ImageSkipped as skip:
            log.warning("page %d image %r: %s, skipping", page_num, name, skip.reason)
            continue
        except PdfError as exc:
            log.warning("page %d image %r: %s", page_num, name, exc)
            continue
        box = boxes.get(name)
        if box is not None:
            img.bbox_x, img.bbox_y, img.bbox_w, img.bbox_h = box.x, box.y, box.w, box.h
        images.append(img)
    return images


def image_from_stream(doc: PdfFile, stream: PdfStream, page: int, name: str) -> Image:
    """Convert an /Image stream into a writable :class:`Image`.

    Raises :class:`ImageSkipped` for unsupported forms and
    :class:`PdfError` for hard decoding failures.
    """
    d = stream.dictionary
    cs = resolve_image_color_space(doc, d.get("ColorSpace"))
    img = Image(
        page=page,
        name=name,
        width=doc.get_int(d.get("Width"), 0),
        height=doc.get_int(d.get("Height"), 0),
        bits_per_component=doc.get_int(d.get("BitsPerComponent"), 8),
        color_space=cs.label,
    )
    outer = _outer_filter(doc, d.get("Filter"))
    img.filter = outer

    if outer == "DCTDecode":
        img.ext, img.data = "jpg", stream.data
    elif outer == "JPXDecode":
        img.ext, img.data = "jp2", stream.data
    elif outer == "CCITTFaxDecode":
        parms = doc.get_dict(d.get("DecodeParms")) or {}
        try:
            img.data = wrap_ccitt_as_tiff(stream.data, img.width, img.height, parms)
        except PdfError as exc:
            raise PdfError(f"ccitt tiff wrap: {exc}") from exc
        img.ext = "tif"
    elif outer in ("FlateDecode", "LZWDecode", ""):
        try:
            decoded = doc.decode_stream(stream)
        except PdfError as exc:
            raise PdfError(f"decode raster: {exc}") from exc
        try:
            img.data = encode_raster_as_png(
                decoded, img.width, img.height, img.bits_per_component, cs
            )
        except PdfError as exc:
            raise PdfError(f"png encode: {exc}") from exc
        img.ext = "png"
    else:
        raise ImageSkipped(f"unsupported filter {outer!r}")
    return img


def _outer_filter(doc: PdfFile, value: object) -> str:
    """Return the last filter of a /Filter chain, which fixes the byte format."""
    resolved = doc.resolve(value)
    if isinstance(resolved, PdfName):
        return str(resolved)
    if isinstance(resolved, list):
        return doc.get_name(resolved[-1]) if resolved else ""
    return ""


def resolve_image_color_space(doc: PdfFile, value: object) -> ColorSpace:
    """Resolve an image's /ColorSpace entry."""
    resolved = doc.resolve(value)
    if isinstance(resolved, PdfName):
        return _device_space(str(resolved))
    if isinstance(resolved, list):
        if not resolved:
            return ColorSpace()
        head = doc.get_name(resolved[0])
        if head == "ICCBased":
            return _resolve_icc_based(doc, resolved)
        if head in ("Indexed", "I"):
            return _resolve_indexed(doc, resolved)
        return _device_space(head)
    return ColorSpace()


def _device_space(name: str) -> ColorSpace:
    if name in _GRAY_NAMES:
        return ColorSpace("gray", name)
    if name in _RGB_NAMES:
        return ColorSpace("rgb", name)
    if name in _CMYK_NAMES:
        return ColorSpace("cmyk", name)
    return ColorSpace(label=name)


def _resolve_icc_based(doc: PdfFile, cs: list[object]) -> ColorSpace:
    if len(cs) < 2:
        return ColorSpace(label="ICCBased")
    stream = doc.get_stream(cs[1])
    if stream is None:
        return ColorSpace(label="ICCBased")
    n = doc.get_int(stream.dictionary.get("N"), 0)
    kind = {1: "gray", 3: "rgb", 4: "cmyk"}.get(n, "")
    return ColorSpace(kind, f"ICCBased (N={n})")


def _resolve_indexed(doc: PdfFile, cs: list[object]) -> ColorSpace:
    if len(cs) < 4:
        return ColorSpace(label="Indexed")
    base = resolve_image_color_space(doc, cs[1])
    hival = doc.get_int(cs[2], 0)
    if not 0 <= hival <= 255:
        return ColorSpace(label=f"Indexed ({base.label}, hival={hival})")

    lookup = _read_palette_bytes(doc, cs[3])
    stride = _STRIDES.get(base.kind)
    if lookup is None or stride is None:
        return ColorSpace(label=f"Indexed ({base.label})")
    if len(lookup) < (hival + 1) * stride:
        return ColorSpace(label=f"Indexed ({base.label}, short palette)")

    palette = bytearray()
    for i in range(hival + 1):
        entry = lookup[i * stride:(i + 1) * stride]
        if base.kind == "gray":
            palette += bytes((entry[0],) * 3)
        elif base.kind == "rgb":
            palette += entry
        else:
            palette += bytes(cmyk_to_rgb(*entry))
    return ColorSpace("indexed_rgb", f"Indexed ({base.label})", bytes(palette))


def _read_palette_bytes(doc: PdfFile, value: object) -> bytes | None:
    resolved = doc.resolve(value)
    if isinstance(resolved, PdfString):
        return bytes(resolved)
    if isinstance(resolved, PdfStream):
        try:
            return doc.decode_stream(resolved)
        except PdfError:
            return None
    return None


def cmyk_to_rgb(c: int, m: int, y: int, k: int) -> tuple[int, int, int]:
    """Convert 8-bit CMYK to RGB with the plain non-managed formula."""
    k_inv = 255 - k
    return (
        (255 - c) * k_inv // 255,
        (255 - m) * k_inv // 255,
        (255 - y) * k_inv // 255,
    )


def encode_raster_as_png(
    raster: bytes, width: int, height: int, bpc: int, color_space: ColorSpace
) -> bytes:
    """Encode a raw raster as PNG bytes.

    Raises :class:`ImageSkipped` for unsupported colour spaces, bit depths
    or excessive dimensions, and :class:`PdfError` for invalid input.
    """
    if width <= 0 or height <= 0:
        raise PdfError(f"invalid dimensions {width}x{height}")
    if width * height > MAX_IMAGE_PIXELS:
        raise ImageSkipped(
            f"dimensions {width}x{height} exceed pixel ceiling {MAX_IMAGE_PIXELS}"
        )
    kind = color_space.kind
    label = color_space.label
    if kind not in ("gray", "rgb", "cmyk", "indexed_rgb"):
        raise ImageSkipped(f"colorspace {label!r} not yet supported")

    pixels = width * height
    if kind != "indexed_rgb" and bpc != 8:
        raise ImageSkipped(f"{label} at {bpc} bpc not yet supported")

    if kind == "gray":
        if len(raster) < pixels:
            raise PdfError(f"gray raster too short: got {len(raster)}, want >={pixels}")
        img = PILImage.frombytes("L", (width, height), bytes(raster[:pixels]))
    elif kind == "rgb":
        need = pixels * 3
        if len(raster) < need:
            raise PdfError(f"rgb raster too short: got {len(raster)}, want >={need}")
        img = PILImage.frombytes("RGB", (width, height), bytes(raster[:need]))
    elif kind == "cmyk":
        need = pixels * 4
        if len(raster) < need:
            raise PdfError(f"cmyk raster too short: got {len(raster)}, want >={need}")
        rgb = bytearray(pixels * 3)
        for i in range(pixels):
            rgb[i * 3:i * 3 + 3] = cmyk_to_rgb(*raster[i * 4:i * 4 + 4])
        img = PILImage.frombytes("RGB", (width, height), bytes(rgb))
    else:
        indices = unpack_indices(raster, width, height, bpc)
        palette = color_space.palette_rgb
        entries = len(palette) // 3
        if entries == 0:
            raise PdfError("indexed: empty palette")
        table = [
            palette[min(i, entries - 1) * 3:min(i, entries - 1) * 3 + 3]
            for i in range(256)
        ]
        rgb = b"".join(table[i] for i in indices)
        img = PILImage.frombytes("RGB", (width, height), rgb)

    buf = io.BytesIO()
    try:
        img.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise PdfError(f"png encode: {exc}") from exc
    return buf.getvalue()


def unpack_indices(raster: bytes, width: int, height: int, bpc: int) -> bytes:
    """Unpack byte-aligned rows of 1, 2, 4 or 8-bit palette indices."""
    if bpc == 8:
        need = width * height
        if len(raster) < need:
            raise PdfError(f"indexed raster too short: got {len(raster)}, want >={need}")
        return bytes(raster[:need])
    if bpc not in (1, 2, 4):
        raise PdfError(f"indexed: unsupported bpc {bpc}")

    row_bytes = (width * bpc + 7) // 8
    if len(raster) < row_bytes * height:
        raise PdfError(
            f"indexed raster too short: got {len(raster)}, want >={row_bytes * height}"
        )
    mask = (1 << bpc) - 1
    out = bytearray(width * height)
    for y in range(height):
        row_start = y * row_bytes
        for x in range(width):
            bit_pos = x * bpc
            shift = 8 - bpc - bit_pos % 8
            out[y * width + x] = (raster[row_start + bit_pos // 8] >> shift) & mask
    return bytes(out)


def _number(parms: Mapping[str, object], key: str) -> int | float | None:
    value = parms.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def wrap_ccitt_as_tiff(
    payload: bytes, width: int, height: int, parms: Mapping[str, object] | None
) -> bytes:
    """Wrap a raw CCITT Group 3/4 bitstream in a minimal single-strip TIFF."""
    if width <= 0 or height <= 0:
        raise PdfError(f"invalid CCITT dimensions {width}x{height}")
    if width * height > MAX_IMAGE_PIXELS:
        raise PdfError(
            f"CCITT dimensions {width}x{height} exceed pixel ceiling {MAX_IMAGE_PIXELS}"
        )
    parms = parms or {}

    k_value = _number(parms, "K")
    k = int(k_value) if k_value is not None else 0
    cols = width
    columns = _number(parms, "Columns")
    if columns is not None:
        if columns < 0 or columns > MAX_IMAGE_PIXELS:
            raise PdfError(f"CCITT /Columns {float(columns)} out of range")
        cols = int(columns)
    black_is_1 = parms.get("BlackIs1")
    photometric = 1 if black_is_1 is True else 0
    compression = 4 if k < 0 else 3

    entries = [
        (256, 4, cols),            # ImageWidth
        (257, 4, height),          # ImageLength
        (258, 3, 1),               # BitsPerSample
        (259, 3, compression),     # Compression
        (262, 3, photometric),     # PhotometricInterpretation
        (273, 4, 0),               # StripOffsets, filled below
        (277, 3, 1),               # SamplesPerPixel
        (278, 4, height),          # RowsPerStrip
        (279, 4, len(payload)),    # StripByteCounts
    ]
    header_size = 8
    ifd_size = 2 + len(entries) * 12 + 4
    strip_offset = header_size + ifd_size

    out = bytearray(b"II")
    out += struct.pack("<HI", 42, header_size)
    out += struct.pack("<H", len(entries))
    for tag, typ, value in entries:
        if tag == 273:
            value = strip_offset
        out += struct.pack("<HHII", tag, typ, 1, value & 0xFFFFFFFF)
    out += struct.pack("<I", 0)
    out += payload
    return bytes(out)