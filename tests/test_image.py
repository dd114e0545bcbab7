import io
import struct
import zlib

import pytest
from PIL import Image as PILImage

from pdfglean.document import PdfFile
from pdfglean.image import (
    ColorSpace,
    ImageSkipped,
    cmyk_to_rgb,
    encode_raster_as_png,
    extract_page_images,
    image_from_stream,
    resolve_image_color_space,
    unpack_indices,
    wrap_ccitt_as_tiff,
)
from pdfglean.objects import PdfError, PdfName, PdfRef, PdfStream, PdfString

JPEG_STUB = bytes([0xFF, 0xD8, 0xFF, 0xD9])


def flate(raw: bytes) -> bytes:
    return zlib.compress(raw)


def decode_png(data: bytes) -> PILImage.Image:
    img = PILImage.open(io.BytesIO(data))
    img.load()
    return img


def rgb_at(img: PILImage.Image, x: int, y: int) -> tuple[int, int, int]:
    return img.convert("RGB").getpixel((x, y))


def raster_stream(width, height, color_space, raw, bpc=8):
    return PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": width,
            "Height": height,
            "BitsPerComponent": bpc,
            "ColorSpace": color_space,
            "Filter": PdfName("FlateDecode"),
        },
        flate(raw),
    )


def test_encode_raster_rejects_hostile_dimensions():
    cs = ColorSpace("rgb", "DeviceRGB")
    with pytest.raises(ImageSkipped) as info:
        encode_raster_as_png(b"", 1_000_000, 1_000_000, 8, cs)
    assert "dimensions" in info.value.reason or "pixel" in info.value.reason


def test_encode_raster_rejects_zero_dimensions():
    with pytest.raises(PdfError):
        encode_raster_as_png(b"", 0, 5, 8, ColorSpace("gray", "DeviceGray"))


def test_encode_raster_short_gray_is_error():
    with pytest.raises(PdfError, match="too short"):
        encode_raster_as_png(b"\x00", 2, 2, 8, ColorSpace("gray", "DeviceGray"))


def test_encode_raster_unsupported_colorspace_skipped():
    with pytest.raises(ImageSkipped, match="Lab"):
        encode_raster_as_png(b"\x00" * 4, 2, 2, 8, ColorSpace("", "Lab"))


def test_encode_raster_unsupported_bpc_skipped():
    with pytest.raises(ImageSkipped, match="16 bpc"):
        encode_raster_as_png(b"\x00" * 8, 2, 2, 16, ColorSpace("gray", "DeviceGray"))


def test_wrap_ccitt_rejects_hostile_dimensions():
    with pytest.raises(PdfError):
        wrap_ccitt_as_tiff(b"\x00", 1_000_000, 1_000_000, {})


def test_wrap_ccitt_rejects_hostile_columns_override():
    with pytest.raises(PdfError):
        wrap_ccitt_as_tiff(b"\x00", 100, 100, {"Columns": 5_000_000_000})


def test_wrap_ccitt_header_fields():
    payload = b"\xde\xad\xbe\xef"
    data = wrap_ccitt_as_tiff(payload, 16, 8, {"K": -1, "BlackIs1": True})
    assert data[:4] == b"II\x2a\x00"
    assert struct.unpack_from("<I", data, 4)[0] == 8
    assert struct.unpack_from("<H", data, 8)[0] == 9
    entries = {}
    for i in range(9):
        tag, typ, count, value = struct.unpack_from("<HHII", data, 10 + i * 12)
        entries[tag] = value
    assert entries[256] == 16
    assert entries[257] == 8
    assert entries[259] == 4
    assert entries[262] == 1
    assert entries[279] == len(payload)
    assert data[entries[273]:] == payload


def test_wrap_ccitt_group3_default():
    data = wrap_ccitt_as_tiff(b"\x01", 4, 4, None)
    _, _, _, compression = struct.unpack_from("<HHII", data, 10 + 3 * 12)
    _, _, _, photometric = struct.unpack_from("<HHII", data, 10 + 4 * 12)
    assert compression == 3
    assert photometric == 0


def test_dct_passthrough():
    doc = PdfFile()
    raw = bytes([0xFF, 0xD8, 0xFF, 0xD9]) + b"hi"
    stream = PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": 640,
            "Height": 480,
            "BitsPerComponent": 8,
            "ColorSpace": PdfName("DeviceRGB"),
            "Filter": PdfName("DCTDecode"),
        },
        raw,
    )
    img = image_from_stream(doc, stream, 3, "Im0")
    assert img.page == 3
    assert img.name == "Im0"
    assert (img.width, img.height) == (640, 480)
    assert img.filter == "DCTDecode"
    assert img.ext == "jpg"
    assert img.data == raw
    assert img.color_space == "DeviceRGB"


def test_jpx_passthrough():
    doc = PdfFile()
    raw = b"fake-jp2-bytes"
    stream = PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": 100,
            "Height": 50,
            "Filter": PdfName("JPXDecode"),
        },
        raw,
    )
    img = image_from_stream(doc, stream, 1, "Im1")
    assert img.ext == "jp2"
    assert img.data == raw


def test_filter_chain_uses_outer_filter():
    doc = PdfFile()
    stream = PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": 1,
            "Height": 1,
            "Filter": [PdfName("ASCII85Decode"), PdfName("DCTDecode")],
        },
        JPEG_STUB,
    )
    img = image_from_stream(doc, stream, 1, "Im0")
    assert img.filter == "DCTDecode"
    assert img.ext == "jpg"


def test_flate_device_gray8():
    doc = PdfFile()
    raw = bytes([0x00, 0x40, 0x80, 0xC0, 0x10, 0x50, 0x90, 0xD0])
    img = image_from_stream(doc, raster_stream(4, 2, PdfName("DeviceGray"), raw), 1, "Im0")
    assert img.ext == "png"
    decoded = decode_png(img.data)
    assert decoded.mode == "L"
    assert decoded.size == (4, 2)
    assert decoded.getpixel((0, 0)) == 0x00
    assert decoded.getpixel((3, 0)) == 0xC0
    assert decoded.getpixel((0, 1)) == 0x10
    assert decoded.getpixel((3, 1)) == 0xD0


def test_flate_device_rgb8():
    doc = PdfFile()
    raw = bytes([0xFF, 0x00, 0x00, 0x00, 0xFF, 0x00])
    img = image_from_stream(doc, raster_stream(2, 1, PdfName("DeviceRGB"), raw), 1, "Im0")
    assert img.ext == "png"
    decoded = decode_png(img.data)
    assert decoded.size == (2, 1)
    assert rgb_at(decoded, 0, 0) == (0xFF, 0x00, 0x00)
    assert rgb_at(decoded, 1, 0) == (0x00, 0xFF, 0x00)


def test_flate_device_cmyk8():
    doc = PdfFile()
    raw = bytes([
        0xFF, 0x00, 0x00, 0x00,
        0x00, 0xFF, 0x00, 0x00,
        0x00, 0x00, 0xFF, 0x00,
        0x00, 0x00, 0x00, 0xFF,
    ])
    img = image_from_stream(doc, raster_stream(4, 1, PdfName("DeviceCMYK"), raw), 1, "Im0")
    assert img.ext == "png"
    decoded = decode_png(img.data)
    expected = [(0x00, 0xFF, 0xFF), (0xFF, 0x00, 0xFF), (0xFF, 0xFF, 0x00), (0, 0, 0)]
    assert [rgb_at(decoded, x, 0) for x in range(4)] == expected


def test_ccitt_fax_passthrough():
    doc = PdfFile()
    raw = bytes([0xDE, 0xAD, 0xBE, 0xEF])
    stream = PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": 16,
            "Height": 8,
            "Filter": PdfName("CCITTFaxDecode"),
            "DecodeParms": {"K": -1, "Columns": 16, "BlackIs1": False},
        },
        raw,
    )
    img = image_from_stream(doc, stream, 5, "Im2")
    assert img.ext == "tif"
    assert img.data[:4] == b"II\x2a\x00"
    assert raw in img.data


def test_unsupported_filter_is_skipped():
    doc = PdfFile()
    stream = PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": 10,
            "Height": 10,
            "Filter": PdfName("JBIG2Decode"),
        },
        b"\x00\x01\x02",
    )
    with pytest.raises(ImageSkipped) as info:
        image_from_stream(doc, stream, 1, "Im0")
    assert "JBIG2Decode" in info.value.reason


def test_icc_based_n3():
    doc = PdfFile()
    doc.cache[50] = PdfStream({"N": 3}, b"dummy-icc-profile")
    cs = [PdfName("ICCBased"), PdfRef(50)]
    img = image_from_stream(doc, raster_stream(1, 1, cs, bytes([0xFF, 0, 0])), 1, "Im0")
    assert img.ext == "png"
    assert img.color_space == "ICCBased (N=3)"
    assert rgb_at(decode_png(img.data), 0, 0) == (0xFF, 0x00, 0x00)


def test_icc_based_n1():
    doc = PdfFile()
    doc.cache[51] = PdfStream({"N": 1}, b"dummy")
    cs = [PdfName("ICCBased"), PdfRef(51)]
    img = image_from_stream(doc, raster_stream(2, 1, cs, bytes([0x80, 0x40])), 1, "Im0")
    decoded = decode_png(img.data)
    assert decoded.mode == "L"
    assert decoded.getpixel((0, 0)) == 0x80
    assert decoded.getpixel((1, 0)) == 0x40


def test_indexed_device_rgb_inline_palette():
    doc = PdfFile()
    palette = PdfString(bytes([0xFF, 0, 0, 0, 0xFF, 0, 0, 0, 0xFF]))
    cs = [PdfName("Indexed"), PdfName("DeviceRGB"), 2, palette]
    img = image_from_stream(doc, raster_stream(4, 1, cs, bytes([0, 1, 2, 1])), 1, "Im0")
    assert img.ext == "png"
    decoded = decode_png(img.data)
    expected = [(0xFF, 0, 0), (0, 0xFF, 0), (0, 0, 0xFF), (0, 0xFF, 0)]
    assert [rgb_at(decoded, x, 0) for x in range(4)] == expected


def test_indexed_device_cmyk_stream_palette():
    doc = PdfFile()
    doc.cache[60] = PdfStream({}, bytes([0xFF, 0, 0, 0, 0, 0, 0, 0xFF]))
    cs = [PdfName("Indexed"), PdfName("DeviceCMYK"), 1, PdfRef(60)]
    img = image_from_stream(doc, raster_stream(2, 1, cs, bytes([0, 1])), 1, "Im0")
    decoded = decode_png(img.data)
    assert rgb_at(decoded, 0, 0) == (0x00, 0xFF, 0xFF)
    assert rgb_at(decoded, 1, 0) == (0x00, 0x00, 0x00)


def test_indexed_4bpc():
    doc = PdfFile()
    palette = PdfString(bytes([
        0xFF, 0, 0,
        0, 0xFF, 0,
        0, 0, 0xFF,
        0xFF, 0xFF, 0xFF,
    ]))
    cs = [PdfName("Indexed"), PdfName("DeviceRGB"), 3, palette]
    img = image_from_stream(doc, raster_stream(4, 1, cs, bytes([0x01, 0x23]), bpc=4), 1, "Im0")
    decoded = decode_png(img.data)
    expected = [(0xFF, 0, 0), (0, 0xFF, 0), (0, 0, 0xFF), (0xFF, 0xFF, 0xFF)]
    assert [rgb_at(decoded, x, 0) for x in range(4)] == expected


def test_indexed_short_palette_label():
    doc = PdfFile()
    cs = [PdfName("Indexed"), PdfName("DeviceRGB"), 2, PdfString(b"\x00\x00\x00")]
    resolved = resolve_image_color_space(doc, cs)
    assert resolved.kind == ""
    assert resolved.label == "Indexed (DeviceRGB, short palette)"


def test_unknown_name_colorspace_keeps_label():
    resolved = resolve_image_color_space(PdfFile(), PdfName("Lab"))
    assert resolved == ColorSpace("", "Lab")


def test_cmyk_to_rgb_pure_channels():
    assert cmyk_to_rgb(0xFF, 0, 0, 0) == (0, 0xFF, 0xFF)
    assert cmyk_to_rgb(0, 0xFF, 0, 0) == (0xFF, 0, 0xFF)
    assert cmyk_to_rgb(0, 0, 0xFF, 0) == (0xFF, 0xFF, 0)
    assert cmyk_to_rgb(0, 0, 0, 0xFF) == (0, 0, 0)


def test_unpack_indices_1bpc():
    assert unpack_indices(b"\xa0", 3, 1, 1) == bytes([1, 0, 1])


def test_unpack_indices_rejects_bad_bpc():
    with pytest.raises(PdfError, match="unsupported bpc"):
        unpack_indices(b"\x00", 1, 1, 3)


def test_unpack_indices_too_short():
    with pytest.raises(PdfError, match="too short"):
        unpack_indices(b"\x00", 4, 2, 4)


def test_extract_page_images_no_resources():
    doc = PdfFile()
    doc.cache[1] = {"Type": PdfName("Page")}
    assert extract_page_images(doc, PdfRef(1), 1) == []


def test_extract_page_images_rejects_non_dict_page():
    doc = PdfFile()
    doc.cache[1] = 42
    with pytest.raises(PdfError, match="not a dict"):
        extract_page_images(doc, PdfRef(1), 1)


def test_extract_page_images_filters_by_image_subtype():
    doc = PdfFile()
    doc.cache[10] = PdfStream({"Subtype": PdfName("Form")}, b"q Q")
    doc.cache[11] = PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": 8,
            "Height": 8,
            "BitsPerComponent": 8,
            "ColorSpace": PdfName("DeviceRGB"),
            "Filter": PdfName("DCTDecode"),
        },
        JPEG_STUB,
    )
    doc.cache[1] = {
        "Type": PdfName("Page"),
        "Resources": {"XObject": {"Fm0": PdfRef(10), "Im0": PdfRef(11)}},
    }
    images = extract_page_images(doc, PdfRef(1), 7)
    assert len(images) == 1
    assert images[0].page == 7
    assert images[0].name == "Im0"
    assert images[0].ext == "jpg"


def _dct_stream(width=1, height=1):
    return PdfStream(
        {
            "Subtype": PdfName("Image"),
            "Width": width,
            "Height": height,
            "Filter": PdfName("DCTDecode"),
        },
        JPEG_STUB,
    )


def test_extract_page_images_stable_order():
    doc = PdfFile()
    for num in (20, 21, 22):
        doc.cache[num] = _dct_stream()
    doc.cache[1] = {
        "Resources": {
            "XObject": {"ImB": PdfRef(21), "ImA": PdfRef(20), "ImC": PdfRef(22)}
        }
    }
    images = extract_page_images(doc, PdfRef(1), 1)
    assert [img.name for img in images] == ["ImA", "ImB", "ImC"]


def test_extract_page_images_skips_unsupported():
    doc = PdfFile()
    doc.cache[10] = PdfStream(
        {"Subtype": PdfName("Image"), "Width": 2, "Height": 2,
         "Filter": PdfName("JBIG2Decode")},
        b"\x00",
    )
    doc.cache[11] = _dct_stream()
    doc.cache[1] = {"Resources": {"XObject": {"Im0": PdfRef(10), "Im1": PdfRef(11)}}}
    images = extract_page_images(doc, PdfRef(1), 1)
    assert [img.name for img in images] == ["Im1"]


def test_extract_page_images_attaches_bbox():
    doc = PdfFile()
    for num in (10, 11, 12):
        doc.cache[num] = _dct_stream(100, 50)
    doc.cache[20] = PdfStream(
        {},
        b"""
            q 100 0 0 50 0   200 cm /ImA Do Q
            q 100 0 0 50 100 200 cm /ImB Do Q
            q 100 0 0 50 200 200 cm /ImC Do Q
        """,
    )
    doc.cache[1] = {
        "Type": PdfName("Page"),
        "Resources": {
            "XObject": {"ImA": PdfRef(10), "ImB": PdfRef(11), "ImC": PdfRef(12)}
        },
        "Contents": PdfRef(20),
    }
    images = extract_page_images(doc, PdfRef(1), 1)
    assert len(images) == 3
    expected = {
        "ImA": (0, 200, 100, 50),
        "ImB": (100, 200, 100, 50),
        "ImC": (200, 200, 100, 50),
    }
    for img in images:
        got = (img.bbox_x, img.bbox_y, img.bbox_w, img.bbox_h)
        assert got == pytest.approx(expected[img.name], abs=1e-6)


def test_extract_page_images_zero_bbox_without_contents():
    doc = PdfFile()
    doc.cache[10] = _dct_stream(8, 8)
    doc.cache[1] = {
        "Type": PdfName("Page"),
        "Resources": {"XObject": {"Im0": PdfRef(10)}},
    }
    images = extract_page_images(doc, PdfRef(1), 1)
    assert len(images) == 1
    assert images[0].bbox_w == 0
    assert images[0].bbox_h == 0