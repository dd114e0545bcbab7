# pdfglean

`pdfglean` works on the objects of a digital PDF document held in memory and
pulls out what a reader usually wants from them:

- the plain text of each page, decoded through the fonts' ToUnicode CMaps
  or a WinAnsi fallback;
- every embedded Image XObject, as bytes ready to write to disk
  (JPEG and JPEG 2000 passed through untouched, CCITT fax data wrapped in a
  minimal TIFF, raw rasters re-encoded as PNG);
- where on the page each image was painted, and which images sit next to
  each other so that a figure split into panels can be put back together.

It is built to fail cleanly on hostile input: nesting depth, decompressed
stream size and image pixel counts are capped, and reference cycles
(including a stream whose `/Length` refers to itself, or an object stream
that claims to live inside itself) are broken.

## Modules

| Module | What it does |
| --- | --- |
| `pdfglean.objects` | PDF value types (`PdfName`, `PdfString`, `PdfRef`, `PdfNull`, `PdfStream`) and the `PdfError` exception |
| `pdfglean.parser` | Low-level lexer and `parse_value` for PDF object syntax |
| `pdfglean.document` | `PdfFile`: object resolution through a cross-reference map, stream decoding, object streams; `decompress_flate`, `parse_obj_stm_contents` |
| `pdfglean.predictor` | `apply_predictor` for PNG row predictors |
| `pdfglean.cmap` | `parse_cmap` for ToUnicode CMaps (`bfchar` and `bfrange`) |
| `pdfglean.text` | `extract_text` and the content-stream tokenizer |
| `pdfglean.page` | `get_pages`, per-page font maps, `get_page_content`, `extract_page_text` |
| `pdfglean.bbox` | `Matrix`, `BBox` and `walk_xobject_placements` for image placement |
| `pdfglean.image` | `extract_page_images`, colour-space handling, PNG and TIFF output |
| `pdfglean.figure` | `FigureGroup`, `group_adjacent` and `stitch_group` for multi-panel figures |

## Examples

Build a small document in memory and read the text of its pages. `PdfFile`
takes the file bytes, a map from object number to `XrefEntry`, and the
trailer dictionary:

```python
from pdfglean.document import PdfFile, XrefEntry, XrefKind
from pdfglean.objects import PdfRef
from pdfglean.page import extract_page_text, get_pages

data = (
    b"1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj\n"
    b"2 0 obj << /Type /Pages /Kids [3 0 R] >> endobj\n"
    b"3 0 obj << /Type /Page /Contents 4 0 R >> endobj\n"
    b"4 0 obj << /Length 16 >> stream\nBT (Hello) Tj ET\nendstream endobj\n"
)
xref = {
    n: XrefEntry(XrefKind.UNCOMPRESSED, offset=data.index(b"%d 0 obj" % n))
    for n in range(1, 5)
}
doc = PdfFile(data, xref=xref, trailer={"Root": PdfRef(1)})

for ref in get_pages(doc):
    print(extract_page_text(doc, ref))   # "Hello"
```

Decode a content stream with a ToUnicode CMap:

```python
from pdfglean.cmap import parse_cmap
from pdfglean.text import extract_text

cmap = parse_cmap(b"""
beginbfchar
<48> <0048>
<69> <0069>
endbfchar
""")

content = b"BT /F0 10 Tf [(H) -200 (i)] TJ ET"
print(extract_text(content, {"F0": cmap}))   # "H i"
```

A font without a CMap falls back to treating each byte as a Latin-1 code
point, and `TJ` adjustments below -100 become word spaces.

Find where images are painted in a page's content stream:

```python
from pdfglean.bbox import walk_xobject_placements

placements = walk_xobject_placements(b"q 100 0 0 200 50 75 cm /Im0 Do Q")
# one placement named "Im0" whose box is x=50, y=75, w=100, h=200
```

The walker tracks `q`, `Q` and `cm`, so nested and rotated placements give
the correct axis-aligned box in page coordinates.

Undo a PNG row predictor after decompressing a stream:

```python
import zlib

from pdfglean.document import decompress_flate
from pdfglean.predictor import apply_predictor

compressed = zlib.compress(bytes([2, 10, 20, 30, 40, 2, 1, 2, 3, 4]))
rows = apply_predictor(decompress_flate(compressed), {"Predictor": 12, "Columns": 4})
# b"\x0a\x14\x1e\x28\x0b\x16\x21\x2c"
```

`decompress_flate` refuses any stream that would expand past 256 MiB.

## Images and figures

`extract_page_images(doc, ref, page_num)` returns every image on a page in
resource-name order, each an `Image` with its page, name, pixel size,
colour-space label, filter, recommended file extension, ready-to-write bytes
and the page-coordinate bounding box of its first placement (zero when the
image is never painted). Images whose filter or colour space is not
supported are logged and skipped rather than failing the page;
`image_from_stream` raises `ImageSkipped` for them.

`group_adjacent(images, tol_pt)` clusters images on the same page whose
boxes line up and share an edge within `tol_pt` points, ordered top to
bottom for vertical stacks and left to right for horizontal strips.
`stitch_group` composites such a group into a single PNG on a white
background; a single-panel group comes back unchanged.

## Errors

Malformed input raises `pdfglean.objects.PdfError` with a message naming
what went wrong (for example an unsupported filter, a depth limit, or a
decompression size cap).

## What it does not do

- It does not locate or parse a file's cross-reference table, cross-reference
  streams or trailer; the caller supplies the `xref` map and `trailer`
  dictionary to `PdfFile`. There is no single call that takes a path and
  returns text or images.
- There is no command-line tool.
- The only stream filter decoded is `FlateDecode` (with PNG predictors 10–15);
  other filters on content or raster streams raise `PdfError`, and the TIFF
  predictor 2 is not supported.
- A font's `/Encoding` entry is not consulted; fonts without a ToUnicode
  CMap use a fixed WinAnsi-style map.
- Raster images other than 8-bit gray, RGB and CMYK, or 1/2/4/8-bit indexed,
  are skipped.