"""Grouping of adjacent image panels into figures and stitching them."""

from __future__ import annotations

import io
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from .image import Image
from .objects import PdfError

VERTICAL = "vertical"
HORIZONTAL = "horizontal"

_WHITE = (0xFF, 0xFF, 0xFF, 0xFF)


@dataclass
class FigureGroup:
    """Images that the page layout shows belong together.

    ``parts`` is in display order: top to bottom for a vertical layout,
    left to right for a horizontal one. Single-panel groups have an empty
    ``layout``.
    """

    page: int = 0
    layout: str = ""
    parts: list[Image] = field(default_factory=list)


def group_adjacent(images: Sequence[Image], tol_pt: float) -> list[FigureGroup]:
    """Cluster images into figure groups, page by page.

    Two images are adjacent when they share a page, their extents on one
    axis match within ``tol_pt`` and their edges on the other axis abut
    within ``tol_pt``. Images with a zero-width bbox stay on their own.
    """
    by_page: dict[int, list[int]] = defaultdict(list)
    for i, img in enumerate(images):
        by_page[img.page].append(i)

    groups: list[FigureGroup] = []
    for page in sorted(by_page):
        groups.extend(_group_page(images, by_page[page], tol_pt))
    return groups


def _group_page(
    images: Sequence[Image], idxs: list[int], tol: float
) -> list[FigureGroup]:
    parent = list(range(len(idxs)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i, ia in enumerate(idxs):
        a = images[ia]
        for j in range(i + 1, len(idxs)):
            b = images[idxs[j]]
            if a.bbox_w == 0 or b.bbox_w == 0:
                continue
            if _adjacency_layout(a, b, tol):
                ri, rj = find(i), find(j)
                if ri != rj:
                    parent[ri] = rj

    components: dict[int, list[int]] = defaultdict(list)
    for i, idx in enumerate(idxs):
        components[find(i)].append(idx)

    page = images[idxs[0]].page
    out: list[FigureGroup] = []
    for members in sorted(components.values(), key=lambda m: m[0]):
        parts = [images[m] for m in members]
        layout = ""
        if len(parts) > 1:
            layout = _detect_layout(parts, tol)
            parts = _sort_parts(parts, layout)
        out.append(FigureGroup(page=page, layout=layout, parts=parts))
    return out


def _adjacency_layout(a: Image, b: Image, tol: float) -> str:
    x_same = (
        abs(a.bbox_x - b.bbox_x) <= tol
        and abs((a.bbox_x + a.bbox_w) - (b.bbox_x + b.bbox_w)) <= tol
    )
    y_same = (
        abs(a.bbox_y - b.bbox_y) <= tol
        and abs((a.bbox_y + a.bbox_h) - (b.bbox_y + b.bbox_h)) <= tol
    )
    y_abut = (
        abs(a.bbox_y - (b.bbox_y + b.bbox_h)) <= tol
        or abs(b.bbox_y - (a.bbox_y + a.bbox_h)) <= tol
    )
    x_abut = (
        abs(a.bbox_x - (b.bbox_x + b.bbox_w)) <= tol
        or abs(b.bbox_x - (a.bbox_x + a.bbox_w)) <= tol
    )
    if x_same and y_abut:
        return VERTICAL
    if y_same and x_abut:
        return HORIZONTAL
    return ""


def _detect_layout(parts: Sequence[Image], tol: float) -> str:
    """Pick the dominant axis of a group by majority pairwise adjacency."""
    vertical = horizontal = 0
    for i, a in enumerate(parts):
        for b in parts[i + 1:]:
            layout = _adjacency_layout(a, b, tol)
            if layout == VERTICAL:
                vertical += 1
            elif layout == HORIZONTAL:
                horizontal += 1
    return HORIZONTAL if horizontal > vertical else VERTICAL


def _sort_parts(parts: list[Image], layout: str) -> list[Image]:
    if layout == VERTICAL:
        # Page Y grows upward, so the top panel has the largest Y.
        return sorted(parts, key=lambda p: -p.bbox_y)
    if layout == HORIZONTAL:
        return sorted(parts, key=lambda p: p.bbox_x)
    return parts


def stitch_group(group: FigureGroup) -> Image:
    """Composite a multi-panel group into one PNG image.

    Panels are placed edge to edge in display order on a white canvas.
    A single-panel group returns its only part unchanged.
    """
    if not group.parts:
        raise PdfError(f"empty figure group on page {group.page}")
    if len(group.parts) == 1:
        return group.parts[0]

    panels = []
    for i, part in enumerate(group.parts):
        try:
            with PILImage.open(io.BytesIO(part.data)) as im:
                panels.append(im.convert("RGBA"))
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise PdfError(f"decode panel {i} ({part.name}): {exc}") from exc

    positions: list[tuple[int, int]] = []
    if group.layout == VERTICAL:
        total = 0
        for im in panels:
            positions.append((0, total))
            total += im.height
        size = (max(im.width for im in panels), total)
    elif group.layout == HORIZONTAL:
        total = 0
        for im in panels:
            positions.append((total, 0))
            total += im.width
        size = (total, max(im.height for im in panels))
    else:
        raise PdfError(
            f"unknown layout {group.layout!r} for group on page {group.page}"
        )

    canvas = PILImage.new("RGBA", size, _WHITE)
    for im, dest in zip(panels, positions):
        canvas.alpha_composite(im, dest=dest)

    buf = io.BytesIO()
    try:
        canvas.convert("RGB").save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise PdfError(f"png encode: {exc}") from exc

    parts = group.parts
    min_x = min(p.bbox_x for p in parts)
    min_y = min(p.bbox_y for p in parts)
    max_right = max(p.bbox_x + p.bbox_w for p in parts)
    max_top = max(p.bbox_y + p.bbox_h for p in parts)
    return Image(
        page=parts[0].page,
        name="+".join(p.name for p in parts),
        width=size[0],
        height=size[1],
        bits_per_component=8,
        color_space="stitched",
        filter="stitched",
        ext="png",
        data=buf.getvalue(),
        bbox_x=min_x,
        bbox_y=min_y,
        bbox_w=max_right - min_x,
        bbox_h=max_top - min_y,
    )