"""Recovery of image placements from page content streams."""

from __future__ import annotations

from dataclasses import dataclass

from .text import TokenKind, read_token, skip_content_ws


@dataclass(frozen=True)
class BBox:
    """An axis-aligned rectangle in page points, lower-left origin."""

    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0


@dataclass(frozen=True)
class Matrix:
    """A PDF affine matrix ``[a b c d e f]``.

    A point (x, y) maps to (a*x + c*y + e, b*x + d*y + f).
    """

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    e: float = 0.0
    f: float = 0.0

    def concat(self, outer: Matrix) -> Matrix:
        """Return ``self`` applied inside ``outer``, as the ``cm`` operator does."""
        return Matrix(
            a=self.a * outer.a + self.b * outer.c,
            b=self.a * outer.b + self.b * outer.d,
            c=self.c * outer.a + self.d * outer.c,
            d=self.c * outer.b + self.d * outer.d,
            e=self.e * outer.a + self.f * outer.c + outer.e,
            f=self.e * outer.b + self.f * outer.d + outer.f,
        )

    def apply(self, x: float, y: float) -> tuple[float, float]:
        """Map a point through the matrix."""
        return self.a * x + self.c * y + self.e, self.b * x + self.d * y + self.f

    def unit_square_bbox(self) -> BBox:
        """Bounding box of the unit square after this matrix is applied."""
        corners = [self.apply(x, y) for x, y in ((0, 0), (1, 0), (0, 1), (1, 1))]
        xs = [p[0] for p in corners]
        ys = [p[1] for p in corners]
        return BBox(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


IDENTITY = Matrix()


@dataclass(frozen=True)
class XObjectPlacement:
    """One ``Do`` of a named XObject and where on the page it was painted."""

    name: str
    box: BBox


def walk_xobject_placements(content: bytes) -> list[XObjectPlacement]:
    """Return the page bbox of every XObject ``Do`` in stream order.

    Only ``q``, ``Q``, ``cm`` and ``Do`` affect the result; other operators
    simply consume their operands.
    """
    current = IDENTITY
    stack: list[Matrix] = []
    operands = []
    placements: list[XObjectPlacement] = []

    pos = 0
    n = len(content)
    while pos < n:
        pos = skip_content_ws(content, pos)
        if pos >= n:
            break
        result = read_token(content, pos)
        if result is None:
            pos += 1
            continue
        tok, pos = result

        if tok.kind is not TokenKind.OPERATOR:
            operands.append(tok)
            continue

        op = tok.text
        if op == "q":
            stack.append(current)
        elif op == "Q":
            if stack:
                current = stack.pop()
        elif op == "cm":
            if len(operands) >= 6:
                a, b, c, d, e, f = (t.number for t in operands[-6:])
                current = Matrix(a, b, c, d, e, f).concat(current)
        elif op == "Do":
            if operands and operands[-1].kind is TokenKind.NAME:
                name = operands[-1].text.removeprefix("/")
                placements.append(XObjectPlacement(name, current.unit_square_bbox()))
        operands.clear()

    return placements