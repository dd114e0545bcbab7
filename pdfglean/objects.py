"""In-memory representation of PDF objects.

PDF values map onto Python types as follows:

* dictionary  -> ``dict`` with ``str`` keys
* array       -> ``list``
* name        -> :class:`PdfName`
* string      -> :class:`PdfString` (raw bytes)
* number      -> ``int`` or ``float``
* boolean     -> ``bool``
* reference   -> :class:`PdfRef`
* null        -> :class:`PdfNull`
* stream      -> :class:`PdfStream`
"""

from __future__ import annotations

from dataclasses import dataclass, field


class PdfError(ValueError):
    """Raised when PDF data is malformed or cannot be processed."""


class PdfName(str):
    """A PDF name object such as ``/Type``, stored without the leading slash."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"PdfName({str.__repr__(self)})"


class PdfString(bytes):
    """A PDF string, literal or hex, held as the raw decoded bytes."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"PdfString({bytes.__repr__(self)})"


@dataclass(frozen=True)
class PdfRef:
    """An indirect object reference ``num gen R``."""

    num: int
    gen: int = 0

    def __str__(self) -> str:
        return f"{self.num} {self.gen} R"


@dataclass(frozen=True)
class PdfNull:
    """The PDF ``null`` object."""

    def __bool__(self) -> bool:
        return False


@dataclass
class PdfStream:
    """A stream object: its dictionary plus the raw, still-filtered data."""

    dictionary: dict[str, object] = field(default_factory=dict)
    data: bytes = b""