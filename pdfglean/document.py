"""An in-memory PDF document: object resolution, stream decoding and
PDF 1.5 object streams."""

from __future__ import annotations

import enum
import zlib
from dataclasses import dataclass, field

from .objects import PdfError, PdfName, PdfRef, PdfStream, PdfString
from .parser import (
    parse_value,
    read_int,
    skip_newline,
    skip_whitespace,
    skip_whitespace_and_comments,
)
from .predictor import apply_predictor

MAX_DECOMPRESSED_STREAM_SIZE = 256 * 1024 * 1024
"""Upper bound on the size of one decompressed stream, in bytes."""


class XrefKind(enum.IntEnum):
    """Classification of a cross-reference entry."""

    FREE = 0
    UNCOMPRESSED = 1
    COMPRESSED = 2


@dataclass(frozen=True)
class XrefEntry:
    """One cross-reference row; only the fields relevant to ``kind`` matter."""

    kind: XrefKind
    offset: int = 0
    obj_stm_num: int = 0
    obj_stm_idx: int = 0


@dataclass
class ObjStm:
    """A parsed object stream: the body bytes and (object number, offset) pairs.

    Offsets are relative to the start of ``body``.
    """

    body: bytes
    pairs: list[tuple[int, int]] = field(default_factory=list)


def decompress_flate(data: bytes) -> bytes:
    """Inflate zlib data, refusing output beyond the stream size cap."""
    cap = MAX_DECOMPRESSED_STREAM_SIZE
    inflater = zlib.decompressobj()
    try:
        decoded = inflater.decompress(data, cap)
    except zlib.error as exc:
        raise PdfError(f"flate decompress: {exc}") from exc

    if len(decoded) == cap:
        try:
            probe = inflater.decompress(inflater.unconsumed_tail, 1)
        except zlib.error:
            probe = b""
        if probe:
            raise PdfError(
                f"flate decompress: decoded size exceeds cap of {cap} bytes"
            )
        return decoded

    if not inflater.eof:
        raise PdfError("flate decompress: unexpected end of compressed data")
    return decoded


def parse_obj_stm_contents(data: bytes, n: int, first: int) -> ObjStm:
    """Split a decoded object stream into its index pairs and body.

    The prefix ``data[:first]`` holds ``n`` pairs of integers
    ``objNum offset``; the body is ``data[first:]``.
    """
    if first < 0 or first > len(data):
        raise PdfError(f"objstm: /First {first} out of range (len={len(data)})")
    if n < 0:
        raise PdfError(f"objstm: negative /N {n}")
    if n > first // 4 + 1:
        raise PdfError(f"objstm: /N {n} exceeds prefix capacity (first={first})")

    prefix = data[:first]
    pairs: list[tuple[int, int]] = []
    pos = 0
    for _ in range(n):
        pos = skip_whitespace(prefix, pos)
        try:
            obj_num, pos = read_int(prefix, pos)
        except PdfError as exc:
            raise PdfError(
                "objstm: reading obj number in prefix "
                f"(parsed {len(pairs)}/{n} pairs): {exc}"
            ) from exc
        pos = skip_whitespace(prefix, pos)
        try:
            offset, pos = read_int(prefix, pos)
        except PdfError as exc:
            raise PdfError(f"objstm: reading offset for obj {obj_num}: {exc}") from exc
        pairs.append((obj_num, offset))

    return ObjStm(body=bytes(data[first:]), pairs=pairs)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class PdfFile:
    """A PDF document held entirely in memory."""

    def __init__(
        self,
        data: bytes = b"",
        xref: dict[int, XrefEntry] | None = None,
        trailer: dict[str, object] | None = None,
    ):
        self.data = data
        self.xref: dict[int, XrefEntry] = xref if xref is not None else {}
        self.trailer: dict[str, object] = trailer if trailer is not None else {}
        self.cache: dict[int, object] = {}
        self.obj_stms: dict[int, ObjStm] = {}
        self._in_flight: set[int] = set()

    # --- object resolution -------------------------------------------------

    def resolve(self, value: object) -> object:
        """Follow an indirect reference; other values are returned unchanged.

        Returns None when the referenced object cannot be read, including
        when it is already being resolved further up the call chain.
        """
        if not isinstance(value, PdfRef):
            return value
        num = value.num
        if num in self.cache:
            return self.cache[num]
        if num in self._in_flight:
            return None
        self._in_flight.add(num)
        try:
            obj = self.read_object(num)
        except PdfError:
            return None
        finally:
            self._in_flight.discard(num)
        self.cache[num] = obj
        return obj

    def read_object(self, num: int) -> object:
        """Read object ``num`` through the cross-reference table."""
        entry = self.xref.get(num)
        if entry is None:
            raise PdfError(f"object {num} not found in xref")
        if entry.kind is XrefKind.UNCOMPRESSED:
            return self._read_uncompressed_object(num, entry.offset)
        if entry.kind is XrefKind.COMPRESSED:
            return self.read_compressed_object(num, entry.obj_stm_num, entry.obj_stm_idx)
        raise PdfError(f"object {num} is a free xref entry")

    def _read_uncompressed_object(self, num: int, offset: int) -> object:
        data = self.data
        if not 0 <= offset < len(data):
            raise PdfError(f"object {num}: offset {offset} out of range")
        pos = skip_whitespace_and_comments(data, offset)
        obj_num, pos = read_int(data, pos)
        _, pos = read_int(data, skip_whitespace(data, pos))
        pos = skip_whitespace(data, pos)
        if not data.startswith(b"obj", pos):
            raise PdfError(f"object {num}: missing 'obj' keyword at offset {pos}")
        if obj_num != num:
            raise PdfError(f"object {num}: header names object {obj_num}")

        value, pos = parse_value(data, pos + 3)
        pos = skip_whitespace_and_comments(data, pos)
        if not (isinstance(value, dict) and data.startswith(b"stream", pos)):
            return value

        start = skip_newline(data, pos + len(b"stream"))
        length = self.get_int(value.get("Length"), -1)
        if 0 <= length and start + length <= len(data):
            return PdfStream(value, bytes(data[start:start + length]))

        end = data.find(b"endstream", start)
        if end == -1:
            raise PdfError(f"object {num}: unterminated stream")
        body = data[start:end]
        if body.endswith(b"\r\n"):
            body = body[:-2]
        elif body.endswith((b"\n", b"\r")):
            body = body[:-1]
        return PdfStream(value, bytes(body))

    # --- object streams -----------------------------------------------------

    def read_compressed_object(self, num: int, stream_num: int, idx: int) -> object:
        """Extract object ``num`` stored at ``idx`` in object stream ``stream_num``."""
        stm = self.load_obj_stm(stream_num)
        if not 0 <= idx < len(stm.pairs):
            raise PdfError(
                f"objstm {stream_num}: index {idx} out of range "
                f"(have {len(stm.pairs)} objects)"
            )
        stored_num, offset = stm.pairs[idx]
        if stored_num != num:
            raise PdfError(
                f"objstm {stream_num} index {idx}: stored objNum {stored_num} "
                f"does not match requested {num}"
            )
        if not 0 <= offset <= len(stm.body):
            raise PdfError(
                f"objstm {stream_num} obj {num}: offset {offset} out of body range "
                f"(len={len(stm.body)})"
            )
        try:
            value, _ = parse_value(stm.body, offset)
        except PdfError as exc:
            raise PdfError(
                f"objstm {stream_num} obj {num} at offset {offset}: {exc}"
            ) from exc
        return value

    def load_obj_stm(self, stream_num: int) -> ObjStm:
        """Return the parsed object stream ``stream_num``, loading it once."""
        cached = self.obj_stms.get(stream_num)
        if cached is not None:
            return cached

        entry = self.xref.get(stream_num)
        if entry is not None and entry.kind is XrefKind.COMPRESSED:
            raise PdfError(f"objstm {stream_num} is itself listed as compressed (cycle)")

        try:
            raw = self.read_object(stream_num)
        except PdfError as exc:
            raise PdfError(f"loading objstm {stream_num}: {exc}") from exc
        if not isinstance(raw, PdfStream):
            raise PdfError(
                f"object {stream_num} is not a stream (got {type(raw).__name__})"
            )
        kind = raw.dictionary.get("Type")
        if kind != "ObjStm":
            raise PdfError(f"object {stream_num} /Type is {kind!r}, expected ObjStm")

        n = self.get_int(raw.dictionary.get("N"), -1)
        first = self.get_int(raw.dictionary.get("First"), -1)
        if n < 0 or first < 0:
            raise PdfError(
                f"objstm {stream_num} missing /N or /First (N={n} First={first})"
            )

        try:
            decoded = self.decode_stream(raw)
        except PdfError as exc:
            raise PdfError(f"decoding objstm {stream_num}: {exc}") from exc
        try:
            stm = parse_obj_stm_contents(decoded, n, first)
        except PdfError as exc:
            raise PdfError(f"parsing objstm {stream_num}: {exc}") from exc

        self.obj_stms[stream_num] = stm
        self.cache[stream_num] = raw
        return stm

    # --- stream decoding ------------------------------------------------------

    def decode_stream(self, stream: PdfStream) -> bytes:
        """Apply the stream's /Filter chain and /DecodeParms to its data."""
        spec = self.resolve(stream.dictionary.get("Filter"))
        if spec is None:
            return stream.data
        if isinstance(spec, PdfName):
            filters: list[object] = [spec]
        elif isinstance(spec, list):
            filters = spec
        else:
            raise PdfError(f"unexpected /Filter type {type(spec).__name__}")

        parms = self.resolve(stream.dictionary.get("DecodeParms"))

        def parms_at(i: int) -> dict[str, object] | None:
            if isinstance(parms, dict):
                return parms if i == 0 else None
            if isinstance(parms, list) and i < len(parms):
                return self.get_dict(parms[i])
            return None

        result = stream.data
        for i, item in enumerate(filters):
            name = self.get_name(item)
            if name == "FlateDecode":
                decoded = decompress_flate(result)
                p = parms_at(i)
                if p is not None:
                    try:
                        decoded = apply_predictor(decoded, p)
                    except PdfError as exc:
                        raise PdfError(f"FlateDecode predictor: {exc}") from exc
                result = decoded
            elif name == "":
                continue
            else:
                raise PdfError(f"unsupported stream filter: {name!r}")
        return result

    # --- typed accessors ------------------------------------------------------

    def get_dict(self, value: object) -> dict[str, object] | None:
        """Resolve ``value`` and return it if it is a dictionary."""
        resolved = self.resolve(value)
        return resolved if isinstance(resolved, dict) else None

    def get_array(self, value: object) -> list[object] | None:
        """Resolve ``value`` and return it if it is an array."""
        resolved = self.resolve(value)
        return resolved if isinstance(resolved, list) else None

    def get_name(self, value: object) -> str:
        """Resolve ``value`` and return its name, or "" if it is not a name."""
        resolved = self.resolve(value)
        return str(resolved) if isinstance(resolved, PdfName) else ""

    def get_stream(self, value: object) -> PdfStream | None:
        """Resolve ``value`` and return it if it is a stream."""
        resolved = self.resolve(value)
        return resolved if isinstance(resolved, PdfStream) else None

    def get_int(self, value: object, default: int) -> int:
        """Resolve ``value`` to an integer, or return ``default``."""
        resolved = self.resolve(value)
        if _is_number(resolved):
            return int(resolved)
        return default

    def get_string(self, value: object) -> bytes | None:
        """Resolve ``value`` and return its bytes if it is a string."""
        resolved = self.resolve(value)
        return bytes(resolved) if isinstance(resolved, PdfString) else None