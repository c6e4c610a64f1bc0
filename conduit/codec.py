"""Conversion of values to and from their JSON wire envelope.

Values that JSON cannot carry travel as marker objects:

    bytes           {"customType": "buffer", "string": "<base64>"}
    FileBlob        {"customType": "file", "dataUrl": "data:<type>;base64,...",
                     "name": "<name>", "type": "<mime type>"}
    datetime        "2024-01-31T12:00:00.000Z"

Encoding and decoding walk dicts and lists in place. A field whose transform
fails is logged and left as it was; its siblings are still converted.
"""

import base64
import io
import logging
import mimetypes
import os
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from .exceptions import CodecError

logger = logging.getLogger(__name__)

ISO_DATE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d*)?(Z|[+-][\d:]*)?$"
)

_DATA_URL = re.compile(r"^data:(?P<type>[^;,]*)(?:;base64)?,(?P<data>.*)$", re.DOTALL)

_UNCHANGED = object()


@dataclass
class FileBlob:
    """A named binary payload, the decoded form of a file envelope."""

    name: str
    data: bytes
    type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: str) -> "FileBlob":
        """Read a file from disk, guessing its mime type from the name."""
        with open(path, "rb") as f:
            data = f.read()
        mime, _ = mimetypes.guess_type(path)
        return cls(name=os.path.basename(path), data=data, type=mime or cls.type)


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as produced by JavaScript's toISOString().

    Fractional seconds of any length are truncated to microseconds and a
    trailing ``Z`` is read as UTC.
    """
    match = ISO_DATE.match(value)
    if match is None:
        raise CodecError(f"Not an ISO-8601 timestamp: {value!r}")

    year, month, day, hour, minute, second, fraction, zone = match.groups()
    microsecond = int((fraction or ".")[1:7].ljust(6, "0"))

    tzinfo = None
    if zone == "Z":
        tzinfo = timezone.utc
    elif zone:
        offset = datetime.strptime(zone.replace(":", ""), "%z").utcoffset()
        tzinfo = timezone(offset)

    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            microsecond, tzinfo=tzinfo,
        )
    except ValueError as e:
        raise CodecError(f"Invalid timestamp {value!r}: {e}")


def format_iso_datetime(value: date) -> str:
    """Format a date or datetime the way the server expects."""
    if not isinstance(value, datetime):
        return value.isoformat()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    return value.isoformat(timespec="milliseconds")


class Codec:
    """Encode outgoing values and decode incoming ones.

    Example:
        codec = Codec()

        body = codec.encode({"avatar": b"\\x89PNG", "at": datetime.now()})
        # {'avatar': {'customType': 'buffer', 'string': 'iVBORw=='}, 'at': '...'}

        doc = codec.decode({"at": "2024-01-31T12:00:00.000Z"})
        # {'at': datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)}
    """

    def encode(self, value: Any) -> Any:
        """Convert a value and everything inside it to its wire form."""
        return self._traverse(value, self._outgoing)

    def decode(self, value: Any) -> Any:
        """Convert a wire value and everything inside it back to Python values."""
        return self._traverse(value, self._incoming)

    def _traverse(self, value: Any, replacer: Callable[[Any], Any]) -> Any:
        replaced = self._replace(value, replacer)
        if replaced is not _UNCHANGED:
            return replaced
        if isinstance(value, tuple):
            value = list(value)
        if isinstance(value, (dict, list)):
            self._walk(value, replacer)
        return value

    def _walk(self, container: Any, replacer: Callable[[Any], Any]) -> None:
        keys = container.keys() if isinstance(container, dict) else range(len(container))
        for key in list(keys):
            child = container[key]
            replaced = self._replace(child, replacer, key)
            if replaced is not _UNCHANGED:
                container[key] = replaced
                continue
            if isinstance(child, tuple):
                child = container[key] = list(child)
            if isinstance(child, (dict, list)):
                self._walk(child, replacer)

    def _replace(self, value: Any, replacer: Callable[[Any], Any], key: Any = None) -> Any:
        try:
            return replacer(value)
        except Exception as e:
            logger.warning("Could not convert field %r: %s", key, e)
            return _UNCHANGED

    # Outgoing

    def _outgoing(self, value: Any) -> Any:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self._buffer_to_envelope(bytes(value))
        if isinstance(value, FileBlob):
            return self._file_to_envelope(value)
        if isinstance(value, io.BufferedIOBase) or isinstance(value, io.RawIOBase):
            return self._file_to_envelope(self._read_file(value))
        if isinstance(value, date):
            return format_iso_datetime(value)
        return _UNCHANGED

    @staticmethod
    def _buffer_to_envelope(data: bytes) -> dict:
        return {"customType": "buffer", "string": base64.b64encode(data).decode("ascii")}

    @staticmethod
    def _file_to_envelope(blob: FileBlob) -> dict:
        encoded = base64.b64encode(blob.data).decode("ascii")
        return {
            "customType": "file",
            "dataUrl": f"data:{blob.type};base64,{encoded}",
            "name": blob.name,
            "type": blob.type,
        }

    @staticmethod
    def _read_file(handle: Any) -> FileBlob:
        name = os.path.basename(str(getattr(handle, "name", "") or "file"))
        mime, _ = mimetypes.guess_type(name)
        return FileBlob(name=name, data=handle.read(), type=mime or FileBlob.type)

    # Incoming

    def _incoming(self, value: Any) -> Any:
        if isinstance(value, dict):
            custom_type = value.get("customType")
            if custom_type == "file":
                return self._envelope_to_file(value)
            if custom_type == "buffer":
                return self._envelope_to_buffer(value)
            return _UNCHANGED
        if isinstance(value, str) and ISO_DATE.match(value):
            return parse_iso_datetime(value)
        return _UNCHANGED

    @staticmethod
    def _envelope_to_buffer(envelope: dict) -> bytes:
        try:
            return base64.b64decode(envelope["string"], validate=True)
        except (KeyError, TypeError, ValueError) as e:
            raise CodecError(f"Malformed buffer envelope: {e}")

    @staticmethod
    def _envelope_to_file(envelope: dict) -> FileBlob:
        match = _DATA_URL.match(envelope.get("dataUrl") or "")
        if match is None:
            raise CodecError("Malformed file envelope: missing data URL")
        try:
            data = base64.b64decode(match.group("data"), validate=True)
        except ValueError as e:
            raise CodecError(f"Malformed file envelope: {e}")
        mime: Optional[str] = envelope.get("type") or match.group("type")
        return FileBlob(name=envelope.get("name", ""), data=data, type=mime or FileBlob.type)
