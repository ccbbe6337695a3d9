"""Value codec for storing arbitrary Python values in Redis.

Redis only stores byte strings, so structured values are serialized on
write and reconstructed on read. Two on-disk layouts are supported:

Envelope (default):
    Every value starts with the marker byte ``0xC1`` followed by a one-byte
    format tag. ``0xC1`` is never a valid UTF-8 lead byte and is unused by
    msgpack, so text written by other clients cannot be mistaken for an
    envelope.

        b"\\xc1b" + raw bytes
        b"\\xc1s" + UTF-8 text
        b"\\xc1p" + pickle stream
        b"\\xc1m" + msgpack document

    Values without the marker were written by someone else and are returned
    unchanged as bytes.

Legacy (``envelope=False``):
    No header. Plain ASCII text, numbers and bytes are written raw; anything
    else is pickled. Reads sniff the pickle header to tell the two apart, so
    raw values that happen to look like a pickle stream are misread. Use this
    only to share keys with existing untagged data.

Security:
    Unpickling data from an untrusted Redis can execute arbitrary code. Use
    the msgpack serializer when the store is shared with untrusted writers.
"""

import logging
import pickle
from collections.abc import Callable
from typing import Any

import msgpack

from nscache.core.config import CacheSettings
from nscache.core.exceptions import CodecError, ConfigurationError

logger = logging.getLogger(__name__)

ENVELOPE_MARKER = b"\xc1"
TAG_BYTES = b"b"
TAG_TEXT = b"s"

_PICKLE_PROTO = 0x80
_PICKLE_STOP = b"."


class Serializer:
    """Base class for structured-value serializers."""

    name: str = ""
    tag: bytes = b""
    # Whether serialized output carries a signature that can be sniffed
    sniffable: bool = False

    def dumps(self, value: Any) -> bytes:
        raise NotImplementedError

    def loads(self, data: bytes) -> Any:
        raise NotImplementedError

    def looks_like_serialized(self, data: bytes) -> bool:
        """Check whether ``data`` carries this serializer's signature."""
        return False


class PickleSerializer(Serializer):
    """Pickle serializer.

    Handles cycles and shared references, and honours the ``__reduce__`` /
    ``__getstate__`` / ``__setstate__`` hooks objects use to freeze and thaw
    themselves. The protocol version is pinned so every writer produces the
    same header regardless of interpreter version.
    """

    name = "pickle"
    tag = b"p"
    sniffable = True

    def __init__(self, protocol: int = 4):
        if not 2 <= protocol <= pickle.HIGHEST_PROTOCOL:
            raise ConfigurationError(
                f"Unsupported pickle protocol {protocol}",
                details={"highest": pickle.HIGHEST_PROTOCOL},
            )
        self.protocol = protocol

    def dumps(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=self.protocol)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)

    def looks_like_serialized(self, data: bytes) -> bool:
        """Sniff the ``PROTO`` opcode, protocol byte and ``STOP`` terminator."""
        return (
            len(data) >= 3
            and data[0] == _PICKLE_PROTO
            and 2 <= data[1] <= pickle.HIGHEST_PROTOCOL
            and data.endswith(_PICKLE_STOP)
        )


class MsgpackSerializer(Serializer):
    """MessagePack serializer for compact, cross-language storage.

    Does not support cycles. Custom types can be frozen through ``default``
    (called for objects msgpack cannot pack) and thawed through ``ext_hook``.
    """

    name = "msgpack"
    tag = b"m"

    def __init__(
        self,
        default: Callable[[Any], Any] | None = None,
        ext_hook: Callable[[int, bytes], Any] | None = None,
    ):
        self.default = default
        self.ext_hook = ext_hook

    def dumps(self, value: Any) -> bytes:
        packed: bytes = msgpack.packb(value, use_bin_type=True, default=self.default)
        return packed

    def loads(self, data: bytes) -> Any:
        kwargs: dict[str, Any] = {"raw": False, "strict_map_key": False}
        if self.ext_hook is not None:
            kwargs["ext_hook"] = self.ext_hook
        return msgpack.unpackb(data, **kwargs)


SERIALIZERS: dict[str, type[Serializer]] = {
    PickleSerializer.name: PickleSerializer,
    MsgpackSerializer.name: MsgpackSerializer,
}


class ValueCodec:
    """Encode values for storage and decode them on read.

    Args:
        serializer: Serializer for structured values (default pickle)
        envelope: Write the format header. ``False`` selects the legacy
            untagged layout, which needs a sniffable serializer.

    Raises:
        ConfigurationError: Legacy layout requested with a serializer that
            has no detectable signature.
    """

    def __init__(self, serializer: Serializer | None = None, envelope: bool = True):
        self.serializer = serializer or PickleSerializer()
        self.envelope = envelope

        if not envelope and not self.serializer.sniffable:
            raise ConfigurationError(
                f"Serializer {self.serializer.name!r} cannot be used without envelope",
                details={"serializer": self.serializer.name},
            )

        # Decoders for every serializer tag, so values written with another
        # serializer stay readable.
        self._by_tag: dict[bytes, Serializer] = {
            cls.tag: cls() for cls in SERIALIZERS.values()
        }
        self._by_tag[self.serializer.tag] = self.serializer

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "ValueCodec":
        """Build the codec described by ``settings``."""
        serializer = SERIALIZERS[settings.serializer]()
        return cls(serializer=serializer, envelope=settings.envelope)

    def encode(self, value: Any) -> bytes:
        """Convert ``value`` into the bytes stored in Redis.

        Raises:
            CodecError: If the value cannot be serialized.
        """
        if self.envelope:
            return self._encode_envelope(value)
        return self._encode_legacy(value)

    def decode(self, data: bytes) -> Any:
        """Reconstruct the value stored as ``data``.

        Raises:
            CodecError: If ``data`` claims to be serialized but is malformed.
        """
        if self.envelope:
            return self._decode_envelope(data)
        return self._decode_legacy(data)

    def _serialize(self, value: Any) -> bytes:
        try:
            return self.serializer.dumps(value)
        except Exception as e:
            raise CodecError(
                f"Cannot serialize {type(value).__name__} with {self.serializer.name}",
                details={"serializer": self.serializer.name},
            ) from e

    def _deserialize(self, serializer: Serializer, payload: bytes) -> Any:
        try:
            return serializer.loads(payload)
        except Exception as e:
            raise CodecError(
                f"Malformed {serializer.name} payload ({len(payload)} bytes)",
                details={"serializer": serializer.name},
            ) from e

    def _encode_envelope(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return ENVELOPE_MARKER + TAG_BYTES + bytes(value)
        if isinstance(value, str):
            try:
                return ENVELOPE_MARKER + TAG_TEXT + value.encode("utf-8")
            except UnicodeEncodeError as e:
                raise CodecError("Text is not encodable as UTF-8") from e
        return ENVELOPE_MARKER + self.serializer.tag + self._serialize(value)

    def _decode_envelope(self, data: bytes) -> Any:
        if not data.startswith(ENVELOPE_MARKER):
            logger.debug("Value without envelope returned as raw bytes")
            return data

        tag, payload = data[1:2], data[2:]
        if tag == TAG_BYTES:
            return payload
        if tag == TAG_TEXT:
            try:
                return payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CodecError("Malformed text payload") from e

        serializer = self._by_tag.get(tag)
        if serializer is None:
            raise CodecError(
                f"Unknown envelope tag {tag!r}", details={"tag": tag.hex()}
            )
        return self._deserialize(serializer, payload)

    def _encode_legacy(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str) and value.isascii():
            return value.encode("ascii")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value).encode("ascii")
        return self._serialize(value)

    def _decode_legacy(self, data: bytes) -> Any:
        if self.serializer.looks_like_serialized(data):
            return self._deserialize(self.serializer, data)
        return data
