"""
Value objects for the two binary identifiers directories hand out: security
identifiers (``objectSid``) and globally unique identifiers (``objectGUID``).

Both accept either the canonical string form or the raw binary form returned by
the server and can convert between the two.
"""

import re
import struct
import uuid

from .utils import string_guid_to_hex

SID_REGEX = re.compile(r"^S-\d(-\d{1,10}){1,16}$", re.IGNORECASE)
GUID_REGEX = re.compile(
    r"^[0-9a-fA-F]{8}(-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12}$|^[0-9a-fA-F]{32}$"
)

#: revision, sub-authority count, 2 reserved bytes, big-endian authority
SID_HEADER = struct.Struct(">BBxxI")


class InvalidIdentifier(ValueError):
    """Raised when a value is neither a valid string nor a convertible binary."""


def _as_str_or_bytes(value: object) -> str | bytes | None:
    if isinstance(value, str | bytes):
        return value
    if isinstance(value, bytearray | memoryview):
        return bytes(value)
    return None


def _as_text(value: str | bytes | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    try:
        return value.decode("ascii")
    except UnicodeDecodeError:
        return None


def binary_sid_to_string(value: bytes) -> str | None:
    """
    Convert a binary SID to its ``S-R-A-S1-S2...`` string form.

    Args:
        value: the binary SID

    Returns:
        The string SID, or ``None`` if ``value`` is not a well formed binary SID.

    """
    if not value or len(value) < SID_HEADER.size:
        return None
    revision, count, authority = SID_HEADER.unpack_from(value)
    # Only read as many sub-authorities as the header announces
    if len(value) < SID_HEADER.size + 4 * count:
        return None
    sub_authorities = struct.unpack_from(f"<{count}I", value, SID_HEADER.size)
    return "-".join(["S", str(revision), str(authority)] + [str(s) for s in sub_authorities])


def binary_guid_to_string(value: bytes) -> str | None:
    """
    Convert a 16 byte binary GUID to its ``8-4-4-4-12`` string form.

    The first three groups are stored little-endian on the wire, the last two
    as-is.

    Args:
        value: the binary GUID

    Returns:
        The lowercase string GUID, or ``None`` if ``value`` is not 16 bytes.

    """
    if len(value) != 16:
        return None
    return str(uuid.UUID(bytes_le=bytes(value)))


class Sid:
    """
    A security identifier.

    Args:
        value: a string SID such as ``S-1-5-21-1004336348-1177238915-682003330-512``
            or its binary form

    Raises:
        InvalidIdentifier: ``value`` is neither a valid string SID nor a
            convertible binary SID.

    """

    def __init__(self, value: "str | bytes | bytearray | Sid") -> None:
        if isinstance(value, Sid):
            value = value.get_value()
        data = _as_str_or_bytes(value)
        text = _as_text(data)
        if text is not None and self.is_valid(text):
            self.value: str = text
        elif isinstance(data, bytes) and (converted := binary_sid_to_string(data)):
            self.value = converted
        else:
            msg = "Invalid Binary / String SID."
            raise InvalidIdentifier(msg)

    @staticmethod
    def is_valid(sid: str) -> bool:
        return bool(SID_REGEX.fullmatch(sid))

    def get_value(self) -> str:
        return self.value

    def get_binary(self) -> bytes:
        """
        Return the binary form of this SID.

        Raises:
            InvalidIdentifier: the authority or a sub-authority does not fit in
                32 bits.

        """
        _, revision, authority, *sub_authorities = self.value.split("-")
        try:
            return SID_HEADER.pack(
                int(revision), len(sub_authorities), int(authority)
            ) + struct.pack(f"<{len(sub_authorities)}I", *map(int, sub_authorities))
        except struct.error as e:
            msg = f"SID {self.value} cannot be represented in binary form."
            raise InvalidIdentifier(msg) from e

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"<Sid: {self.value}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sid):
            return False
        return self.value.upper() == other.value.upper()

    def __hash__(self) -> int:
        return hash(self.value.upper())


class Guid:
    """
    A globally unique identifier.

    Args:
        value: a string GUID (hyphenated ``8-4-4-4-12`` or 32 bare hex digits)
            or its 16 byte binary form

    Raises:
        InvalidIdentifier: ``value`` is neither a valid string GUID nor a
            16 byte binary GUID.

    """

    def __init__(self, value: "str | bytes | bytearray | Guid") -> None:
        if isinstance(value, Guid):
            value = value.get_value()
        data = _as_str_or_bytes(value)
        text = _as_text(data)
        if text is not None and self.is_valid(text):
            self.value: str = text
        elif isinstance(data, bytes) and (converted := binary_guid_to_string(data)):
            self.value = converted
        else:
            msg = "Invalid Binary / String GUID."
            raise InvalidIdentifier(msg)

    @staticmethod
    def is_valid(guid: str) -> bool:
        return bool(GUID_REGEX.fullmatch(guid))

    def get_value(self) -> str:
        return self.value

    def get_binary(self) -> bytes:
        """
        Return the 16 byte wire form of this GUID.
        """
        return uuid.UUID(hex=self.value).bytes_le

    def get_hex(self) -> str:
        """
        Return the wire form as ``\\XX`` escapes, ready to drop into a filter.
        """
        return string_guid_to_hex(self.value)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"<Guid: {self.value}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Guid):
            return False
        return self.get_binary() == other.get_binary()

    def __hash__(self) -> int:
        return hash(self.get_binary())
