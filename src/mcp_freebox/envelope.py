"""Freebox response envelope and field decoders.

Every Freebox API response is wrapped in the same JSON object::

    {"success": true, "result": ..., "error_code": "...", "msg": "...", "uid": "..."}

This module parses that wrapper and projects ``result`` into the shape the
caller asks for. It also holds the decoders for the polymorphic fields some
resources use (base64 encoded paths, USB port bindings).
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Type, TypeVar, Union

from .exceptions import DecodingError

T = TypeVar("T")


@dataclass
class Envelope:
    """The universal Freebox response wrapper."""

    success: bool
    result: Any = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    uid: Optional[str] = None

    @property
    def has_error_details(self) -> bool:
        """Check if the envelope carries an error code or message."""
        return self.error_code is not None or self.message is not None


def parse_envelope(body: Union[bytes, str]) -> Envelope:
    """Parse a raw response body into an Envelope.

    Args:
        body: Raw response body.

    Returns:
        The parsed Envelope. An absent ``success`` key reads as False.

    Raises:
        DecodingError: If the body is not a JSON object.
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        raise DecodingError(f"failed to unmarshal response body '{text}': {e}") from e

    if not isinstance(data, dict):
        raise DecodingError(f"expected a JSON object as response body, got {type(data).__name__}")

    return Envelope(
        success=data.get("success") is True,
        result=data.get("result"),
        error_code=data.get("error_code"),
        message=data.get("msg"),
        uid=data.get("uid"),
    )


def _project(factory: Callable[[Any], T], value: Any, what: str) -> T:
    try:
        return factory(value)
    except DecodingError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise DecodingError(f"failed to decode {what}: {e!r}") from e


def decode_object(result: Any, cls: Type[T]) -> T:
    """Decode an envelope result that must be a single JSON object.

    Args:
        result: The ``result`` member of an envelope.
        cls: Target type, exposing a ``from_dict`` classmethod.

    Returns:
        An instance of ``cls``.

    Raises:
        DecodingError: If the result is not an object or does not fit ``cls``.
    """
    if not isinstance(result, dict):
        raise DecodingError(
            f"expected a JSON object for {cls.__name__}, got {type(result).__name__}"
        )
    return _project(cls.from_dict, result, cls.__name__)  # type: ignore[attr-defined]


def decode_list(result: Any, cls: Type[T]) -> List[T]:
    """Decode an envelope result that must be a JSON array of objects.

    A missing result is an empty list, the Freebox omits ``result`` when a
    collection has no member.

    Raises:
        DecodingError: If the result is not an array or an item does not fit.
    """
    if result is None:
        return []
    if not isinstance(result, list):
        raise DecodingError(
            f"expected a JSON array of {cls.__name__}, got {type(result).__name__}"
        )
    return [decode_object(item, cls) for item in result]


def decode_value(result: Any, type_: Type[T]) -> T:
    """Decode a scalar envelope result, checking its JSON type."""
    # bool is a subclass of int, it never stands in for a number
    if isinstance(result, bool) and type_ is not bool:
        raise DecodingError(f"expected {type_.__name__}, got bool")
    if not isinstance(result, type_):
        raise DecodingError(f"expected {type_.__name__}, got {type(result).__name__}")
    return result


def encode_path(path: str) -> str:
    """Encode a plain filesystem path the way the Freebox expects it.

    Args:
        path: Plain path such as ``/Freebox/VMs/debian.qcow2``.

    Returns:
        Standard base64 encoding of the UTF-8 path.
    """
    return base64.b64encode(path.encode("utf-8")).decode("ascii")


def decode_path(value: Any) -> Optional[str]:
    """Decode a base64 encoded path field into a plain path.

    Raises:
        DecodingError: If the value is not a string or not valid base64.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodingError(f"expected a base64 string for a path, got {type(value).__name__}")
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except ValueError as e:
        raise DecodingError(f"invalid base64 path {value!r}: {e}") from e


def decode_usb_ports(value: Any) -> List[str]:
    """Decode the ``bind_usb_ports`` field of a virtual machine.

    The Freebox sends an empty string when no port is bound and a list of
    port names otherwise.

    Raises:
        DecodingError: For a non-empty string, a list holding anything but
            strings, or any other JSON type.
    """
    if isinstance(value, str):
        if value == "":
            return []
        raise DecodingError(f"unexpected string {value!r} for usb port bindings")
    if isinstance(value, list):
        for item in value:
            if not isinstance(item, str):
                raise DecodingError(f"unexpected {type(item).__name__} in usb port bindings")
        return list(value)
    raise DecodingError(f"unexpected {type(value).__name__} for usb port bindings")
