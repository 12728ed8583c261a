"""Byte streams and websocket channels of the Freebox API.

File downloads are plain HTTP responses read incrementally. Uploads and
event notifications go through websockets opened on ``ws/upload`` and
``ws/event``; the connection is injected so tests can substitute a fake.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional, Protocol, Union

import httpx
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from .envelope import Envelope
from .exceptions import DecodingError, NetworkError, classify_envelope
from .types import Event

# Configure module logger
logger = logging.getLogger(__name__)


class WebSocketConnection(Protocol):
    """The part of a websocket client connection used by this module."""

    def send(self, message: Union[str, bytes]) -> None: ...

    def recv(self, timeout: Optional[float] = None) -> Union[str, bytes]: ...

    def close(self) -> None: ...


def decode_ws_message(message: Union[str, bytes]) -> Dict[str, Any]:
    """Decode a JSON websocket message.

    Raises:
        DecodingError: If the message is not a JSON object.
    """
    try:
        data = json.loads(message)
    except ValueError as e:
        raise DecodingError(f"failed to unmarshal websocket message {message!r}: {e}") from e
    if not isinstance(data, dict):
        raise DecodingError(f"expected a JSON object as websocket message, got {type(data).__name__}")
    return data


def _check_success(data: Dict[str, Any]) -> None:
    if data.get("success") is True:
        return
    raise classify_envelope(Envelope(
        success=False,
        result=data.get("result"),
        error_code=data.get("error_code"),
        message=data.get("msg"),
        uid=data.get("uid"),
    ))


def send_action(connection: WebSocketConnection, action: Dict[str, Any]) -> None:
    """Send a JSON action on a websocket."""
    try:
        connection.send(json.dumps(action))
    except (ConnectionClosed, WebSocketException, OSError) as e:
        raise NetworkError(f"failed to send '{action.get('action')}' action: {e}") from e


def await_reply(
    connection: WebSocketConnection,
    action: str,
    request_id: Optional[int] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Wait for the reply to an action, skipping unrelated messages.

    Raises:
        NetworkError: If the connection drops before the reply arrives.
        BusinessError: If the reply reports a failure.
    """
    while True:
        try:
            message = connection.recv(timeout=timeout)
        except TimeoutError as e:
            raise NetworkError(f"no reply to '{action}' action within {timeout} seconds") from e
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise NetworkError(f"connection lost while waiting for '{action}' reply: {e}") from e
        data = decode_ws_message(message)
        if data.get("action") != action:
            logger.debug("Skipping websocket message with action %s", data.get("action"))
            continue
        if request_id is not None and data.get("request_id") != request_id:
            continue
        _check_success(data)
        return data


class File:
    """A file being downloaded from the Freebox.

    The body is streamed, read it with ``iter_bytes`` or ``read`` and close
    the handle when done.

    Attributes:
        content_type: Media type announced by the server.
        filename: Name from the Content-Disposition header, if any.
    """

    def __init__(
        self,
        response: httpx.Response,
        content_type: str = "",
        filename: Optional[str] = None,
    ) -> None:
        self.content_type = content_type
        self.filename = filename
        self._response = response

    def __enter__(self) -> File:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - releases the connection."""
        self.close()

    def iter_bytes(self, chunk_size: Optional[int] = None) -> Iterator[bytes]:
        """Iterate over the file content."""
        try:
            yield from self._response.iter_bytes(chunk_size)
        except httpx.TransportError as e:
            raise NetworkError(f"failed to read file content: {e}") from e

    def read(self) -> bytes:
        """Read the whole file content."""
        return b"".join(self.iter_bytes())

    def close(self) -> None:
        """Release the underlying connection."""
        self._response.close()


class FileUpload:
    """Writable handle on an upload started on the ``ws/upload`` channel.

    Example:
        >>> upload, request_id = client.start_file_upload(
        ...     FileUploadStart(dirname="/Freebox", filename="a.txt", size=5))
        >>> with upload:
        ...     upload.write(b"hello")
    """

    def __init__(
        self,
        connection: WebSocketConnection,
        request_id: int,
        *,
        reply_timeout: Optional[float] = None,
    ) -> None:
        self.request_id = request_id
        self._connection = connection
        self._reply_timeout = reply_timeout
        self._closed = False

    def __enter__(self) -> FileUpload:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Finalize the upload, or cancel it if the block raised."""
        if exc_type is None:
            self.close()
        else:
            self.cancel()

    @property
    def closed(self) -> bool:
        """Check if the upload was finalized or cancelled."""
        return self._closed

    def write(self, data: bytes) -> int:
        """Send a chunk of file content.

        Returns:
            Number of bytes sent.
        """
        if self._closed:
            raise ValueError("write to a closed upload")
        try:
            self._connection.send(bytes(data))
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise NetworkError(f"failed to send upload data: {e}") from e
        return len(data)

    def close(self) -> None:
        """Finalize the upload and wait for the Freebox to acknowledge it."""
        if self._closed:
            return
        self._closed = True
        try:
            send_action(self._connection, {
                "action": "upload_finalize",
                "request_id": self.request_id,
            })
            await_reply(self._connection, "upload_finalize", self.request_id, self._reply_timeout)
            logger.info("Upload %d finalized", self.request_id)
        finally:
            self._connection.close()

    def cancel(self) -> None:
        """Abort the upload. Failures are logged, the channel is closed anyway."""
        if self._closed:
            return
        self._closed = True
        try:
            send_action(self._connection, {
                "action": "upload_cancel",
                "request_id": self.request_id,
            })
        except NetworkError as e:
            logger.debug("Error cancelling upload %d: %s", self.request_id, e)
        finally:
            self._connection.close()


class EventStream:
    """Iterator over notifications received on the ``ws/event`` channel.

    Events are yielded in arrival order. Iteration ends when the Freebox
    closes the channel normally; close the stream to stop listening.
    """

    def __init__(self, connection: WebSocketConnection) -> None:
        self._connection = connection
        self._closed = False

    def __enter__(self) -> EventStream:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - closes the channel."""
        self.close()

    def __iter__(self) -> Iterator[Event]:
        return self

    def __next__(self) -> Event:
        while not self._closed:
            try:
                message = self._connection.recv()
            except ConnectionClosedOK:
                self._closed = True
                break
            except (ConnectionClosed, WebSocketException, OSError) as e:
                self._closed = True
                raise NetworkError(f"event stream interrupted: {e}") from e
            data = decode_ws_message(message)
            if data.get("action") != "notification":
                logger.debug("Skipping websocket message with action %s", data.get("action"))
                continue
            _check_success(data)
            try:
                return Event.from_dict(data)
            except KeyError as e:
                raise DecodingError(f"malformed event notification: missing {e}") from e
        raise StopIteration

    def close(self) -> None:
        """Stop listening and close the channel."""
        if not self._closed:
            self._closed = True
            self._connection.close()
