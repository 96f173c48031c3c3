import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import (
	Any,
	BinaryIO,
	Callable,
	NamedTuple,
	TypeAlias,
	Union,
)

from ..utils.io import DEFAULT_ENCODING
from .api import ResponseFactory
from .status import HTTP_STATUS

# Normalized header names, by lowercase name
HEADER_NAMES: dict[str, str] = {
	"etag": "ETag",
	"www-authenticate": "WWW-Authenticate",
	"x-content-type-options": "X-Content-Type-Options",
}
HEADER_NAMES_MAX: int = 1_000


def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`, so that `content-type`
	and `CONTENT-TYPE` are both `Content-Type`."""
	key: str = name.lower()
	if (res := HEADER_NAMES.get(key)) is None:
		res = "-".join(_.capitalize() for _ in key.split("-"))
		# Clients choose header names, so the cache is bounded
		if len(HEADER_NAMES) < HEADER_NAMES_MAX:
			HEADER_NAMES[key] = res
	return res


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""The request line, `path` and `query` are kept percent-encoded, as
	they were received."""

	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Headers by normalized name, along with the values that matter for
	processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None

	def get(self, name: str) -> str | None:
		return self.headers.get(headername(name))


class HTTPProcessingStatus(Enum):
	"""Parser and connection states that are not requests."""

	Processing = 0
	Body = 1
	Timeout = 10
	NoData = 11
	BadFormat = 12


# What the parser produces
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]


class HTTPRequestError(Exception):
	"""Raised while processing a request to respond with the given status
	(500 by default) and message."""

	def __init__(self, message: str, status: int | None = None):
		super().__init__(message)
		self.message: str = message
		self.status: int | None = status


# -----------------------------------------------------------------------------
#
# BODIES
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""A body held in memory."""

	payload: bytes = b""
	length: int = 0

	@staticmethod
	def FromBytes(data: bytes) -> "HTTPBodyBlob":
		return HTTPBodyBlob(data, len(data))

	@property
	def raw(self) -> bytes:
		return self.payload


class HTTPBodyFile(NamedTuple):
	"""A body made of `length` bytes of an open file, starting at `offset`.
	The file is owned by whoever opened it, and must stay open until the
	body is written. When `sendfile` is set, the writer may hand the file to
	the kernel instead of copying it."""

	file: BinaryIO
	offset: int = 0
	length: int = 0
	sendfile: bool = True

	def read(self) -> bytes:
		"""Reads the whole range in memory."""
		return os.pread(self.file.fileno(), self.length, self.offset)


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile


class HTTPBodyWriter(ABC):
	"""Writes response heads and bodies to a transport. Subclasses
	implement `_writeBytes` and optionally `_sendFile`."""

	__slots__ = ["shouldClose"]

	CHUNK_SIZE: int = 64_000

	def __init__(self) -> None:
		# Set when the connection can't be reused after this write
		self.shouldClose: bool = False

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		match body:
			case None:
				return True
			case bytes():
				return await self._writeBytes(body)
			case HTTPBodyBlob():
				return await self._writeBytes(body.payload)
			case HTTPBodyFile(sendfile=True):
				return await self._sendFile(body)
			case HTTPBodyFile():
				return await self._writeFile(body)
			case _:
				raise ValueError(f"Unsupported body format: {body}")

	async def _writeFile(self, body: HTTPBodyFile) -> bool:
		fd: int = body.file.fileno()
		end: int = body.offset + body.length
		offset: int = body.offset
		while offset < end:
			chunk = os.pread(fd, min(self.CHUNK_SIZE, end - offset), offset)
			if not chunk:
				# The file was truncated after the head was sent, so the
				# advertised length can't be honoured.
				self.shouldClose = True
				break
			await self._writeBytes(chunk)
			offset += len(chunk)
		return True

	async def _sendFile(self, body: HTTPBodyFile) -> bool:
		return await self._writeFile(body)

	@abstractmethod
	async def _writeBytes(self, chunk: bytes) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""A parsed request, which is also the factory of its responses."""

	__slots__ = ["method", "path", "query", "protocol", "_headers", "_body"]

	def __init__(
		self,
		method: str,
		path: str,
		query: str | None,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
		protocol: str = "HTTP/1.1",
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.query: str = query or ""
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers
		self._body: HTTPBodyBlob = body or HTTPBodyBlob()

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	def header(self, name: str) -> str | None:
		return self._headers.get(name)

	@property
	def contentType(self) -> str | None:
		return self._headers.contentType

	@property
	def contentLength(self) -> int | None:
		return self._headers.contentLength

	@property
	def body(self) -> HTTPBodyBlob:
		return self._body

	@property
	def keepAlive(self) -> bool:
		"""HTTP/1.1 connections persist unless the client asks to close,
		HTTP/1.0 ones only when the client asks to keep them."""
		connection: str = (self.header("Connection") or "").lower()
		if self.protocol == "HTTP/1.0":
			return connection == "keep-alive"
		else:
			return connection != "close"

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			content=content,
			contentType=contentType,
			contentLength=contentLength,
			headers=headers,
			status=status,
			message=message,
			# We answer HTTP/1.0 clients in kind
			protocol="HTTP/1.0" if self.protocol == "HTTP/1.0" else "HTTP/1.1",
		)

	def __str__(self) -> str:
		query: str = f"?{self.query}" if self.query else ""
		return f"Request({self.method} {self.path}{query} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSES
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	__slots__ = ["protocol", "status", "message", "headers", "body", "_onClose"]

	@staticmethod
	def Body(content: Any) -> THTTPBody | None:
		"""Wraps the content of a response as a body."""
		match content:
			case None:
				return None
			case str():
				return HTTPBodyBlob.FromBytes(content.encode(DEFAULT_ENCODING))
			case bytes():
				return HTTPBodyBlob.FromBytes(content)
			case HTTPBodyBlob() | HTTPBodyFile():
				return content
			case _:
				raise ValueError(f"Unsupported content {type(content)}:{content}")

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		body = HTTPResponse.Body(content)
		fields: dict[str, str] = {
			headername(k): v for k, v in (headers or {}).items()
		}
		if contentType is not None:
			fields["Content-Type"] = contentType
		length: int | None = body.length if body is not None else contentLength
		if length is not None:
			fields["Content-Length"] = str(length)
		elif status not in (204, 304):
			# Bodiless responses advertise it so that the connection can
			# be reused.
			fields.setdefault("Content-Length", "0")
		return HTTPResponse(
			protocol=protocol,
			status=status,
			message=message,
			headers=HTTPHeaders(
				fields,
				contentType=fields.get("Content-Type"),
				contentLength=(
					int(fields["Content-Length"]) if "Content-Length" in fields else None
				),
			),
			body=body,
		)

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str = message or HTTP_STATUS.get(status, "Unknown status")
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body
		self._onClose: Callable[[HTTPResponse], None] | None = None

	def getHeader(self, name: str) -> str | None:
		return self.headers.get(name)

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	def setHeaders(self, headers: dict[str, str | int | None]) -> "HTTPResponse":
		for k, v in headers.items():
			self.setHeader(k, v)
		return self

	def head(self) -> bytes:
		"""Serializes the status line and headers, up to and including the
		empty line that precedes the body."""
		lines: list[str] = [f"{self.protocol} {self.status} {self.message}"]
		lines += [f"{k}: {v}" for k, v in self.headers.headers.items()]
		# Our header values are ASCII, Latin-1 only keeps the odd client
		# supplied byte as it was.
		return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

	def onClose(
		self, callback: Callable[["HTTPResponse"], None] | None
	) -> "HTTPResponse":
		self._onClose = callback
		return self

	def close(self) -> None:
		"""Releases what the response holds, like the file of its body. This
		is a no-op after the first call."""
		callback, self._onClose = self._onClose, None
		if callback:
			callback(self)

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body})"


# EOF
