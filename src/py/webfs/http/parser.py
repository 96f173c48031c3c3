from typing import Iterator, Literal
from ..utils.io import LineParser, LineTooLong
from .model import (
	HTTPRequest,
	HTTPRequestLine,
	HTTPHeaders,
	HTTPBodyBlob,
	HTTPAtom,
	HTTPProcessingStatus,
	headername,
)

# A static file server has no use for request bodies, they are consumed
# to keep the connection in sync but only up to that size.
MAX_BODY: int = 1_000_000


class MessageParser:
	"""Parses an HTTP request line."""

	__slots__ = ["line", "value", "skipping"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None
		self.skipping: int = 0

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		self.skipping = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		"""Returns `True` when a well formed request line was parsed, `False`
		when the line was malformed and `None` when more data is needed."""
		n = len(chunk)
		available = n - start
		if self.skipping:
			# We have remaining data to read/skip, so we do that
			read = min(available, self.skipping)
			self.skipping -= read
			return None, read
		elif available >= 5 and chunk[start] == 0x16 and not self.line.buffer:
			# This is a TLS Handshake sent to a plain HTTP port, we skip
			# the record, whose length is encoded in bytes 3 and 4.
			size = 5 + (chunk[start + 3] << 8) + chunk[start + 4]
			if available >= size:
				return None, size
			else:
				self.skipping = size - available
				return None, available
		else:
			line, read = self.line.feed(chunk, start)
			if line is None:
				return None, read
			elif not line:
				# Empty lines before a request line are ignored (RFC 9112 §2.2)
				self.line.reset()
				return None, read
			else:
				try:
					ln = line.decode("ascii")
				except UnicodeDecodeError:
					return False, read
				parts = ln.split(" ")
				if len(parts) != 3 or not parts[2].startswith("HTTP/"):
					return False, read
				method, target, protocol = parts
				# The absolute form is sent to proxies, we only keep the path
				if target.startswith("http://") or target.startswith("https://"):
					i = target.find("/", target.find("//") + 2)
					target = target[i:] if i != -1 else "/"
				p: list[str] = target.split("?", 1)
				self.value = HTTPRequestLine(
					method.upper(), p[0], p[1] if len(p) > 1 else "", protocol
				)
				return True, read

	def __str__(self) -> str:
		return f"MessageParser({self.value})"


class HeadersParser:
	__slots__ = ["headers", "contentType", "contentLength", "line"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the next start offset. When the value is `None`, no
		header has been extracted, when the value is `False` it's an empty
		line, and when the value is a string, that header was added."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif line:
			# Headers are expected to be in ASCII, but some clients send
			# Latin-1 values, which we preserve.
			ln: str = line.decode("latin-1")
			self.line.reset()
			i = ln.find(":")
			if i != -1:
				h = ln[:i].lower().strip()
				v = ln[i + 1 :].strip()
				if h == "content-length":
					try:
						self.contentLength = int(v)
					except ValueError:
						self.contentLength = None
				elif h == "content-type":
					self.contentType = v
				n: str = headername(h)
				self.headers[n] = v
				return n, read
			else:
				return None, read
		else:
			# An empty line denotes the end of headers
			return False, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodyLengthParser:
	"""Parses the body of a request with ContentLength set"""

	__slots__ = ["expected", "read", "data"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0
		self.data: list[bytes] = []

	def flush(self) -> HTTPBodyBlob:
		res = HTTPBodyBlob(b"".join(self.data), self.read)
		self.reset()
		return res

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		self.data.clear()
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		"""Returns `True` once the expected length has been read."""
		to_read: int = min(len(chunk) - start, self.expected - self.read)
		self.data.append(chunk[start : start + to_read])
		self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful, incremental HTTP request parser. Chunks are fed as they
	are received and the parser yields atoms, including complete
	`HTTPRequest` values."""

	def __init__(self) -> None:
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.bodyLength: BodyLengthParser = BodyLengthParser()
		self.parser: MessageParser | HeadersParser | BodyLengthParser = self.message
		self.requestLine: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None

	def reset(self) -> "HTTPParser":
		self.parser = self.message.reset()
		self.headers.reset()
		self.bodyLength.reset()
		self.requestLine = None
		self.requestHeaders = None
		return self

	def request(self, body: HTTPBodyBlob) -> HTTPRequest | None:
		line = self.requestLine
		headers = self.requestHeaders
		self.parser = self.message.reset()
		if line is None or headers is None:
			return None
		else:
			return HTTPRequest(
				method=line.method,
				path=line.path,
				query=line.query,
				headers=headers,
				protocol=line.protocol,
				body=body,
			)

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		"""Feeds the given chunk, yielding atoms as they are parsed. Once
		`HTTPProcessingStatus.BadFormat` has been yielded, the parser must be
		reset before being fed again."""
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			# The underlying parsers keep a buffer up until they are flushed,
			# so a partially read chunk never needs to be fed again.
			try:
				ln, read = self.parser.feed(chunk, offset)
			except LineTooLong:
				yield HTTPProcessingStatus.BadFormat
				return
			offset += read
			if ln is None:
				continue
			elif self.parser is self.message:
				line = self.message.flush()
				if ln is False or line is None:
					yield HTTPProcessingStatus.BadFormat
					return
				self.requestLine = line
				self.requestHeaders = None
				yield line
				self.parser = self.headers
			elif self.parser is self.headers:
				if ln is not False:
					# `ln` is going to be the header name as a string there.
					continue
				headers = self.headers.flush()
				self.requestHeaders = headers
				yield headers
				length = headers.contentLength
				if "Transfer-Encoding" in headers.headers or (
					length is not None and (length < 0 or length > MAX_BODY)
				):
					# Chunked request bodies are not supported
					yield HTTPProcessingStatus.BadFormat
					return
				elif not length:
					if req := self.request(HTTPBodyBlob()):
						yield req
				else:
					self.parser = self.bodyLength.reset(length)
					yield HTTPProcessingStatus.Body
			elif self.parser is self.bodyLength:
				if req := self.request(self.bodyLength.flush()):
					yield req
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")


# EOF
