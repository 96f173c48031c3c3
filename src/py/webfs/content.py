import mimetypes
import os
import re
from email.utils import formatdate, parsedate_to_datetime
from typing import BinaryIO, NamedTuple, Pattern

from .http.model import HTTPBodyFile, HTTPRequest, HTTPResponse

# --
# == Content responder
#
# Serves the bytes of an already opened regular file, taking care of the
# content type, `Last-Modified`, conditional requests and single byte
# ranges. This is the counterpart of Go's `http.ServeContent` and
# what `FileService` delegates files and index pages to.

mimetypes.init()

MIME_TYPES: dict[str, str] = dict(
	bz2="application/x-bzip",
	gz="application/gzip",
	md="text/markdown",
	mjs="text/javascript",
	wasm="application/wasm",
)

# How many bytes are looked at to tell text from binary
SNIFF_SIZE: int = 512

RE_RANGE: Pattern[str] = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")


class ByteRange(NamedTuple):
	"""An inclusive range of bytes within a file of `size` bytes."""

	start: int
	end: int

	@property
	def length(self) -> int:
		return self.end - self.start + 1

	def contentRange(self, size: int) -> str:
		return f"bytes {self.start}-{self.end}/{size}"


# Returned by `parseRange` when no part of the range is in the file
UNSATISFIABLE: ByteRange = ByteRange(-1, -1)

# -----------------------------------------------------------------------------
#
# CONTENT TYPE
#
# -----------------------------------------------------------------------------


def isText(data: bytes) -> bool:
	"""Tells if the given prefix of a file looks like UTF-8 text."""
	if b"\x00" in data:
		return False
	try:
		data.decode("utf-8")
		return True
	except UnicodeDecodeError as e:
		# The prefix may end in the middle of a multi-byte sequence
		return e.start >= len(data) - 3 and e.reason == "unexpected end of data"


def contentType(name: str, file: BinaryIO | None = None) -> str:
	"""Guesses the content type from the name, and when it is not known,
	from the first bytes of the file."""
	ext: str = name.rsplit(".", 1)[-1].lower() if "." in name else ""
	res: str | None = MIME_TYPES.get(ext) or mimetypes.guess_type(name)[0]
	if res is None:
		head: bytes = os.pread(file.fileno(), SNIFF_SIZE, 0) if file else b""
		res = "text/plain" if isText(head) else "application/octet-stream"
	return f"{res}; charset=utf-8" if res.startswith("text/") else res


# -----------------------------------------------------------------------------
#
# DATES & RANGES
#
# -----------------------------------------------------------------------------


def httpDate(timestamp: float) -> str:
	"""Formats the timestamp as an HTTP date, like `Sat, 29 Oct 1994 19:43:31 GMT`."""
	return formatdate(timestamp, usegmt=True)


def parseHTTPDate(text: str | None) -> float | None:
	if not text:
		return None
	try:
		return parsedate_to_datetime(text).timestamp()
	except (TypeError, ValueError, IndexError, OverflowError):
		return None


def parseRange(header: str | None, size: int) -> ByteRange | None:
	"""Parses a `Range: bytes=…` header for a file of `size` bytes. Returns
	`None` when the header is missing, malformed or asks for more than
	one range (the whole file is then served), and `UNSATISFIABLE` when the
	range does not overlap with the file."""
	if not header or not header.startswith("bytes="):
		return None
	ranges: str = header[len("bytes=") :]
	if "," in ranges:
		return None
	match = RE_RANGE.match(ranges)
	if not match:
		return None
	first, last = match.group(1), match.group(2)
	if not first and not last:
		return None
	elif not first:
		# Suffix range, the last `n` bytes
		n = int(last)
		if n == 0 or size == 0:
			return UNSATISFIABLE
		return ByteRange(max(0, size - n), size - 1)
	else:
		start = int(first)
		if last and int(last) < start:
			return None
		elif start >= size:
			return UNSATISFIABLE
		end = int(last) if last else size - 1
		return ByteRange(start, min(end, size - 1))


# -----------------------------------------------------------------------------
#
# RESPONDER
#
# -----------------------------------------------------------------------------


def isModifiedSince(request: HTTPRequest, modified: int) -> bool:
	"""Evaluates `If-Modified-Since` for GET and HEAD requests, with
	`modified` the file's modification time truncated to the second."""
	if request.method not in ("GET", "HEAD") or request.header("If-None-Match"):
		return True
	since = parseHTTPDate(request.header("If-Modified-Since"))
	return since is None or modified > since


def isUnmodifiedSince(request: HTTPRequest, modified: int) -> bool:
	if request.header("If-Match"):
		return True
	since = parseHTTPDate(request.header("If-Unmodified-Since"))
	return since is None or modified <= since


def isRangeCurrent(request: HTTPRequest, modified: int) -> bool:
	"""Evaluates `If-Range`, only dates are supported as we don't
	produce entity tags."""
	value = request.header("If-Range")
	if not value:
		return True
	return parseHTTPDate(value) == modified


def serveContent(
	request: HTTPRequest,
	name: str,
	file: BinaryIO,
	st: os.stat_result,
	*,
	sendfile: bool = True,
) -> HTTPResponse:
	"""Responds with the content of the opened regular `file`, whose stat
	result is `st`. The response body refers to the file, which must stay
	open until the response has been written."""
	size: int = st.st_size
	modified: int = int(st.st_mtime)
	headers: dict[str, str] = {"Accept-Ranges": "bytes"}
	# The epoch is what some tools use to mean "unknown"
	if modified > 0:
		headers["Last-Modified"] = httpDate(modified)
		if not isUnmodifiedSince(request, modified):
			return request.error(412, "412 precondition failed")
		if not isModifiedSince(request, modified):
			return request.notModified(headers)
	content_type = contentType(name, file)
	byte_range: ByteRange | None = None
	if request.method in ("GET", "HEAD") and (
		modified <= 0 or isRangeCurrent(request, modified)
	):
		byte_range = parseRange(request.header("Range"), size)
	if byte_range is UNSATISFIABLE:
		return request.error(
			416,
			"416 requested range not satisfiable",
			headers={"Content-Range": f"bytes */{size}"},
		)
	elif byte_range is None:
		return request.respond(
			HTTPBodyFile(file, 0, size, sendfile),
			contentType=content_type,
			headers=headers,
		)
	else:
		return request.respond(
			HTTPBodyFile(file, byte_range.start, byte_range.length, sendfile),
			contentType=content_type,
			status=206,
			headers=headers | {"Content-Range": byte_range.contentRange(size)},
		)


# EOF
