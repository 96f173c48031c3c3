from webfs.http.model import (
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
)
from webfs.http.parser import HTTPParser
from webfs.utils.io import LineParser, LineTooLong


def requests(*chunks: bytes) -> list[HTTPRequest]:
	parser = HTTPParser()
	return [
		atom
		for chunk in chunks
		for atom in parser.feed(chunk)
		if isinstance(atom, HTTPRequest)
	]


def statuses(*chunks: bytes) -> list[HTTPProcessingStatus]:
	parser = HTTPParser()
	return [
		atom
		for chunk in chunks
		for atom in parser.feed(chunk)
		if isinstance(atom, HTTPProcessingStatus)
	]


def test_line_parser():
	parser = LineParser()
	lines: list[bytes] = []
	for chunk in [
		b"GET /time/5 HTTP/1.1\r\nHost: 127.0.0.1\r\nConnection: close",
		b"\r\n\r",
		b"\n",
	]:
		offset: int = 0
		while offset < len(chunk):
			line, read = parser.feed(chunk, offset)
			offset += read
			if line is not None:
				lines.append(line)
	assert lines == [b"GET /time/5 HTTP/1.1", b"Host: 127.0.0.1", b"Connection: close", b""]


def test_line_too_long():
	parser = LineParser(limit=16)
	try:
		parser.feed(b"x" * 32)
		raise AssertionError("Expected LineTooLong")
	except LineTooLong:
		pass


def test_split_request():
	parser = HTTPParser()
	atoms = []
	for chunk in [
		b"GET /time/5",
		b"?x=1 HTTP/1.1\r\nHost: ",
		b"127.0.0.1\r",
		b"\nConn",
		b"ection: close\r\n",
		b"\r",
		b"\n",
	]:
		atoms += list(parser.feed(chunk))
	assert isinstance(atoms[0], HTTPRequestLine)
	assert isinstance(atoms[1], HTTPHeaders)
	req = atoms[-1]
	assert isinstance(req, HTTPRequest)
	assert req.method == "GET"
	assert req.path == "/time/5"
	assert req.query == "x=1"
	assert req.header("host") == "127.0.0.1"
	assert req.header("Connection") == "close"
	assert not req.keepAlive


def test_raw_path():
	(req,) = requests(b"GET /a%20b/%2e%2e/c HTTP/1.1\r\n\r\n")
	# Paths are decoded when they are resolved, not when parsed
	assert req.path == "/a%20b/%2e%2e/c"
	assert req.query == ""
	(req,) = requests(b"GET http://localhost:8080/docs/?q HTTP/1.1\r\n\r\n")
	assert req.path == "/docs/"
	assert req.query == "q"
	(req,) = requests(b"get / HTTP/1.1\r\n\r\n")
	assert req.method == "GET"


def test_pipelining():
	reqs = requests(
		b"GET /a HTTP/1.1\r\nHost: x\r\n\r\n"
		b"POST /b HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"
		b"\r\nHEAD /c HTTP/1.1\r\n\r\n"
	)
	assert [(_.method, _.path) for _ in reqs] == [
		("GET", "/a"),
		("POST", "/b"),
		("HEAD", "/c"),
	]
	assert reqs[1].body.raw == b"hello"


def test_keep_alive():
	(req,) = requests(b"GET / HTTP/1.1\r\n\r\n")
	assert req.keepAlive
	(req,) = requests(b"GET / HTTP/1.0\r\n\r\n")
	assert not req.keepAlive
	(req,) = requests(b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n")
	assert req.keepAlive
	assert req.respond("ok").protocol == "HTTP/1.0"


def test_bad_format():
	bad = HTTPProcessingStatus.BadFormat
	assert bad in statuses(b"NONSENSE\r\n\r\n")
	assert bad in statuses(b"GET / FTP/1.0\r\n\r\n")
	assert bad in statuses(b"GET /\xff HTTP/1.1\r\n\r\n")
	assert bad in statuses(
		b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n0\r\n\r\n"
	)
	assert bad in statuses(b"POST / HTTP/1.1\r\nContent-Length: 999999999\r\n\r\n")
	assert bad in statuses(b"GET /" + b"a" * 70_000)
	assert not requests(b"NONSENSE\r\n\r\nGET / HTTP/1.1\r\n\r\n")


def test_tls_handshake():
	# A TLS client hello sent to the plain HTTP port is skipped
	hello = bytes([0x16, 0x03, 0x01, 0x00, 0x04]) + b"abcd"
	(req,) = requests(hello + b"GET /x HTTP/1.1\r\n\r\n")
	assert req.path == "/x"


if __name__ == "__main__":
	test_line_parser()
	test_line_too_long()
	test_split_request()
	test_raw_path()
	test_pipelining()
	test_keep_alive()
	test_bad_format()
	test_tls_handshake()
	print("EOK")

# EOF
