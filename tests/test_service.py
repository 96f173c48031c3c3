import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from webfs.config import Options
from webfs.content import httpDate
from webfs.http.model import HTTPBodyBlob, HTTPBodyFile, HTTPRequest, HTTPResponse
from webfs.http.parser import HTTPParser
from webfs.service import CACHE_CONTROL, FileService, errorStatus
from webfs.visibility import DOTFILES

MODIFIED: int = 1_600_000_000


@contextmanager
def tree() -> Iterator[Path]:
	"""Creates a temporary directory to serve, like:

	```
	readme.txt
	.env
	docs/{a.txt,B.txt,.git/,link,broken,x:y}
	site/index.html
	secret/x.txt
	```
	"""
	with tempfile.TemporaryDirectory() as tmp:
		root = Path(tmp)
		(root / "readme.txt").write_bytes(b"Hello, World!\n")
		os.utime(root / "readme.txt", (MODIFIED, MODIFIED))
		(root / ".env").write_bytes(b"KEY=1\n")
		(root / "docs").mkdir()
		(root / "docs" / "a.txt").write_bytes(b"a")
		(root / "docs" / "B.txt").write_bytes(b"B")
		(root / "docs" / ".git").mkdir()
		(root / "docs" / "x:y").write_bytes(b"")
		os.symlink("../readme.txt", root / "docs" / "link")
		os.symlink("missing", root / "docs" / "broken")
		(root / "site").mkdir()
		(root / "site" / "index.html").write_bytes(b"<h1>Home</h1>\n")
		(root / "secret").mkdir()
		(root / "secret" / "x.txt").write_bytes(b"secret")
		yield root


def service(root: Path, **options) -> FileService:
	return FileService(
		Options.Make(root, **({"hide": DOTFILES, "deny": None, "index": None} | options))
	)


def request(target: str, method: str = "GET", **headers: str) -> HTTPRequest:
	lines = [f"{method} {target} HTTP/1.1", "Host: localhost"] + [
		f"{k.replace('_', '-')}: {v}" for k, v in headers.items()
	]
	for atom in HTTPParser().feed(("\r\n".join(lines) + "\r\n\r\n").encode()):
		if isinstance(atom, HTTPRequest):
			return atom
	raise AssertionError(f"Could not parse request: {lines}")


def fetch(
	files: FileService, target: str, method: str = "GET", **headers: str
) -> tuple[HTTPResponse, bytes]:
	"""Processes the request and returns the response and its body, once
	the response has been closed."""
	res = files.process(request(target, method, **headers))
	try:
		if isinstance(res.body, HTTPBodyFile):
			body = res.body.read()
		elif isinstance(res.body, HTTPBodyBlob):
			body = res.body.payload
		else:
			body = b""
	finally:
		res.close()
	return res, body


def test_file():
	with tree() as root:
		res, body = fetch(service(root), "/readme.txt")
		assert res.status == 200
		assert body == b"Hello, World!\n"
		assert res.getHeader("Content-Type") == "text/plain; charset=utf-8"
		assert res.getHeader("Content-Length") == "14"
		assert res.getHeader("Cache-Control") == CACHE_CONTROL
		assert res.getHeader("Last-Modified") == httpDate(MODIFIED)


def test_redirects():
	with tree() as root:
		files = service(root)
		res, _ = fetch(files, "/docs")
		assert res.status == 301
		assert res.getHeader("Location") == "docs/"
		assert res.getHeader("Cache-Control") == CACHE_CONTROL
		res, _ = fetch(files, "/docs?sort=name&x=%20")
		assert res.status == 301
		assert res.getHeader("Location") == "docs/?sort=name&x=%20"
		res, _ = fetch(files, "/readme.txt/")
		assert res.status == 301
		assert res.getHeader("Location") == "../readme.txt"
		res, _ = fetch(files, "/docs/./a.txt/?v=1")
		assert res.getHeader("Location") == "../a.txt?v=1"


def test_listing():
	with tree() as root:
		res, body = fetch(service(root), "/docs/")
		assert res.status == 200
		assert res.getHeader("Content-Type") == "text/html; charset=utf-8"
		assert res.getHeader("Cache-Control") == CACHE_CONTROL
		page = body.decode("utf8")
		assert "<title>/docs/</title>" in page
		assert '<a href="a.txt">a.txt</a>' in page
		assert '<a href="x%3Ay">x:y</a>' in page
		assert ".git" not in page
		assert page.index("B.txt") < page.index("a.txt")
		# The link is listed with the size of its target
		assert '<a href="link">link</a></td>\n<td>14B</td>' in page
		assert '<a href="broken">broken</a></td>\n<td></td>' in page


def test_root_listing():
	with tree() as root:
		res, body = fetch(service(root), "/")
		assert res.status == 200
		page = body.decode("utf8")
		assert '<h1><a href=".">/</a></h1>' in page
		assert '<a href="docs/">docs/</a>' in page
		assert ".env" not in page


def test_hidden_is_served():
	with tree() as root:
		res, body = fetch(service(root), "/.env")
		assert res.status == 200
		assert body == b"KEY=1\n"


def test_deny():
	with tree() as root:
		files = service(root, deny="^/secret")
		res, body = fetch(files, "/secret/x.txt")
		assert res.status == 403
		assert body == b"403 Forbidden\n"
		assert res.getHeader("Content-Type") == "text/plain; charset=utf-8"
		res, _ = fetch(files, "/secret/")
		assert res.status == 403
		# The trailing slash is fixed before the deny pattern applies
		res, _ = fetch(files, "/secret")
		assert res.status == 301
		res, body = fetch(files, "/")
		assert "secret" not in body.decode("utf8")


def test_not_found():
	with tree() as root:
		files = service(root)
		res, body = fetch(files, "/missing.txt")
		assert res.status == 404
		assert body == b"404 page not found\n"
		assert res.getHeader("Cache-Control") == CACHE_CONTROL
		res, _ = fetch(files, "/readme.txt/child")
		assert res.status == 404
		res, _ = fetch(files, "/a%00b")
		assert res.status == 404


def test_traversal():
	with tree() as root:
		files = service(root / "docs")
		for target in (
			"/../readme.txt",
			"/%2e%2e/readme.txt",
			"/a.txt/../../readme.txt",
			"/..%2freadme.txt",
		):
			res, body = fetch(files, target)
			assert res.status == 404, target
			assert b"Hello" not in body


def test_special_files():
	with tree() as root:
		os.mkfifo(root / "pipe")
		res, _ = fetch(service(root), "/pipe")
		assert res.status == 403


def test_special_index():
	with tree() as root:
		(root / "site" / "index.html").unlink()
		os.mkfifo(root / "site" / "index.html")
		os.mkfifo(root / "index.html")
		files = service(root, index="index.html")
		results: list = []

		# Opening a pipe waits for a writer, which would stall the server
		def run() -> None:
			results.append(fetch(files, "/site/"))
			results.append(fetch(files, "/"))

		thread = threading.Thread(target=run, daemon=True)
		thread.start()
		thread.join(timeout=5.0)
		assert not thread.is_alive()
		for res, body in results:
			assert res.status == 200
			assert b"<title>" in body
		assert len(results) == 2


def test_index():
	with tree() as root:
		files = service(root, index="index.html")
		res, body = fetch(files, "/site/")
		assert res.status == 200
		assert body == b"<h1>Home</h1>\n"
		assert res.getHeader("Content-Type") == "text/html; charset=utf-8"
		# Directories without an index are listed
		res, body = fetch(files, "/docs/")
		assert res.status == 200
		assert b"<title>/docs/</title>" in body
		# A directory named like the index is not an index page
		(root / "docs" / "index.html").mkdir()
		res, body = fetch(files, "/docs/")
		assert b"<title>/docs/</title>" in body


def test_range_and_conditional():
	with tree() as root:
		files = service(root)
		res, body = fetch(files, "/readme.txt", Range="bytes=0-3")
		assert res.status == 206
		assert body == b"Hell"
		assert res.getHeader("Content-Range") == "bytes 0-3/14"
		res, _ = fetch(files, "/readme.txt", Range="bytes=20-")
		assert res.status == 416
		res, body = fetch(files, "/readme.txt", If_Modified_Since=httpDate(MODIFIED))
		assert res.status == 304
		assert body == b""
		assert res.getHeader("Cache-Control") == CACHE_CONTROL


def test_any_method():
	with tree() as root:
		files = service(root)
		res, _ = fetch(files, "/readme.txt", "HEAD")
		assert res.status == 200
		assert res.getHeader("Content-Length") == "14"
		res, body = fetch(files, "/readme.txt", "POST")
		assert res.status == 200
		assert body == b"Hello, World!\n"


def test_file_handles_released():
	with tree() as root:
		files = service(root)
		res = files.process(request("/readme.txt"))
		assert isinstance(res.body, HTTPBodyFile)
		file = res.body.file
		assert not file.closed
		res.close()
		assert file.closed
		# Closing twice is harmless
		res.close()


def test_error_status():
	assert errorStatus(FileNotFoundError()) == 404
	assert errorStatus(NotADirectoryError()) == 404
	assert errorStatus(PermissionError()) == 403
	assert errorStatus(ValueError("embedded null byte")) == 404
	assert errorStatus(OSError(5, "I/O error")) == 500


if __name__ == "__main__":
	test_file()
	test_redirects()
	test_listing()
	test_root_listing()
	test_hidden_is_served()
	test_deny()
	test_not_found()
	test_traversal()
	test_special_files()
	test_special_index()
	test_index()
	test_range_and_conditional()
	test_any_method()
	test_file_handles_released()
	test_error_status()
	print("EOK")

# EOF
