import os
import stat
import time
from contextlib import ExitStack
from pathlib import Path

from .config import Options
from .content import serveContent
from .http.model import HTTPBodyFile, HTTPRequest, HTTPResponse
from .listing import listDirectory
from .paths import RequestPath, localPath, resolve
from .slashes import Action, Kind, decide
from .utils.logging import access, debug, logged, warning

# Results are never cached, the filesystem may change at any time
CACHE_CONTROL: str = (
	"no-cache, no-store, no-transform, must-revalidate, private, max-age=0"
)


def errorStatus(error: BaseException) -> int:
	"""Maps a filesystem error to an HTTP status."""
	if isinstance(error, (FileNotFoundError, NotADirectoryError)):
		return 404
	elif isinstance(error, PermissionError):
		return 403
	elif isinstance(error, ValueError):
		# Paths with an embedded NUL byte can't exist
		return 404
	else:
		return 500


def isServable(st: os.stat_result) -> bool:
	# Devices, sockets and pipes are never served
	return stat.S_ISDIR(st.st_mode) or stat.S_ISREG(st.st_mode)


def openEntry(
	path: Path | str, dirfd: int | None = None
) -> tuple[int, os.stat_result]:
	"""Opens the directory or regular file at `path`, relative to `dirfd`
	when given, raising a `PermissionError` for any other kind of file. The
	file is opened without blocking so that a pipe swapped in after the
	`stat` can't stall the server."""
	if not isServable(os.stat(path, dir_fd=dirfd)):
		raise PermissionError(f"Not a regular file: {path}")
	fd: int = os.open(path, os.O_RDONLY | os.O_NONBLOCK, dir_fd=dirfd)
	try:
		st = os.fstat(fd)
		if not isServable(st):
			raise PermissionError(f"Not a regular file: {path}")
	except OSError:
		os.close(fd)
		raise
	return fd, st


class FileService:
	"""Serves the files and directory listings of `options.root`."""

	def __init__(self, options: Options):
		self.options: Options = options

	@property
	def root(self) -> Path:
		return self.options.root

	def process(self, request: HTTPRequest) -> HTTPResponse:
		started: float = time.monotonic()
		path: RequestPath = resolve(request.path)
		response = self.serve(request, path)
		response.setHeader("Cache-Control", CACHE_CONTROL)
		if self.options.verbose:
			access(request.method, path.path, response.status, time.monotonic() - started)
		return response

	def serve(self, request: HTTPRequest, path: RequestPath) -> HTTPResponse:
		with ExitStack() as stack:
			try:
				fd, st = openEntry(localPath(self.root, path))
			except (OSError, ValueError) as e:
				return self.respondError(request, e, path)
			stack.callback(os.close, fd)

			kind = Kind.Directory if stat.S_ISDIR(st.st_mode) else Kind.File
			decision = decide(kind, path, request.query)
			if decision.location is not None:
				return request.redirect(decision.location, permanent=True)
			if self.options.visibility.isDenied(path.path):
				return request.forbidden()

			if decision.action is Action.ServeDirectory:
				response = self.serveDirectory(request, path, fd, stack)
			else:
				response = self.serveFile(request, path.name, fd, stack)
			# The file body is written after we return, so its handles are
			# released once the response is closed.
			if isinstance(response.body, HTTPBodyFile):
				owned = stack.pop_all()
				response.onClose(lambda _: owned.close())
			return response

	def serveFile(
		self, request: HTTPRequest, name: str, fd: int, stack: ExitStack
	) -> HTTPResponse:
		"""Serves the regular file opened as `fd`, which stays owned by
		the caller."""
		file = stack.enter_context(open(fd, "rb", closefd=False))
		return serveContent(
			request, name, file, os.fstat(fd), sendfile=self.options.sendfile
		)

	def serveDirectory(
		self, request: HTTPRequest, path: RequestPath, fd: int, stack: ExitStack
	) -> HTTPResponse:
		"""Serves the index page of the directory opened as `fd` when there
		is one, or its listing otherwise."""
		if index := self.options.index:
			try:
				st = os.stat(index, dir_fd=fd)
			except FileNotFoundError:
				pass
			except OSError as e:
				return self.respondError(request, e, path)
			else:
				# Only regular files are index pages, a directory or a pipe
				# named like the index is listed instead.
				if stat.S_ISREG(st.st_mode):
					try:
						indexfd, _ = openEntry(index, fd)
					except OSError as e:
						return self.respondError(request, e, path)
					stack.callback(os.close, indexfd)
					return self.serveFile(request, index, indexfd, stack)
		try:
			listing = listDirectory(fd, path, self.options.visibility)
		except OSError as e:
			return self.respondError(request, e, path)
		logged(debug) and debug("Directory listed", Path=path.path, Size=len(listing))
		return request.respondHTML(listing)

	def respondError(
		self, request: HTTPRequest, error: BaseException, path: RequestPath
	) -> HTTPResponse:
		status = errorStatus(error)
		if status == 404:
			return request.notFound()
		elif status == 403:
			return request.forbidden()
		else:
			warning(
				"Filesystem error",
				Path=path.path,
				Error=f"{error.__class__.__name__}: {error}",
			)
			return request.fail()

	def __repr__(self) -> str:
		return f"(FileService {self.root})"


# EOF
