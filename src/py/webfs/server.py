import asyncio
import errno
import socket
import threading
from dataclasses import dataclass
from signal import SIGINT, SIGTERM
from typing import Any, Awaitable, Callable, NamedTuple, Protocol

from .config import HOST, PORT
from .http.model import (
	HTTPBodyFile,
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestError,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .service import CACHE_CONTROL
from .utils.limits import LimitType, unlimit
from .utils.logging import debug, error, event, exception, info, logged, warning

# --
# == Server
#
# An asyncio server working directly with non-blocking sockets. Each
# client connection is served by a task that parses the requests as they
# arrive and writes the responses in order, until the client closes, stays
# idle for too long or asks for the connection not to be kept alive.
#
# TLS is expected to be terminated by a reverse proxy.


class Application(Protocol):
	"""Anything that turns a request into a response."""

	def process(self, request: HTTPRequest) -> HTTPResponse | Awaitable[HTTPResponse]:
		...


class ServerOptions(NamedTuple):
	host: str = "0.0.0.0"  # nosec: B104
	port: int = 8080
	backlog: int = 10_000
	# How often the accept loop checks for a stop request
	polling: float = 1.0
	readsize: int = 64_000
	# Idle connections are closed after that many seconds
	keepalive: float = 60.0
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True


OPTIONS: ServerOptions = ServerOptions()


def cannedResponse(status: int, message: str) -> bytes:
	"""Returns a complete response that closes the connection, for when
	the request could not be processed."""
	body: bytes = f"{status} {message}\n".encode("ascii")
	return (
		f"HTTP/1.1 {status} {message}\r\n"
		"Content-Type: text/plain; charset=utf-8\r\n"
		f"Content-Length: {len(body)}\r\n"
		f"Cache-Control: {CACHE_CONTROL}\r\n"
		"Connection: close\r\n"
		"\r\n"
	).encode("ascii") + body


SERVER_BAD_REQUEST: bytes = cannedResponse(400, "Bad Request")
SERVER_ERROR: bytes = cannedResponse(500, "Internal Server Error")


@dataclass(slots=True)
class ServerState:
	isRunning: bool = True

	def stop(self) -> None:
		info("Server stopping…")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		if e := context.get("exception"):
			exception(e)


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Writes to a non-blocking socket through the event loop."""

	def __init__(
		self,
		client: "socket.socket",
		loop: asyncio.AbstractEventLoop,
	) -> None:
		super().__init__()
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(self, chunk: bytes) -> bool:
		if chunk:
			await self.loop.sock_sendall(self.client, chunk)
		return True

	async def _sendFile(self, body: HTTPBodyFile) -> bool:
		# The loop falls back to reading and sending when `sendfile` is not
		# available for this platform or socket.
		if body.length:
			sent: int = await self.loop.sock_sendfile(
				self.client, body.file, body.offset, body.length
			)
			if sent < body.length:
				# The file was truncated after the head was sent, so the
				# advertised length can't be honoured.
				self.shouldClose = True
		return True


async def respond(
	request: HTTPRequest,
	app: Application,
	writer: HTTPBodyWriter,
	*,
	keepAlive: bool = True,
) -> HTTPResponse | None:
	"""Processes the request within the application and writes the
	response. Returns `None` when the application failed, in which case
	a canned error was written and the connection must be closed."""
	try:
		r = app.process(request)
		res = r if isinstance(r, HTTPResponse) else await r
	except HTTPRequestError as e:
		res = request.error(e.status or 500, e.message)
		res.setHeader("Cache-Control", CACHE_CONTROL)
	except Exception as e:
		exception(e, f"Could not process {request.method} {request.path}")
		await writer.write(SERVER_ERROR)
		return None
	try:
		if not keepAlive:
			res.setHeader("Connection", "close")
		await writer.write(res.head())
		# HEAD responses advertise the length of a body they don't send
		if request.method != "HEAD":
			await writer.write(res.body)
	except (ConnectionResetError, BrokenPipeError):
		writer.shouldClose = True
	finally:
		res.close()
	return res


class Connection:
	"""A client connection, along with the counters that are reported
	when it ends abnormally."""

	__slots__ = [
		"client",
		"loop",
		"options",
		"parser",
		"writer",
		"keepAlive",
		"status",
		"received",
		"requests",
		"responses",
	]

	def __init__(
		self,
		client: socket.socket,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
	):
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop
		self.options: ServerOptions = options
		self.parser: HTTPParser = HTTPParser()
		self.writer: AIOSocketBodyWriter = AIOSocketBodyWriter(client, loop)
		self.keepAlive: bool = True
		self.status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		self.received: int = 0
		self.requests: int = 0
		self.responses: int = 0

	@property
	def isOpen(self) -> bool:
		return self.keepAlive and not self.writer.shouldClose

	async def receive(self) -> bytes | None:
		"""Returns the next chunk sent by the client, or `None` when the
		client closed the connection or stayed idle for too long."""
		try:
			chunk = await asyncio.wait_for(
				self.loop.sock_recv(self.client, self.options.readsize),
				timeout=self.options.keepalive,
			)
		except TimeoutError:
			self.status = HTTPProcessingStatus.Timeout
			return None
		if not chunk:
			self.status = HTTPProcessingStatus.NoData
			return None
		self.received += len(chunk)
		return chunk

	async def serve(self, app: Application) -> None:
		try:
			while self.isOpen and (chunk := await self.receive()):
				logged(debug) and debug(
					"Received", Client=f"{id(self.client):x}", Read=len(chunk)
				)
				# With pipelining, a chunk may hold more than one request
				for atom in self.parser.feed(chunk):
					if atom is HTTPProcessingStatus.BadFormat:
						self.status = atom
						warning("Malformed request", Requests=self.requests)
						await self.writer.write(SERVER_BAD_REQUEST)
						self.keepAlive = False
					elif isinstance(atom, HTTPRequest):
						self.requests += 1
						self.keepAlive = atom.keepAlive
						if await respond(atom, app, self.writer, keepAlive=self.keepAlive):
							self.responses += 1
						else:
							self.keepAlive = False
					if not self.isOpen:
						break
			self.report()
		except (ConnectionResetError, BrokenPipeError):
			# Early close from the client
			pass
		except Exception as e:
			exception(e)
		finally:
			self.client.close()

	def report(self) -> None:
		if self.responses != self.requests:
			warning(
				"Incomplete responses", Requests=self.requests, Responses=self.responses
			)
		if (
			self.status is HTTPProcessingStatus.NoData
			and self.received
			and not self.requests
		):
			warning("Client did not send a complete request", Read=self.received)


class AIOSocketServer:
	"""Accepts connections on a non-blocking socket, serving each of them
	in its own task."""

	@staticmethod
	def Bind(options: ServerOptions) -> socket.socket:
		family = socket.AF_INET6 if ":" in options.host else socket.AF_INET
		server = socket.socket(family, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		try:
			server.bind((options.host, options.port))
		except OSError:
			error(
				f"Unable to bind to {options.host}:{options.port}, aborting.",
				"HOSTPORTERR",
			)
			server.close()
			raise
		server.listen(options.backlog)
		server.setblocking(False)
		return server

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = OPTIONS,
	) -> None:
		server = cls.Bind(options)
		tasks: set[asyncio.Task[None]] = set()
		loop = asyncio.get_running_loop()
		state = ServerState()
		# Signal handlers can only be installed from the main thread
		if (
			options.stopSignals
			and threading.current_thread() is threading.main_thread()
		):
			loop.add_signal_handler(SIGINT, state.stop)
			loop.add_signal_handler(SIGTERM, state.stop)
		loop.set_exception_handler(state.onException)
		info("Server listening", icon="🚀", Host=options.host, Port=options.port)
		try:
			while state.isRunning:
				if options.condition and not options.condition():
					break
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling or 1.0
					)
				except TimeoutError:
					continue
				except OSError as e:
					if e.errno == errno.EMFILE:
						# Out of file descriptors, we wait for some to be released
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				client.setblocking(False)
				task = loop.create_task(Connection(client, loop, options).serve(app))
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			server.close()
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)


def run(
	app: Application,
	host: str = HOST,
	port: int = PORT,
	backlog: int = OPTIONS.backlog,
	condition: Callable[[], bool] | None = None,
	polling: float = OPTIONS.polling,
	keepalive: float = OPTIONS.keepalive,
) -> None:
	"""Serves the application until interrupted, after raising the open
	files limit."""
	unlimit(LimitType.Files)
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		condition=condition,
		polling=polling,
		keepalive=keepalive,
	)
	try:
		asyncio.run(AIOSocketServer.Serve(app, options))
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
