from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from .status import HTTP_STATUS

T = TypeVar("T")

# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------

# --
# == HTTP Request Response API
#
# Defines the high level API functions (orthogonal to the underlying model)
# to create responses from a request.

TEXT_PLAIN: str = "text/plain; charset=utf-8"
TEXT_HTML: str = "text/html; charset=utf-8"


class ResponseFactory(ABC, Generic[T]):
	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = TEXT_PLAIN,
		headers: dict[str, str] | None = None,
	) -> T:
		"""Responds with a plain text error, the body defaults to
		`<status> <message>`."""
		message = HTTP_STATUS.get(status, "Server Error")
		return self.respond(
			content=f"{status} {message}\n" if content is None else f"{content}\n",
			contentType=contentType,
			status=status,
			message=message,
			headers=(headers or {}) | {"X-Content-Type-Options": "nosniff"},
		)

	def notFound(self, content: str = "404 page not found") -> T:
		return self.error(404, content)

	def forbidden(self, content: str = "403 Forbidden") -> T:
		return self.error(403, content)

	def fail(self, content: str = "500 Internal Server Error") -> T:
		return self.error(500, content)

	def redirect(self, url: str, permanent: bool = False) -> T:
		# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/Redirections
		return self.respondEmpty(
			status=301 if permanent else 302, headers={"Location": str(url)}
		)

	def notModified(self, headers: dict[str, str] | None = None) -> T:
		return self.respondEmpty(status=304, headers=headers)

	def respondHTML(self, html: str | bytes, status: int = 200) -> T:
		return self.respond(content=html, contentType=TEXT_HTML, status=status)

	def respondEmpty(self, status: int, headers: dict[str, str] | None = None) -> T:
		return self.respond(content=None, status=status, headers=headers)


# EOF
