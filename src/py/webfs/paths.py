from pathlib import Path
from typing import NamedTuple
from urllib.parse import unquote

# --
# == Request paths
#
# Requests paths are untrusted: they are percent-decoded and then cleaned of
# empty, `.` and `..` segments before anything touches the filesystem. As
# the cleaned path is always rooted at `/`, joining it with the root
# directory can never address anything outside of it.


class RequestPath(NamedTuple):
	"""A canonical, absolute and decoded request path. The path ends with a
	`/` if and only if `hasSlash` is set, which is always the case for
	the root."""

	path: str
	hasSlash: bool

	@property
	def segments(self) -> list[str]:
		"""The non-empty segments of the path, `[]` for the root."""
		return [_ for _ in self.path.split("/") if _]

	@property
	def name(self) -> str:
		"""The last segment of the path, or `/` for the root."""
		segments = self.segments
		return segments[-1] if segments else "/"

	@property
	def isRoot(self) -> bool:
		return self.path == "/"

	def join(self, name: str) -> str:
		"""Returns the logical path of the child `name`."""
		return f"{self.path.rstrip('/')}/{name}"

	def __str__(self) -> str:
		return self.path


def clean(path: str) -> str:
	"""Returns the shortest absolute path equivalent to `path`, resolving
	`.` and `..` segments lexically and collapsing repeated slashes. A `..`
	at the root stays at the root. The result has no trailing slash unless it
	is the root."""
	segments: list[str] = []
	for segment in path.split("/"):
		if not segment or segment == ".":
			continue
		elif segment == "..":
			if segments:
				segments.pop()
		else:
			segments.append(segment)
	return "/" + "/".join(segments)


def resolve(raw: str) -> RequestPath:
	"""Resolves a raw (percent-encoded) request path into a canonical
	`RequestPath`, preserving whether the request had a trailing slash."""
	# Names that are not valid UTF-8 are kept as surrogates, so that they
	# map back to the original bytes on the filesystem.
	decoded: str = unquote(raw, errors="surrogateescape")
	cleaned: str = clean(decoded)
	if decoded.endswith("/") and not cleaned.endswith("/"):
		cleaned += "/"
	return RequestPath(cleaned, cleaned.endswith("/"))


def localPath(root: Path, path: RequestPath) -> Path:
	"""Joins the request path with the `root` directory."""
	return root.joinpath(*path.segments)


# EOF
