from enum import Enum
from typing import NamedTuple
from urllib.parse import quote

from .paths import RequestPath

# --
# == Trailing slashes
#
# Directories are always addressed with a trailing slash and files never
# are. A request that breaks the rule is permanently redirected to its
# counterpart, using a location relative to the last segment so that it
# stays correct behind a reverse proxy that mounts us under a prefix.


class Kind(Enum):
	File = "file"
	Directory = "directory"


class Action(Enum):
	ServeFile = "file"
	ServeDirectory = "directory"
	AddSlash = "add-slash"
	RemoveSlash = "remove-slash"


# (kind, has trailing slash) → action
SLASH_RULES: dict[tuple[Kind, bool], Action] = {
	(Kind.Directory, True): Action.ServeDirectory,
	(Kind.Directory, False): Action.AddSlash,
	(Kind.File, False): Action.ServeFile,
	(Kind.File, True): Action.RemoveSlash,
}


class Decision(NamedTuple):
	action: Action
	location: str | None = None

	@property
	def isRedirect(self) -> bool:
		return self.location is not None


def escapeSegment(name: str) -> str:
	"""URL-escapes a single path segment so that it can be used as a
	relative reference. Colons are escaped too, as `a:b` would otherwise
	read as a URL with an `a` scheme."""
	return quote(name, safe="!$&'()*+,;=@~", errors="surrogateescape")


def decide(kind: Kind, path: RequestPath, query: str | None = None) -> Decision:
	"""Returns the action for a request to `path` that resolved to a `kind`
	of filesystem entry. Redirects carry a relative location that preserves
	the `query` string."""
	action = SLASH_RULES[(kind, path.hasSlash)]
	if action is Action.AddSlash:
		location = escapeSegment(path.name) + "/"
	elif action is Action.RemoveSlash:
		location = "../" + escapeSegment(path.name)
	else:
		return Decision(action)
	return Decision(action, f"{location}?{query}" if query else location)


# EOF
