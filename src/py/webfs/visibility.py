import re
from typing import NamedTuple, Pattern

# The default hide pattern, any path with a segment starting with a dot.
DOTFILES: str = r"/[.][^/]+(/|$)"


def compilePattern(expression: str | None) -> Pattern[str] | None:
	"""Compiles the given expression, where an empty or missing expression
	yields no pattern. Raises `re.error` on a malformed expression."""
	return re.compile(expression) if expression else None


def matches(pattern: Pattern[str] | None, path: str) -> bool:
	"""Tells if the pattern matches anywhere in `path`, a missing pattern
	matches nothing."""
	return pattern is not None and pattern.search(path) is not None


class Visibility(NamedTuple):
	"""Hidden paths are only left out of listings, while denied paths are
	also refused when fetched directly. Paths are logical request paths,
	with directories ending in `/`."""

	hide: Pattern[str] | None = None
	deny: Pattern[str] | None = None

	@staticmethod
	def Make(hide: str | None = None, deny: str | None = None) -> "Visibility":
		return Visibility(compilePattern(hide), compilePattern(deny))

	def isHidden(self, path: str) -> bool:
		return matches(self.hide, path)

	def isDenied(self, path: str) -> bool:
		return matches(self.deny, path)

	def isListed(self, path: str) -> bool:
		return not (self.isHidden(path) or self.isDenied(path))


# EOF
