import os
import re
import stat
from os import getenv
from pathlib import Path
from typing import NamedTuple

from .visibility import DOTFILES, Visibility

PORT: int = int(getenv("PORT", 8080))

# The server is meant to be reached from other machines by default
HOST: str = getenv("HOST", "0.0.0.0")  # nosec: B104

ROOT: str = getenv("WEBFS_ROOT", ".")
HIDE: str = getenv("WEBFS_HIDE", DOTFILES)
DENY: str = getenv("WEBFS_DENY", "")
INDEX: str = getenv("WEBFS_INDEX", "")
SENDFILE: bool = getenv("WEBFS_SENDFILE", "1") == "1"
VERBOSE: bool = getenv("WEBFS_VERBOSE", "0") == "1"


class ConfigError(ValueError):
	"""Raised when the configuration is invalid, the server must not
	start."""


class Options(NamedTuple):
	"""The process-wide configuration, created once before the server
	starts and read-only afterwards."""

	root: Path
	visibility: Visibility = Visibility()
	index: str | None = None
	sendfile: bool = True
	host: str = HOST
	port: int = PORT
	verbose: bool = False

	@staticmethod
	def Make(
		root: str | Path = ROOT,
		*,
		hide: str | None = HIDE,
		deny: str | None = DENY,
		index: str | None = INDEX,
		sendfile: bool = SENDFILE,
		host: str = HOST,
		port: int = PORT,
		verbose: bool = VERBOSE,
	) -> "Options":
		"""Validates and creates options, raising a `ConfigError` for a
		malformed pattern, an index name that is not a plain file name or a
		root that is not an existing directory."""
		try:
			visibility = Visibility.Make(hide, deny)
		except re.error as e:
			raise ConfigError(f"Invalid hide or deny pattern: {e}") from e
		if index and (
			"/" in index or os.sep in index or index in (".", "..")
		):
			raise ConfigError(f"Invalid index name: {index}")
		path: Path = Path(root)
		try:
			st = path.stat()
		except OSError as e:
			raise ConfigError(f"Invalid root directory: {e}") from e
		if not stat.S_ISDIR(st.st_mode):
			raise ConfigError(f"Invalid root directory: {root} is not a directory")
		if not (0 <= port < 65536):
			raise ConfigError(f"Invalid port: {port}")
		return Options(
			root=path.absolute(),
			visibility=visibility,
			index=index or None,
			sendfile=sendfile,
			host=host,
			port=port,
			verbose=verbose,
		)


def parseAddress(address: str) -> tuple[str, int]:
	"""Parses a `host:port` listen address, where the host may be empty
	(as in `:8080`) to listen on all interfaces."""
	host, sep, port = address.rpartition(":")
	if not sep:
		raise ConfigError(f"Invalid address, expected HOST:PORT: {address}")
	try:
		return (host.strip("[]") or "0.0.0.0", int(port))  # nosec: B104
	except ValueError as e:
		raise ConfigError(f"Invalid port in address: {address}") from e


# EOF
