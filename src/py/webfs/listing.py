import os
import stat
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, NamedTuple

from .paths import RequestPath
from .slashes import escapeSegment
from .utils.htmpl import H, Node, html, raw
from .utils.io import DEFAULT_ENCODING
from .visibility import Visibility

LISTING_CSS: str = """\
body { font-family: monospace; }
h1 { margin: 0; }
th, td { text-align: left; }
th, td { padding-right: 2em; }
th { padding-bottom: 0.5em; }
a, a:visited, a:hover, a:active { color: blue; }
"""

# IEC prefixes, the first one being no scaling at all
SIZE_UNITS: tuple[str, ...] = ("", "K", "M", "G", "T", "P", "E", "Z", "Y")

# Listings are not localized, so we don't rely on `strftime`'s locale
MONTHS: tuple[str, ...] = (
	"Jan",
	"Feb",
	"Mar",
	"Apr",
	"May",
	"Jun",
	"Jul",
	"Aug",
	"Sep",
	"Oct",
	"Nov",
	"Dec",
)

# Timestamps closer than that to now are shown as a time of day
RECENT: float = 12 * 3600.0

# -----------------------------------------------------------------------------
#
# ENTRIES
#
# -----------------------------------------------------------------------------


class Entry(NamedTuple):
	"""A directory entry, as returned by `lstat` or, for resolved symbolic
	links, by `stat`."""

	name: str
	isDirectory: bool
	isRegular: bool
	isSymlink: bool
	size: int
	modTime: float

	@staticmethod
	def FromStat(name: str, st: os.stat_result) -> "Entry":
		return Entry(
			name=name,
			isDirectory=stat.S_ISDIR(st.st_mode),
			isRegular=stat.S_ISREG(st.st_mode),
			isSymlink=stat.S_ISLNK(st.st_mode),
			size=st.st_size,
			modTime=st.st_mtime,
		)


class ListingRow(NamedTuple):
	name: str
	href: str
	size: str
	modified: str


def resolveSymlink(item: os.DirEntry[str], entry: Entry) -> Entry | None:
	"""Returns the entry for the target of the symbolic link `entry`, or
	`None` when it can't be resolved (dangling link, loop, permissions),
	in which case the link itself is kept."""
	try:
		return Entry.FromStat(entry.name, item.stat(follow_symlinks=True))
	except (OSError, ValueError):
		return None


def readEntries(directory: Path | int) -> list[Entry]:
	"""Reads all the entries of `directory`, given as a path or as the
	descriptor of an open directory, resolving symbolic links one level
	deep. Errors reading the directory itself are propagated."""
	entries: list[Entry] = []
	with os.scandir(directory) as items:
		for item in items:
			try:
				st = item.stat(follow_symlinks=False)
			except FileNotFoundError:
				# Removed between the listing and the stat
				continue
			entry = Entry.FromStat(item.name, st)
			if entry.isSymlink:
				entry = resolveSymlink(item, entry) or entry
			entries.append(entry)
	return entries


def sortEntries(entries: Iterable[Entry]) -> list[Entry]:
	"""Sorts entries by the bytes of their names, so `B` comes before `a`."""
	return sorted(entries, key=lambda _: os.fsencode(_.name))


# -----------------------------------------------------------------------------
#
# FORMATTING
#
# -----------------------------------------------------------------------------


def formatSize(size: int) -> str:
	"""Returns the formatted size with IEC prefixes, as in `512B` or
	`77.8MiB` for 81533654."""
	n: float = float(size)
	scale: int = 0
	while n >= 1024 and scale < len(SIZE_UNITS) - 1:
		n /= 1024
		scale += 1
	if scale == 0:
		return f"{int(n)}B"
	else:
		return f"{n:0.1f}{SIZE_UNITS[scale]}iB"


def formatTime(timestamp: float, now: float | None = None) -> str:
	"""Formats the timestamp in local time with second granularity.
	Timestamps within 12 hours of now only print the time (as in `3:04 PM`),
	others only print the date (as in `Jan 2, 2006`)."""
	now = time.time() if now is None else now
	try:
		t = datetime.fromtimestamp(timestamp)
	except (OverflowError, OSError, ValueError):
		# Out of the range supported by the platform
		return ""
	if -RECENT < timestamp - now < RECENT:
		return f"{(t.hour % 12) or 12}:{t.minute:02d} {'AM' if t.hour < 12 else 'PM'}"
	else:
		return f"{MONTHS[t.month - 1]} {t.day}, {t.year}"


# -----------------------------------------------------------------------------
#
# LISTING
#
# -----------------------------------------------------------------------------


def breadcrumbs(path: RequestPath) -> list[tuple[str, str]]:
	"""Returns `(text, href)` pairs for the path and each of its ancestors,
	root first, with relative hrefs like `./..`."""
	names: list[str] = path.path.rstrip("/").split("/")
	n: int = len(names)
	return [(f"{name}/", "." + "/.." * (n - 1 - i)) for i, name in enumerate(names)]


def listingRows(
	path: RequestPath,
	entries: Iterable[Entry],
	visibility: Visibility,
	now: float | None = None,
) -> list[ListingRow]:
	"""Returns the rows for the entries of the directory at `path`, leaving
	out the entries that are hidden or denied."""
	now = time.time() if now is None else now
	rows: list[ListingRow] = []
	for entry in entries:
		name: str = entry.name
		href: str = escapeSegment(name)
		logical: str = path.join(name)
		if entry.isDirectory:
			name += "/"
			href += "/"
			logical += "/"
		if not visibility.isListed(logical):
			continue
		rows.append(
			ListingRow(
				name=name,
				href=href,
				size=formatSize(entry.size) if entry.isRegular else "",
				modified=formatTime(entry.modTime, now),
			)
		)
	return rows


def renderListing(path: RequestPath, rows: Iterable[ListingRow]) -> Node:
	crumbs: list[Node | str] = []
	for i, (text, href) in enumerate(breadcrumbs(path)):
		if i > 0:
			crumbs.append(" ")
		crumbs.append(H.a(text, href=href))
	return H.html(
		H.head(
			H.title(path.path),
			H.style(raw(LISTING_CSS)),
		),
		H.body(
			H.h1(crumbs),
			H.hr(),
			H.table(
				H.thead(H.tr(H.th("Name"), H.th("Size"), H.th("Last Modified"))),
				H.tbody(
					[
						H.tr(
							H.td(H.a(row.name, href=row.href)),
							H.td(row.size),
							H.td(row.modified),
						)
						for row in rows
					]
				),
			),
		),
		lang="en",
	)


def listDirectory(
	directory: Path | int,
	path: RequestPath,
	visibility: Visibility,
	now: float | None = None,
) -> bytes:
	"""Renders the HTML listing of `directory`, which is served at the
	logical `path`. Names that are not valid UTF-8 are written back as the
	original bytes, like they appear on disk."""
	rows = listingRows(path, sortEntries(readEntries(directory)), visibility, now)
	return "".join(html(renderListing(path, rows), lines=True)).encode(
		DEFAULT_ENCODING, "surrogateescape"
	)


# EOF
