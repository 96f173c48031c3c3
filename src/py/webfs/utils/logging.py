import os
import sys
import time
import traceback
from contextvars import ContextVar
from enum import Enum
from typing import Any, Callable, NamedTuple, TypeAlias

from .term import Term

# --
# == Logging
#
# Log entries are single lines written to stderr, made of a coloured
# `[origin]` tag, a message (or an event name and value) and `key=value`
# context pairs. Entries below the `WEBFS_LOG_LEVEL` threshold are dropped.

ERR = sys.stderr

TValue: TypeAlias = str | int | float | bool | None

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="webfs")


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	Error = 40
	Exception = 50


# 256-color terminal codes
LEVEL_COLORS: dict[LogLevel, int] = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}


def parseLevel(name: str | None, default: LogLevel = LogLevel.Info) -> LogLevel:
	"""Parses a level name like `debug` or `Warning`, returning `default`
	when the name is not known."""
	key: str = (name or "").strip().lower()
	return next((_ for _ in LogLevel if _.name.lower() == key), default)


LOG_LEVEL: LogLevel = parseLevel(os.environ.get("WEBFS_LOG_LEVEL"))


class LogEntry(NamedTuple):
	origin: str
	time: float
	level: LogLevel
	message: str | None = None
	# Events have a name and a value instead of a message
	name: str | None = None
	value: Any = None
	context: dict[str, TValue] | None = None
	icon: str | None = None

	@property
	def isEvent(self) -> bool:
		return self.name is not None


def formatValue(value: Any) -> str:
	match value:
		case None | []:
			return "◌"
		case dict() if not value:
			return "◌"
		case bool():
			return "✓" if value else "✗"
		case float():
			return f"{value:0.2f}"
		case str():
			return repr(value) if " " in value else value
		case dict():
			return " ".join(
				f"{Term.BOLD}{k}{Term.RESET}={formatValue(v)}" for k, v in value.items()
			)
		case list() | tuple():
			return ",".join(formatValue(_) for _ in value)
		case _:
			return str(value)


def render(entry: LogEntry) -> str:
	color: str = Term.Color(LEVEL_COLORS[entry.level])
	context: str = f" {formatValue(entry.context)}" if entry.context else ""
	if entry.isEvent:
		head = f"{color}{Term.BOLD}[{entry.origin}] {entry.name}{Term.RESET}"
		return f"{head} {formatValue(entry.value)}{context}{Term.RESET}\n"
	else:
		icon: str = f" {entry.icon}" if entry.icon else ""
		head = f"{color}{Term.BOLD}[{entry.origin}]{Term.RESET}{icon}"
		return f"{head} {entry.message}{context}{Term.RESET}\n"


def log(
	level: LogLevel,
	message: str | None = None,
	*,
	name: str | None = None,
	value: Any = None,
	origin: str | None = None,
	icon: str | None = None,
	context: dict[str, TValue] | None = None,
) -> LogEntry:
	"""Creates the entry and writes it when its level is above the
	threshold. The entry is returned either way."""
	entry = LogEntry(
		origin=origin or LogOrigin.get(),
		time=time.time(),
		level=level,
		message=message,
		name=name,
		value=value,
		context=context,
		icon=icon,
	)
	if level.value >= LOG_LEVEL.value:
		ERR.write(render(entry))
		ERR.flush()
	return entry


def debug(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TValue,
) -> LogEntry:
	return log(LogLevel.Debug, message, origin=origin, icon=icon, context=context)


def info(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TValue,
) -> LogEntry:
	return log(LogLevel.Info, message, origin=origin, icon=icon, context=context)


def warning(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TValue,
) -> LogEntry:
	return log(LogLevel.Warning, message, origin=origin, icon=icon, context=context)


def error(
	message: str,
	code: int | str | None,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TValue,
) -> LogEntry:
	return log(
		LogLevel.Error,
		message,
		value=code,
		origin=origin,
		icon=icon,
		context=(context | {"Code": code}) if code is not None else context,
	)


def event(
	event: str,
	value: Any = None,
	*,
	origin: str | None = None,
	**context: TValue,
) -> LogEntry:
	return log(LogLevel.Info, name=event, value=value, origin=origin, context=context)


def access(method: str, path: str, status: int, duration: float) -> LogEntry:
	"""Logs a served request, as in `GET /docs/ 200 Time=0.41`, with the
	duration in milliseconds."""
	return event(method, path, Status=status, Time=duration * 1000.0)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	"""Writes the exception and its traceback to stderr, regardless of the
	threshold, and returns it so that it can be used as `raise exception(e)`."""
	summary: str = f"[{exception.__class__.__name__}] {exception}"
	try:
		ERR.write(f"!!! EXCP {f'{message}: {summary}' if message else summary}\n")
		for frame in traceback.extract_tb(exception.__traceback__):
			ERR.write(
				f"... in {frame.name:15s} at {frame.lineno or 0:4d} in {frame.filename}\n"
			)
		ERR.flush()
	except Exception:  # nosec: B110
		# This is called from exception handlers, where a failing stderr
		# must not mask the original error.
		pass
	return exception


LEVELS: dict[Callable[..., Any], LogLevel] = {
	debug: LogLevel.Debug,
	info: LogLevel.Info,
	event: LogLevel.Info,
	access: LogLevel.Info,
	warning: LogLevel.Warning,
	error: LogLevel.Error,
}


def logged(item: Callable[..., Any]) -> bool:
	"""Tells if the given logging function currently emits, to guard
	against building entries that would be dropped, as in
	`logged(debug) and debug(...)`."""
	return LEVELS.get(item, LogLevel.Info).value >= LOG_LEVEL.value


# EOF
