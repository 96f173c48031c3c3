import argparse
import sys
from typing import NoReturn

from .config import (
	DENY,
	HIDE,
	HOST,
	INDEX,
	PORT,
	ROOT,
	SENDFILE,
	VERBOSE,
	ConfigError,
	Options,
	parseAddress,
)
from .server import run
from .service import FileService
from .utils.logging import info


class ArgumentParser(argparse.ArgumentParser):
	"""Exits with status 1 on invalid arguments, like for invalid options."""

	def error(self, message: str) -> NoReturn:
		self.print_usage(sys.stderr)
		self.exit(1, f"{self.prog}: error: {message}\n")


def main(args: list[str] | None = None) -> None:
	# Create the parser
	parser = ArgumentParser(
		prog="webfs",
		description="Serves the files and directory listings of a local directory",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,  # Shows default values in help
	)

	# Register the options
	parser.add_argument(
		"-p",
		"--port",
		action="store",
		dest="port",
		type=int,
		help="Specifies the port",
		default=PORT,
	)
	parser.add_argument(
		"--host",
		action="store",
		dest="host",
		help="Specifies the interface to listen on",
		default=HOST,
	)
	parser.add_argument(
		"--addr",
		action="store",
		dest="addr",
		metavar="HOST:PORT",
		help="Listen address, overrides --host and --port (`:8080` listens on all interfaces)",
	)
	parser.add_argument(
		"--hide",
		action="store",
		dest="hide",
		metavar="REGEX",
		help="Paths matching this expression are left out of listings",
		default=HIDE,
	)
	parser.add_argument(
		"--deny",
		action="store",
		dest="deny",
		metavar="REGEX",
		help="Paths matching this expression are refused and left out of listings",
		default=DENY,
	)
	parser.add_argument(
		"--index",
		action="store",
		dest="index",
		metavar="FILENAME",
		help="Serves this file instead of the listing when a directory has one",
		default=INDEX,
	)
	parser.add_argument(
		"--root",
		action="store",
		dest="root",
		help="The directory to serve",
		default=ROOT,
	)
	parser.add_argument(
		"--sendfile",
		action=argparse.BooleanOptionalAction,
		dest="sendfile",
		help="Uses the sendfile system call to send files",
		default=SENDFILE,
	)
	parser.add_argument(
		"-v",
		"--verbose",
		action="store_true",
		dest="verbose",
		help="Logs every request",
		default=VERBOSE,
	)

	# Parse the options, extra positional arguments are an error.
	# If args is None, it defaults to sys.argv[1:]
	options = parser.parse_args(args=args)

	try:
		host, port = (
			parseAddress(options.addr) if options.addr else (options.host, options.port)
		)
		config = Options.Make(
			options.root,
			hide=options.hide,
			deny=options.deny,
			index=options.index,
			sendfile=options.sendfile,
			host=host,
			port=port,
			verbose=options.verbose,
		)
	except ConfigError as e:
		parser.error(str(e))

	info(
		"Starting file server",
		icon="📂",
		Root=str(config.root),
		Address=f"{config.host}:{config.port}",
	)
	try:
		run(FileService(config), host=config.host, port=config.port)
	except OSError:
		# The bind error has already been logged
		sys.exit(1)


if __name__ == "__main__":
	main(sys.argv[1:])
# EOF
