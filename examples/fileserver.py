"""
Embedded File Server Example

Serves a directory from code rather than from the `webfs` command, with
a deny pattern and an index page.

Usage:
    python fileserver.py [DIRECTORY]

Test with:
    http://localhost:8000/            # Listing, or index.html when present
    http://localhost:8000/private/    # 403 Forbidden
"""

import sys

from webfs import FileService, Options, run
from webfs.utils.logging import info

if __name__ == "__main__":
	options = Options.Make(
		sys.argv[1] if len(sys.argv) > 1 else ".",
		deny="^/private/",
		index="index.html",
		port=8000,
		verbose=True,
	)
	info("Serving directory", Root=str(options.root))
	run(FileService(options), host="127.0.0.1", port=options.port)

# EOF
