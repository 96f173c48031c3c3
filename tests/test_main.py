import io
import tempfile
from contextlib import redirect_stderr

from webfs.__main__ import main


def exits(*args: str) -> tuple[int | str | None, str]:
	"""Runs the command line, which must exit before serving, and returns
	its exit status and what was written to stderr."""
	err = io.StringIO()
	try:
		with redirect_stderr(err):
			main(list(args))
	except SystemExit as e:
		return e.code, err.getvalue()
	raise AssertionError(f"Command did not exit: {args}")


def test_invalid_options():
	with tempfile.TemporaryDirectory() as tmp:
		status, err = exits("--root", tmp, "--hide", "(")
		assert status == 1
		assert err.startswith("usage: webfs")
		assert "Invalid hide or deny pattern" in err
		status, err = exits("--root", tmp, "--index", "../index.html")
		assert status == 1
		status, err = exits("--root", f"{tmp}/missing")
		assert status == 1
		status, err = exits("--root", tmp, "--addr", "localhost")
		assert status == 1


def test_invalid_arguments():
	with tempfile.TemporaryDirectory() as tmp:
		status, err = exits("--root", tmp, "extra")
		assert status == 1
		assert "unrecognized arguments: extra" in err
		status, err = exits("--port", "http")
		assert status == 1
		status, _ = exits("--help")
		assert status == 0


if __name__ == "__main__":
	test_invalid_options()
	test_invalid_arguments()
	print("EOK")

# EOF
