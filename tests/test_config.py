import tempfile
from pathlib import Path

from webfs.config import ConfigError, Options, parseAddress
from webfs.visibility import DOTFILES


def fails(**options) -> bool:
	try:
		Options.Make(**options)
	except ConfigError:
		return True
	else:
		return False


def test_make():
	with tempfile.TemporaryDirectory() as tmp:
		options = Options.Make(tmp, hide=DOTFILES, deny="^/secret", index="index.html")
		assert options.root == Path(tmp).absolute()
		assert options.index == "index.html"
		assert options.visibility.isHidden("/.git/")
		assert options.visibility.isDenied("/secret/")
		# Empty patterns and index mean none
		options = Options.Make(tmp, hide="", deny="", index="")
		assert options.visibility.hide is None
		assert options.visibility.deny is None
		assert options.index is None


def test_invalid():
	with tempfile.TemporaryDirectory() as tmp:
		assert fails(root=tmp, hide="(")
		assert fails(root=tmp, deny="[a-")
		assert fails(root=tmp, index="a/b")
		assert fails(root=tmp, index="..")
		assert fails(root=tmp, index=".")
		assert fails(root=tmp, port=70000)
		assert fails(root=Path(tmp) / "missing")
		(Path(tmp) / "file.txt").write_bytes(b"")
		assert fails(root=Path(tmp) / "file.txt")
		assert not fails(root=tmp, index="index.html", port=0)


def test_address():
	assert parseAddress(":8080") == ("0.0.0.0", 8080)
	assert parseAddress("127.0.0.1:80") == ("127.0.0.1", 80)
	assert parseAddress("[::1]:8000") == ("::1", 8000)
	for address in ("8080", "localhost:http", ""):
		try:
			parseAddress(address)
			raise AssertionError(f"Address should be invalid: {address}")
		except ConfigError:
			pass


if __name__ == "__main__":
	test_make()
	test_invalid()
	test_address()
	print("EOK")

# EOF
