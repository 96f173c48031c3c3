import re

from webfs.visibility import DOTFILES, Visibility, compilePattern, matches


def test_dotfiles():
	pattern = compilePattern(DOTFILES)
	assert matches(pattern, "/.git")
	assert matches(pattern, "/.git/")
	assert matches(pattern, "/.git/config")
	assert matches(pattern, "/docs/.env")
	assert not matches(pattern, "/")
	assert not matches(pattern, "/docs/")
	assert not matches(pattern, "/a.b/c")
	assert not matches(pattern, "/docs/file.")


def test_empty_patterns():
	assert compilePattern(None) is None
	assert compilePattern("") is None
	assert not matches(None, "/anything")
	visibility = Visibility.Make("", "")
	assert visibility.hide is None and visibility.deny is None
	assert visibility.isListed("/.git/")


def test_hide_and_deny():
	visibility = Visibility.Make(DOTFILES, "^/secret")
	assert visibility.isHidden("/.env")
	assert not visibility.isDenied("/.env")
	assert not visibility.isListed("/.env")
	assert visibility.isDenied("/secret/x")
	assert visibility.isDenied("/secret/")
	assert not visibility.isListed("/secret/")
	assert not visibility.isDenied("/public/secret")
	assert visibility.isListed("/readme.txt")


def test_malformed():
	try:
		Visibility.Make("(", None)
		raise AssertionError("Malformed pattern should fail")
	except re.error:
		pass


if __name__ == "__main__":
	test_dotfiles()
	test_empty_patterns()
	test_hide_and_deny()
	test_malformed()
	print("EOK")

# EOF
