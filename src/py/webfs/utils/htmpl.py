from typing import (
	LiteralString,
	Optional,
	Iterable,
	Iterator,
	Union,
	Callable,
	cast,
)
from mypy_extensions import KwArg, VarArg

# --
# HTMPL defines functions to create HTML documents as trees of nodes that
# are serialized lazily. Text and attribute values are always escaped, only
# `raw()` nodes are emitted verbatim.

HTML_EMPTY: list[LiteralString] = "area base br col hr img input link meta wbr".split()

# When serializing with `lines=True`, a line break follows the opening tag
# of containers and the closing tag of block elements.
HTML_LINE_OPEN: set[str] = set(
	"html head style body table thead tbody tfoot tr ul ol".split()
)
HTML_LINE_CLOSE: set[str] = set(
	"html head title style body h1 h2 h3 hr p table thead tbody tfoot tr th td li ul ol".split()
)

HTML_ESCAPED = str.maketrans(
	{"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&#34;", "'": "&#39;"}
)

HTML_QUOTED = str.maketrans({"&": "&amp;", '"': "&#34;", "<": "&lt;", ">": "&gt;"})


def escape(text: str) -> str:
	return text.translate(HTML_ESCAPED)


def quoted(text: Optional[str]) -> str:
	return text.translate(HTML_QUOTED) if text else ""


TNodeContent = Union["Node", str]
TAttributeContent = str | bool | float | int | None


class Node:
	__slots__ = ["name", "attributes", "children"]

	def __init__(
		self,
		name: str,
		children: Optional[Iterable[TNodeContent]] = None,
		attributes: Optional[dict[str, TAttributeContent]] = None,
	):
		self.name = name
		self.attributes: dict[str, TAttributeContent] = attributes or {}
		self.children: list[TNodeContent] = [_ for _ in children] if children else []

	def iterHTML(self, lines: bool = False) -> Iterator[str]:
		if self.name == "#raw":
			yield str(self.attributes.get("#value") or "")
		elif self.name == "#text":
			yield escape(str(self.attributes.get("#value") or ""))
		else:
			yield f"<{self.name}"
			for k, v in (self.attributes or {}).items():
				yield f' {k}="{quoted(str(v))}"' if v is not None else f" {k}"
			yield ">"
			if self.name in HTML_EMPTY:
				pass
			else:
				if lines and self.name in HTML_LINE_OPEN:
					yield "\n"
				for _ in self.children:
					if isinstance(_, Node):
						yield from _.iterHTML(lines)
					else:
						yield escape(str(_))
				yield f"</{self.name}>"
			if lines and self.name in HTML_LINE_CLOSE:
				yield "\n"

	def __call__(self, *content: TNodeContent) -> "Node":
		for _ in content:
			self.children.append(text(_) if isinstance(_, str) else _)
		return self

	def __str__(self) -> str:
		return "".join(self.iterHTML())


def text(text: str) -> Node:
	return Node("#text", attributes={"#value": text})


def raw(html: str) -> Node:
	return Node("#raw", attributes={"#value": html})


def node(
	name: str,
	children: Optional[Iterable[TNodeContent]] = None,
	attributes: Optional[dict[str, TAttributeContent]] = None,
) -> Node:
	return Node(
		name,
		children=[text(_) if isinstance(_, str) else _ for _ in children or ()],
		attributes=attributes,
	)


NodeFactory = Callable[
	[
		VarArg(TNodeContent | Iterable[TNodeContent]),
		KwArg(TAttributeContent),
	],
	Node,
]


def nodeFactory(name: str) -> NodeFactory:
	def f(
		*children: TNodeContent | Iterable[TNodeContent],
		**attributes: TAttributeContent,
	) -> Node:
		content: list[TNodeContent] = []
		for _ in children:
			if isinstance(_, list) or isinstance(_, tuple):
				content += list(_)
			else:
				content.append(cast(TNodeContent, _))
		attrs: dict[str, TAttributeContent] = {}
		for k, v in attributes.items():
			# `_` stands for `class`, which is a Python keyword
			attrs["class" if k == "_" else k] = v
		return node(name, content, attrs)

	f.__name__ = name
	return cast(NodeFactory, f)


HTML_TAGS: list[LiteralString] = (
	"""\
a abbr body br caption code div em footer h1 h2 h3 head header hr html i img
li link main meta nav ol p pre section small span strong style table tbody td
tfoot th thead time title tr ul\
""".split()
)


class Markup:
	__slots__ = ["_factories", "_name"]

	def __init__(self, name: str, factories: dict[str, NodeFactory]):
		self._name: str = name
		self._factories: dict[str, NodeFactory] = factories

	def __getattr__(self, name: str) -> NodeFactory:
		factories = self._factories
		if name not in factories:
			raise AttributeError(
				f"No tag {name}, pick one of {','.join(factories.keys())}"
			)
		else:
			return factories[name]


def markup(name: str, tags: list[LiteralString]) -> Markup:
	return Markup(name, {_: nodeFactory(_) for _ in tags})


H: Markup = markup("html", HTML_TAGS)


def html(
	*nodes: Node, doctype: str | None = None, lines: bool = False
) -> Iterator[str]:
	if doctype:
		yield f"{doctype}\n" if doctype.startswith("<!") else f"<!DOCTYPE {doctype}>\n"
	for _ in nodes:
		yield from _.iterHTML(lines)


# EOF
