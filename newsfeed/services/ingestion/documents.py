"""
Document parsing capability shared by the feed parser, image resolver and scraper.

Two interchangeable realizations are provided:

- DomDocumentParser: structural parsing with xml.etree.ElementTree for feed
  XML and BeautifulSoup for HTML fragments and pages.
- RegexDocumentParser: tolerant string scanning for environments where a
  structural parser is unavailable or too strict.

Both expose the same small query surface, so business logic never depends on
which one is injected. Element names are reported with the prefix the document
itself binds ("content:encoded", "media:thumbnail"), or bare for the default
namespace.
"""

import html
import io
import re
from abc import ABC, abstractmethod
from typing import Iterator, Optional, Union
from xml.etree import ElementTree

from bs4 import BeautifulSoup

from newsfeed.services.ingestion.errors import ParseError

Markup = Union[str, bytes]

_BOM = "\ufeff"
_XML_ENCODING_RE = re.compile(rb"""\s*<\?xml[^>]*?\bencoding\s*=\s*["']([A-Za-z0-9._:-]+)["']""")


def _clean_markup(content: Markup) -> Markup:
    """Drop a BOM and leading whitespace, which XML parsers reject."""
    if isinstance(content, bytes):
        return content.removeprefix(b"\xef\xbb\xbf").lstrip()
    return content.removeprefix(_BOM).lstrip()


def _declared_encoding(content: bytes) -> str:
    """Encoding named in the XML declaration; UTF-8 when absent or BOM-marked."""
    if content.startswith(b"\xef\xbb\xbf"):
        return "utf-8"
    match = _XML_ENCODING_RE.match(content)
    return match.group(1).decode("ascii") if match else "utf-8"


def _as_text(content: Markup) -> str:
    if isinstance(content, bytes):
        try:
            return content.decode(_declared_encoding(content), errors="replace")
        except LookupError:
            # Unknown codec name in the declaration
            return content.decode("utf-8", errors="replace")
    return content


# =============================================================================
# Interfaces
# =============================================================================

class XmlNode(ABC):
    """An element of a parsed feed document."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Element name with the document's namespace prefix."""
        pass

    @abstractmethod
    def attr(self, name: str) -> Optional[str]:
        """Attribute value, or None when absent."""
        pass

    @abstractmethod
    def text(self) -> str:
        """Concatenated text content with entities decoded and CDATA unwrapped."""
        pass

    @abstractmethod
    def find_all(self, name: str) -> list["XmlNode"]:
        """All descendants with the given name, in document order."""
        pass

    def find(self, name: str) -> Optional["XmlNode"]:
        """First descendant with the given name."""
        matches = self.find_all(name)
        return matches[0] if matches else None

    def find_text(self, name: str) -> str:
        """Stripped text of the first descendant with the given name, or ''."""
        node = self.find(name)
        return node.text().strip() if node is not None else ""


class XmlDocument(ABC):
    """A parsed feed document."""

    @property
    @abstractmethod
    def root_name(self) -> str:
        """Local name of the document element."""
        pass

    @abstractmethod
    def find_all(self, name: str) -> list[XmlNode]:
        """All elements with the given name anywhere in the document."""
        pass


class HtmlDocument(ABC):
    """A parsed HTML fragment or page."""

    @abstractmethod
    def elements(self, tag: str) -> list[dict[str, str]]:
        """Attribute maps (lowercased names) of all elements with the tag, in order."""
        pass

    @abstractmethod
    def text(self) -> str:
        """Visible text, with script and style contents removed."""
        pass


class DocumentParser(ABC):
    """Capability: turn raw markup into a queryable tree."""

    name: str = "base"

    @abstractmethod
    def parse_xml(self, content: Markup) -> XmlDocument:
        """Parse feed XML. Raises ParseError on unusable input."""
        pass

    @abstractmethod
    def parse_html(self, content: Markup) -> HtmlDocument:
        """Parse HTML leniently. Never raises for malformed markup."""
        pass


# =============================================================================
# DOM-backed realization
# =============================================================================

XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"


class _Namespaces:
    """Maps '{uri}local' ElementTree tags back to the document's own prefixes."""

    def __init__(self, prefixes: dict[str, str]):
        self._prefixes = dict(prefixes)
        self._prefixes.setdefault(XML_NAMESPACE, "xml")

    def qualify(self, tag: str) -> str:
        if not tag.startswith("{"):
            return tag
        uri, _, local = tag[1:].partition("}")
        prefix = self._prefixes.get(uri)
        return f"{prefix}:{local}" if prefix else local


class _EtreeNode(XmlNode):
    def __init__(self, element: ElementTree.Element, namespaces: _Namespaces):
        self._element = element
        self._namespaces = namespaces

    @property
    def name(self) -> str:
        return self._namespaces.qualify(self._element.tag)

    def attr(self, name: str) -> Optional[str]:
        value = self._element.get(name)
        if value is None and ":" in name:
            for key, candidate in self._element.attrib.items():
                if self._namespaces.qualify(key) == name:
                    return candidate
        return value

    def text(self) -> str:
        return "".join(self._element.itertext())

    def find_all(self, name: str) -> list[XmlNode]:
        return [
            _EtreeNode(el, self._namespaces)
            for el in self._element.iter()
            if el is not self._element and self._namespaces.qualify(el.tag) == name
        ]


class _EtreeDocument(XmlDocument):
    def __init__(self, root: ElementTree.Element, namespaces: _Namespaces):
        self._root = root
        self._namespaces = namespaces

    @property
    def root_name(self) -> str:
        return self._namespaces.qualify(self._root.tag).rpartition(":")[2]

    def find_all(self, name: str) -> list[XmlNode]:
        return [
            _EtreeNode(el, self._namespaces)
            for el in self._root.iter()
            if self._namespaces.qualify(el.tag) == name
        ]


class _SoupDocument(HtmlDocument):
    def __init__(self, soup: BeautifulSoup):
        self._soup = soup

    def elements(self, tag: str) -> list[dict[str, str]]:
        found = []
        for element in self._soup.find_all(tag):
            found.append({
                key.lower(): " ".join(value) if isinstance(value, list) else value
                for key, value in element.attrs.items()
            })
        return found

    def text(self) -> str:
        for element in self._soup(["script", "style"]):
            element.decompose()
        return self._soup.get_text(" ")


class DomDocumentParser(DocumentParser):
    """Structural parsing: ElementTree for XML, BeautifulSoup for HTML."""

    name = "dom"

    def __init__(self, html_features: str = "html.parser"):
        self.html_features = html_features

    def parse_xml(self, content: Markup) -> XmlDocument:
        content = _clean_markup(content)
        source = io.BytesIO(content) if isinstance(content, bytes) else io.StringIO(content)
        prefixes: dict[str, str] = {}
        try:
            iterator = ElementTree.iterparse(source, events=("start-ns",))
            for _event, (prefix, uri) in iterator:
                prefixes.setdefault(uri, prefix)
            root = iterator.root
        except ElementTree.ParseError as e:
            raise ParseError(f"Malformed XML: {e}") from e
        if root is None:
            raise ParseError("Empty XML document")
        return _EtreeDocument(root, _Namespaces(prefixes))

    def parse_html(self, content: Markup) -> HtmlDocument:
        return _SoupDocument(BeautifulSoup(content or "", self.html_features))


# =============================================================================
# Regex-based realization
# =============================================================================

_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.S)
_TAG_RE = re.compile(r"<[^>]+>")
_COMMENT_RE = re.compile(r"<!--.*?-->", re.S)
_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""")
_ROOT_RE = re.compile(r"<(?![?!])([\w:.-]+)")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.S | re.I)


def _parse_attributes(raw: str, lowercase: bool = False) -> dict[str, str]:
    attrs = {}
    for match in _ATTR_RE.finditer(raw or ""):
        key = match.group(1).lower() if lowercase else match.group(1)
        value = next((g for g in match.group(2, 3, 4) if g is not None), "")
        attrs.setdefault(key, html.unescape(value))
    return attrs


def _xml_text(inner: str) -> str:
    """Text content of an element body: CDATA kept verbatim, tags dropped, entities decoded."""
    parts = []
    position = 0
    for match in _CDATA_RE.finditer(inner):
        parts.append(html.unescape(_TAG_RE.sub("", _COMMENT_RE.sub("", inner[position:match.start()]))))
        parts.append(match.group(1))
        position = match.end()
    parts.append(html.unescape(_TAG_RE.sub("", _COMMENT_RE.sub("", inner[position:]))))
    return "".join(parts)


def _element_pattern(name: str) -> re.Pattern:
    escaped = re.escape(name)
    return re.compile(
        rf"<{escaped}(?=[\s/>])([^>]*?)(?:/>|>(.*?)</{escaped}\s*>)",
        re.S,
    )


class _RegexNode(XmlNode):
    def __init__(self, name: str, raw_attrs: str, inner: str):
        self._name = name
        self._attrs = _parse_attributes(raw_attrs)
        self._inner = inner or ""

    @property
    def name(self) -> str:
        return self._name

    def attr(self, name: str) -> Optional[str]:
        return self._attrs.get(name)

    def text(self) -> str:
        return _xml_text(self._inner)

    def find_all(self, name: str) -> list[XmlNode]:
        return list(_scan(self._inner, name))


def _scan(body: str, name: str) -> Iterator[_RegexNode]:
    # Element bodies inside CDATA are HTML payload, not feed structure
    searchable = _CDATA_RE.sub(lambda m: " " * len(m.group(0)), body)
    for match in _element_pattern(name).finditer(searchable):
        inner_start, inner_end = match.span(2)
        inner = body[inner_start:inner_end] if inner_start >= 0 else ""
        yield _RegexNode(name, match.group(1), inner)


class _RegexXmlDocument(XmlDocument):
    def __init__(self, content: str, root_name: str):
        self._content = content
        self._root_name = root_name

    @property
    def root_name(self) -> str:
        return self._root_name.rpartition(":")[2]

    def find_all(self, name: str) -> list[XmlNode]:
        return list(_scan(self._content, name))


class _RegexHtmlDocument(HtmlDocument):
    def __init__(self, content: str):
        self._content = _SCRIPT_STYLE_RE.sub("", _COMMENT_RE.sub("", content))

    def elements(self, tag: str) -> list[dict[str, str]]:
        pattern = re.compile(rf"<{re.escape(tag)}(?=[\s/>])([^>]*)>", re.I)
        return [
            _parse_attributes(match.group(1).rstrip("/"), lowercase=True)
            for match in pattern.finditer(self._content)
        ]

    def text(self) -> str:
        return html.unescape(_TAG_RE.sub(" ", self._content))


class RegexDocumentParser(DocumentParser):
    """String-scanning parser. Tolerant of markup a structural parser rejects."""

    name = "regex"

    def parse_xml(self, content: Markup) -> XmlDocument:
        text = _clean_markup(_as_text(content))
        root = _ROOT_RE.search(_COMMENT_RE.sub("", text))
        if not text.startswith("<") or root is None:
            raise ParseError("Content does not look like XML")
        return _RegexXmlDocument(text, root.group(1))

    def parse_html(self, content: Markup) -> HtmlDocument:
        return _RegexHtmlDocument(_as_text(content or ""))


def create_document_parser(kind: str = "dom") -> DocumentParser:
    """Build the configured document parser realization."""
    if kind == "dom":
        return DomDocumentParser()
    if kind == "regex":
        return RegexDocumentParser()
    raise ValueError(f"Unknown document parser: {kind}")
