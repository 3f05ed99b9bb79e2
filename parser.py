"""RSS 2.0 and Atom feed parsing.

This module turns raw feed XML into RawFeedItem objects. It does no I/O.

Parsing Strategy:
    The document is parsed with lxml in recover mode, so broken markup
    yields whatever elements libxml2 can salvage instead of an exception.
    Field extraction is a thin layer over the parsed tree that walks each
    <item>/<entry> in document order and applies a fixed fallback chain
    per field (e.g. guid -> link -> synthesized "{source_url}#{title}").

Dialect Detection:
    Documents containing "<feed" and a default Atom namespace declaration
    are parsed as Atom; everything else is treated as RSS 2.0.

Element Names:
    Elements are matched by a canonical qualified name. Well-known
    namespaces get their conventional prefix regardless of how the feed
    declares them (media:, content:, dc:). Other namespaced elements keep
    the document's prefix, and default-namespace elements use the bare
    local name, so an RSS <atom:link> never shadows <link>.

Text Postprocessing (summaries):
    decode entities -> strip tags -> trim -> truncate to 500 chars + "..."

Synthesized GUIDs:
    Items with no guid/id (and, for RSS, no link text) get
    "{source_url}#{title}" built from the untrimmed title text; RSS trims
    the whole GUID, Atom does not. The XML parser has already resolved
    entities and unwrapped CDATA at that point, so a title written as
    "AT&amp;T" contributes "AT&T". Digests stored by a parser that hashed
    the escaped form will not match for such titles.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser
from lxml import etree

from models.feed import ParseResult, RawFeedItem, synthesize_guid

logger = logging.getLogger(__name__)

# Canonical prefixes for namespaces whose elements we read
KNOWN_PREFIXES = {
    "http://search.yahoo.com/mrss/": "media",
    "http://purl.org/rss/1.0/modules/content/": "content",
    "http://purl.org/dc/elements/1.1/": "dc",
}

SUMMARY_MAX_LENGTH = 500

_ATOM_DECLARATION = re.compile(r"""xmlns\s*=\s*["']http://www\.w3\.org/2005/Atom["']""")
_ENTITY = re.compile(r"&(lt|gt|amp|quot|apos|#\d+|#[xX][0-9a-fA-F]+);")
_NAMED_ENTITIES = {"lt": "<", "gt": ">", "amp": "&", "quot": '"', "apos": "'"}
_HTML_TAG = re.compile(r"<[^<>]*>")
_IMG_SRC = re.compile(r"""<img[^>]+src\s*=\s*["']([^"']+)["']""", re.IGNORECASE)

# Zone abbreviations commonly found in RFC 822 pubDates
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": timezone.utc,
    "UTC": timezone.utc,
    "BST": timezone(timedelta(hours=1)),
    "CET": timezone(timedelta(hours=1)),
    "CEST": timezone(timedelta(hours=2)),
}


# === Text helpers ===

def _decode_entity(match: re.Match) -> str:
    ref = match.group(1)
    if ref in _NAMED_ENTITIES:
        return _NAMED_ENTITIES[ref]
    try:
        if ref[1] in "xX":
            return chr(int(ref[2:], 16))
        return chr(int(ref[1:]))
    except (ValueError, OverflowError):
        # Out-of-range code point: leave the reference as written
        return match.group(0)


def decode_entities(text: str) -> str:
    """Decode the five XML entities plus decimal/hex character references.

    Decoding is a single pass, so "&amp;lt;" becomes "&lt;", not "<".
    """
    return _ENTITY.sub(_decode_entity, text)


def strip_html(text: str) -> str:
    """Remove all tags and trim surrounding whitespace."""
    return _HTML_TAG.sub("", text).strip()


def truncate_summary(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    """Cut text to max_length characters, appending "..." when cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."


def clean_summary(raw: str | None) -> str | None:
    """Run the summary pipeline; empty results become None."""
    if not raw:
        return None
    return truncate_summary(strip_html(decode_entities(raw))) or None


def extract_image_from_html(html: str | None) -> str | None:
    """Return the src of the first <img> in an HTML fragment."""
    if not html:
        return None
    match = _IMG_SRC.search(decode_entities(html))
    return match.group(1) if match else None


def parse_date(value: str | None) -> datetime:
    """Parse an RFC 822 or ISO 8601 timestamp, defaulting to now (UTC).

    Dates that cannot be represented in UTC (e.g. year 9999 with a negative
    offset) also fall back to now.
    """
    if value:
        try:
            parsed = date_parser.parse(value.strip(), tzinfos=TZINFOS)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (ValueError, OverflowError):
            logger.debug("Unparsable feed date, using current time | value=%s", value[:40])
    return datetime.now(timezone.utc)


# === Tree helpers ===

def _qualified_name(el: etree._Element) -> str:
    """Canonical "prefix:local" (or bare local) name of an element."""
    tag = el.tag
    if tag.startswith("{"):
        namespace, local = tag[1:].split("}", 1)
        prefix = KNOWN_PREFIXES.get(namespace) or el.prefix
        return f"{prefix}:{local}" if prefix else local
    # Undeclared prefixes survive recovery as literal "prefix:local" tags
    return tag


def _elements(block: etree._Element, name: str, include_self: bool = False):
    """Yield descendants of block named `name`, in document order."""
    for el in block.iter():
        if el is block and not include_self:
            continue
        if isinstance(el.tag, str) and _qualified_name(el) == name:
            yield el


def _inner_content(el: etree._Element) -> str:
    """Text of an element including any child markup, CDATA unwrapped."""
    parts = [el.text or ""]
    for child in el:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    return "".join(parts)


def _tag_content(block: etree._Element, name: str) -> str | None:
    """Trimmed content of the first element named `name`, None if empty."""
    for el in _elements(block, name):
        content = _inner_content(el).strip()
        return content or None
    return None


def _raw_tag_content(block: etree._Element, name: str) -> str:
    """Untrimmed content of the first element named `name`."""
    for el in _elements(block, name):
        return _inner_content(el)
    return ""


def _attr(
    block: etree._Element,
    name: str,
    attr: str,
    where: tuple[str, str] | None = None,
) -> str | None:
    """Attribute of the first `name` element that has it.

    Args:
        block: Item or entry element to search
        name: Qualified element name (e.g. "media:content")
        attr: Attribute to read
        where: Optional (attribute, value) filter, e.g. ("rel", "alternate")

    Returns:
        Trimmed attribute value, or None
    """
    for el in _elements(block, name):
        if where and el.get(where[0], "").strip().lower() != where[1]:
            continue
        value = (el.get(attr) or "").strip()
        if value:
            return value
    return None


def _parse_document(xml_text: str) -> etree._Element | None:
    text = xml_text.lstrip("\ufeff").strip()
    if not text:
        return None
    xml_parser = etree.XMLParser(
        recover=True,
        encoding="utf-8",
        resolve_entities=False,
        no_network=True,
    )
    return etree.fromstring(text.encode("utf-8"), xml_parser)


def is_atom(xml_text: str) -> bool:
    """Heuristic dialect check: <feed> with a default Atom namespace."""
    return "<feed" in xml_text and _ATOM_DECLARATION.search(xml_text) is not None


# === Dialects ===

def _parse_rss_item(item: etree._Element, source_url: str) -> RawFeedItem | None:
    title = _tag_content(item, "title")
    link = _tag_content(item, "link") or _attr(item, "link", "href")
    if not title or not link:
        return None

    guid = (
        _tag_content(item, "guid")
        or _tag_content(item, "link")
        or synthesize_guid(source_url, _raw_tag_content(item, "title")).strip()
    )
    description = _tag_content(item, "description") or _tag_content(item, "content:encoded")
    pub_date = _tag_content(item, "pubDate") or _tag_content(item, "dc:date")
    image_url = (
        _attr(item, "media:content", "url")
        or _attr(item, "media:thumbnail", "url")
        or _attr(item, "enclosure", "url")
        or extract_image_from_html(description)
    )

    return RawFeedItem(
        title=decode_entities(title),
        link=link,
        guid=guid,
        summary=clean_summary(description),
        image_url=image_url.strip() if image_url else None,
        published_at=parse_date(pub_date),
    )


def _parse_atom_entry(entry: etree._Element, source_url: str) -> RawFeedItem | None:
    title = _tag_content(entry, "title")
    link = _attr(entry, "link", "href", where=("rel", "alternate")) or _attr(entry, "link", "href")
    if not title or not link:
        return None

    guid = _tag_content(entry, "id") or synthesize_guid(source_url, _raw_tag_content(entry, "title"))
    summary = _tag_content(entry, "summary") or _tag_content(entry, "content")
    updated = _tag_content(entry, "updated") or _tag_content(entry, "published")
    image_url = _attr(entry, "media:content", "url") or _attr(entry, "media:thumbnail", "url")

    return RawFeedItem(
        title=decode_entities(title),
        link=link,
        guid=guid,
        summary=clean_summary(summary),
        image_url=image_url,
        published_at=parse_date(updated),
    )


def parse_feed(xml_text: str, source_url: str) -> ParseResult:
    """Parse an RSS 2.0 or Atom document into feed items.

    Items missing a title or link are dropped silently. Garbage input that
    contains no items yields an empty list without an error. Failures of the
    XML parser, or of field extraction, are reported in ParseResult.error
    and never raised.

    Args:
        xml_text: Raw feed body
        source_url: Feed URL, used for synthesized GUIDs

    Returns:
        ParseResult with items in document order

    Example:
        >>> result = parse_feed(
        ...     "<item><title>New Article</title>"
        ...     "<link>https://example.com/article</link>"
        ...     "<guid>guid-123</guid></item>",
        ...     "https://example.com/feed",
        ... )
        >>> result.items[0].guid
        'guid-123'
    """
    try:
        root = _parse_document(xml_text)
    except etree.XMLSyntaxError as e:
        logger.debug("Feed XML unrecoverable | source=%s error=%s", source_url, e)
        return ParseResult(items=[], error=f"Invalid XML: {e}")

    if root is None:
        return ParseResult(items=[], error=None)

    if is_atom(xml_text):
        block_name, parse_block = "entry", _parse_atom_entry
    else:
        block_name, parse_block = "item", _parse_rss_item

    items = []
    try:
        for block in _elements(root, block_name, include_self=True):
            item = parse_block(block, source_url)
            if item is not None:
                items.append(item)
    except Exception as e:
        logger.warning("Feed extraction failed | source=%s error=%s", source_url, e, exc_info=True)
        return ParseResult(items=[], error=str(e) or type(e).__name__)

    logger.debug("Feed parsed | source=%s dialect=%s items=%d", source_url, block_name, len(items))
    return ParseResult(items=items, error=None)
