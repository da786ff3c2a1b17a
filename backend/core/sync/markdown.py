"""
Markdown Metadata Extraction

Turns the text of a markdown/MDX file into catalog metadata:

- Frontmatter (leading --- block, YAML) is parsed and every field is passed
  through unchanged, converted to JSON-safe values
- title: frontmatter title -> first level-1 heading -> file name -> ""
- description: frontmatter description -> summary of the prose -> ""

Description summaries are built by an explicit, ordered list of stripping
rules followed by a structural pass over the markdown-it token stream.
Everything here is pure: no I/O, no logging of content.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import yaml
from markdown_it import MarkdownIt

from backend.core.sync.errors import SyncError

DESCRIPTION_LENGTH = 200
ELLIPSIS = "..."

MARKDOWN_SUFFIX = re.compile(r"\.(md|mdx)$", re.IGNORECASE)

FRONTMATTER_PATTERN = re.compile(
    r"\A---[ \t]*\n(.*?)^(?:---|\.\.\.)[ \t]*(?:\n|\Z)",
    re.DOTALL | re.MULTILINE,
)

WIKILINK_PATTERN = re.compile(r"!?\[\[([^\]|]+)(?:\|([^\]]*))?\]\]")
INLINE_LINK_PATTERN = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
EMPHASIS_MARKERS = re.compile(r"[_*~`>]")


class MarkdownParseError(SyncError):
    """File is not valid UTF-8 markdown or its frontmatter cannot be parsed."""
    pass


@dataclass
class ExtractionResult:
    """Metadata and frontmatter-free body of a markdown file."""
    metadata: Dict[str, Any]
    body: str


@dataclass(frozen=True)
class StripRule:
    """One regex rewrite applied while deriving a description."""
    name: str
    pattern: re.Pattern
    replacement: Any = ""

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def _wikilink_text(match: re.Match) -> str:
    target, alias = match.group(1), match.group(2)
    return (alias or target).strip()


# Applied in order, before the structural pass
DESCRIPTION_RULES: List[StripRule] = [
    StripRule("obsidian_comments", re.compile(r"%%.*?%%", re.DOTALL)),
    StripRule("html_comments", re.compile(r"<!--.*?-->", re.DOTALL)),
    StripRule(
        "youtube_urls",
        re.compile(
            r"^[ \t]*https?://(?:www\.|m\.)?(?:youtube\.com/(?:watch|embed|shorts)\S*|youtu\.be/\S+)[ \t]*$",
            re.MULTILINE,
        ),
    ),
    StripRule("wikilinks", WIKILINK_PATTERN, _wikilink_text),
]

# Block tokens whose whole subtree is dropped from descriptions
_SKIPPED_BLOCKS = {
    "heading_open",
    "blockquote_open",
    "bullet_list_open",
    "ordered_list_open",
    "table_open",
}
_SKIPPED_LEAVES = {"fence", "code_block", "html_block", "hr"}

_md = MarkdownIt("commonmark", {"html": True}).enable(["table", "strikethrough"])


def is_markdown_path(path: str) -> bool:
    """True for .md / .mdx files (case-insensitive)."""
    return bool(MARKDOWN_SUFFIX.search(path))


def decode_markdown(content: bytes) -> str:
    """
    Decode raw file bytes as UTF-8 (a leading BOM is dropped).

    Raises:
        MarkdownParseError: If the bytes are not valid UTF-8
    """
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MarkdownParseError(f"File is not valid UTF-8: {e}") from e


def split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Separate the frontmatter block from the body.

    Returns:
        Tuple of (frontmatter dict, body). Without a frontmatter block the
        dict is empty and the body is the whole text.

    Raises:
        MarkdownParseError: If the block is not valid YAML or not a mapping
    """
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}, text

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise MarkdownParseError(f"Invalid frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MarkdownParseError(
            f"Frontmatter must be a mapping, got {type(data).__name__}"
        )
    return data, text[match.end():]


def to_json_value(value: Any) -> Any:
    """
    Convert YAML values to what the JSON metadata column can hold.

    Dates become midnight UTC timestamps ("2024-03-20T00:00:00.000Z"),
    datetimes are converted to UTC with millisecond precision.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"
    if isinstance(value, date):
        return f"{value.isoformat()}T00:00:00.000Z"
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_value(v) for v in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def clean_heading(text: str) -> str:
    """Reduce heading markdown to plain text."""
    text = WIKILINK_PATTERN.sub(_wikilink_text, text)
    text = INLINE_LINK_PATTERN.sub(r"\1", text)
    text = EMPHASIS_MARKERS.sub("", text)
    return " ".join(text.split())


def title_from_path(path: str) -> str:
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return MARKDOWN_SUFFIX.sub("", name)


def first_heading(body: str) -> Optional[str]:
    """
    Source text of the first top-level "# " heading.

    Taken from the token stream, so "#" lines inside code fences, HTML blocks
    or blockquotes do not count.
    """
    tokens = _md.parse(body)
    for i, token in enumerate(tokens):
        if token.type == "heading_open" and token.tag == "h1" and token.markup == "#" and token.level == 0:
            return tokens[i + 1].content
    return None


def resolve_title(frontmatter: Dict[str, Any], body: str, path: str) -> str:
    title = frontmatter.get("title")
    if title not in (None, ""):
        return str(title)

    source = first_heading(body)
    if source:
        heading = clean_heading(source)
        if heading:
            return heading

    return title_from_path(path)


def _inline_text(token) -> str:
    parts = []
    for child in token.children or []:
        if child.type in ("text", "code_inline"):
            parts.append(child.content)
        elif child.type in ("softbreak", "hardbreak"):
            parts.append(" ")
        elif child.type == "image":
            continue
        # link/emphasis open/close markers and inline HTML carry no prose
    return "".join(parts)


def strip_markdown(text: str) -> str:
    """
    Plain prose of a markdown document.

    Only paragraph text survives: headings, blockquotes, lists, tables,
    code, images and embedded HTML are dropped; inline links keep their
    text. Whitespace is collapsed to single spaces.
    """
    paragraphs = []
    skip_depth = 0
    for token in _md.parse(text):
        if skip_depth:
            skip_depth += token.nesting
            continue
        if token.type in _SKIPPED_BLOCKS:
            skip_depth = 1
            continue
        if token.type in _SKIPPED_LEAVES:
            continue
        if token.type == "inline":
            paragraphs.append(_inline_text(token))
    return " ".join(" ".join(paragraphs).split())


def derive_description(body: str) -> Optional[str]:
    """
    Summarize the body: first 200 characters of its prose plus an ellipsis.

    Returns:
        Summary, or None when the body has no prose
    """
    text = body
    for rule in DESCRIPTION_RULES:
        text = rule.apply(text)
    plain = strip_markdown(text)
    if not plain:
        return None
    return plain[:DESCRIPTION_LENGTH] + ELLIPSIS


def resolve_description(frontmatter: Dict[str, Any], body: str) -> str:
    description = frontmatter.get("description")
    if description not in (None, ""):
        return str(description)
    return derive_description(body) or ""


def extract_metadata(text: str, path: str) -> ExtractionResult:
    """
    Extract catalog metadata from a markdown file.

    Args:
        text: Decoded file content
        path: Repository-relative path (used for the title fallback)

    Returns:
        ExtractionResult with metadata (all frontmatter fields plus the
        resolved title and description) and the frontmatter-free body

    Raises:
        MarkdownParseError: If the frontmatter cannot be parsed
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    frontmatter, body = split_frontmatter(text)

    metadata = to_json_value(frontmatter)
    metadata["title"] = resolve_title(frontmatter, body, path)
    metadata["description"] = resolve_description(frontmatter, body)

    return ExtractionResult(metadata=metadata, body=body)
