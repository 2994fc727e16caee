"""
DOCUMENT BLOCK PARSER
=====================

Turns the raw text of one agent reply into an ordered list of typed blocks.

Single pass, one line at a time, first match wins:
  1. Line starts with "#", or contains the mode tag "모드]"   -> heading
     (leading "#" run removed, then trimmed)
  2. Line starts with "-", or with one digit and a period    -> list (line kept as is)
  3. Anything else                                            -> paragraph (line kept as is)

Blank lines are dropped. Lines are never merged or split, and no "code" block is
ever produced: that kind is only for externally supplied content. Multi-line
constructs such as code fences are deliberately not detected.
"""

import re
from typing import Iterable, List, Optional

from app.models import BlockKind, DocumentBlock, DocumentContent
from config import DOCUMENT_VERSION

HEADING_MARKER = "#"
LIST_MARKER = "-"

# Bracketed mode tag agents emit at the top of a section (e.g. "기획 모드] ...").
# Matched as this literal only; other bracket tags are plain paragraphs.
MODE_TAG = "모드]"

_LEADING_HASHES = re.compile(r"^#+")
_NUMBERED_ITEM = re.compile(r"^[0-9]\.")


def classify_line(line: str) -> DocumentBlock:
    """Classify one non-blank line."""
    if line.startswith(HEADING_MARKER) or MODE_TAG in line:
        return DocumentBlock(kind=BlockKind.HEADING, content=_LEADING_HASHES.sub("", line).strip())
    if line.startswith(LIST_MARKER) or _NUMBERED_ITEM.match(line):
        return DocumentBlock(kind=BlockKind.LIST, content=line)
    return DocumentBlock(kind=BlockKind.PARAGRAPH, content=line)


def parse(text: Optional[str]) -> List[DocumentBlock]:
    """Parse text into blocks, one per non-blank line, in source order. Never raises."""
    if not text:
        return []
    return [classify_line(line) for line in text.split("\n") if line.strip()]


def blocks_to_text(blocks: Iterable[DocumentBlock]) -> str:
    """Join block contents with newlines (plain-text export)."""
    return "\n".join(block.content for block in blocks)


def build_document_content(text: Optional[str], version: str = DOCUMENT_VERSION) -> DocumentContent:
    return DocumentContent(version=version, blocks=parse(text))
