"""
Inbox Document Editor

Inserts task lines into a shared plain-text planning document. The
document is read through a small line grammar instead of substring offsets:

    <!-- taskbot:inbox -->                      insertion marker
    ## Anything / # Anything                    top-level boundary
    ### Work (via #eng-tasks - Oct 19, 2026)    section header
    - [ ] **Fix login bug** - Users see a 500   item

Sections are keyed by (category, date). Inserting twice for the same key
reuses the header; the newest item sits directly under it. A document
without the marker still gets a valid section appended at its end.
"""

import os
import re
import tempfile
import threading
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..common.schemas import Task

logger = logging.getLogger("taskbot.capture.inbox")

INSERTION_MARKER = "<!-- taskbot:inbox -->"

# Date is anchored from the right; sources may contain " - "
HEADER_PATTERN = re.compile(
    r"^### (?P<category>.+?) \(via (?P<source>.+) - (?P<date>[A-Z][a-z]{2} \d{1,2}, \d{4})\)$"
)
ITEM_PATTERN = re.compile(r"^- \[ \] \*\*(?P<title>.+?)\*\*(?: - (?P<description>.*))?$")
BOUNDARY_PATTERN = re.compile(r"^#{1,2} ")


class DocumentErrorKind(str, Enum):
    READ_FAILURE = "read_failure"
    WRITE_FAILURE = "write_failure"


class DocumentError(Exception):
    """The planning document could not be read or written"""

    def __init__(self, kind: DocumentErrorKind, path: Path, detail: str = ""):
        super().__init__(f"{kind.value} for {path}: {detail}")
        self.kind = kind
        self.path = path
        self.detail = detail

    def user_message(self) -> str:
        if self.kind == DocumentErrorKind.READ_FAILURE:
            return "Sorry, I couldn't read the inbox document, so nothing was saved."
        return "Sorry, I couldn't write to the inbox document, so nothing was saved."


class Placement(str, Enum):
    """Where an inserted item ended up"""
    EXISTING_SECTION = "existing_section"
    NEW_SECTION = "new_section"
    APPENDED = "appended"  # marker missing


@dataclass
class InsertResult:
    placement: Placement
    header: str
    item: str


@dataclass
class SectionHeader:
    """A parsed '### <category> (via <source> - <date>)' line"""
    index: int
    category: str
    source: str
    date: str


@dataclass
class ParsedDocument:
    """Line-level view of the planning document"""
    lines: List[str]
    marker_index: Optional[int] = None
    headers: List[SectionHeader] = field(default_factory=list)
    boundaries: List[int] = field(default_factory=list)

    @property
    def has_marker(self) -> bool:
        return self.marker_index is not None

    def marker_region(self) -> Tuple[int, int]:
        """[start, end) line range between the marker and the next top-level boundary"""
        if self.marker_index is None:
            raise ValueError("document has no insertion marker")
        start = self.marker_index + 1
        end = next((b for b in self.boundaries if b >= start), len(self.lines))
        return start, end

    def find_section(self, category: str, date_text: str) -> Optional[SectionHeader]:
        """Header for (category, date) inside the marker region"""
        start, end = self.marker_region()
        for header in self.headers:
            if start <= header.index < end and header.category == category and header.date == date_text:
                return header
        return None

    def section_items(self, header: SectionHeader) -> List[str]:
        """Item lines directly under a header, up to the next non-item line"""
        items = []
        for line in self.lines[header.index + 1:]:
            if not ITEM_PATTERN.match(line):
                break
            items.append(line)
        return items


def parse_document(text: str) -> ParsedDocument:
    """Parse document text into markers, headers and boundaries"""
    doc = ParsedDocument(lines=text.splitlines())
    for i, line in enumerate(doc.lines):
        stripped = line.strip()
        if stripped == INSERTION_MARKER:
            if doc.marker_index is None:
                doc.marker_index = i
            continue
        header = HEADER_PATTERN.match(line)
        if header:
            doc.headers.append(SectionHeader(
                index=i,
                category=header.group("category"),
                source=header.group("source"),
                date=header.group("date"),
            ))
        elif BOUNDARY_PATTERN.match(line):
            doc.boundaries.append(i)
    return doc


_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_date(day: Union[date, datetime]) -> str:
    """Human-readable section date, e.g. 'Oct 19, 2026' (locale independent)"""
    return f"{_MONTHS[day.month - 1]} {day.day}, {day.year}"


def _one_line(text: str) -> str:
    return " ".join((text or "").split())


def render_header(category: str, source: str, day: Union[date, datetime]) -> str:
    # Parentheses in the source would break the header grammar
    source = _one_line(source).replace("(", "").replace(")", "") or "Slack"
    return f"### {category} (via {source} - {format_date(day)})"


def render_item(task: Task) -> str:
    title = _one_line(task.title).replace("**", "") or "Untitled task"
    line = f"- [ ] **{title}**"
    if task.description:
        line += f" - {_one_line(task.description)}"
    return line


class InboxDocument:
    """
    Editor for the planning document at a fixed path.

    Every insert is a full read, an in-memory edit and a full rewrite.
    Edits from this process are serialized; edits from other processes are
    not coordinated.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def read(self) -> str:
        """Whole document text; a missing document reads as empty"""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentError(DocumentErrorKind.READ_FAILURE, self.path, str(e)) from e

    def write(self, text: str) -> None:
        """Replace the document atomically via a sibling temp file"""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise DocumentError(DocumentErrorKind.WRITE_FAILURE, self.path, str(e)) from e

    def insert(
        self,
        task: Task,
        reference_date: Union[date, datetime],
        source: str = "Slack",
    ) -> InsertResult:
        """
        Insert a task line under its (category, date) section.

        Args:
            task: Task to insert
            reference_date: Date that keys the section
            source: Visible source name for a new header

        Returns:
            InsertResult describing where the item went

        Raises:
            DocumentError: on read or write failure (nothing is retried)
        """
        category = task.category.value
        item = render_item(task)

        with self._lock:
            doc = parse_document(self.read())
            lines = list(doc.lines)

            if not doc.has_marker:
                header = render_header(category, source, reference_date)
                if lines and lines[-1].strip():
                    lines.append("")
                lines.extend([header, item])
                placement = Placement.APPENDED
                logger.info("Insertion marker missing in %s, appended new section", self.path)
            else:
                existing = doc.find_section(category, format_date(reference_date))
                if existing is not None:
                    header = lines[existing.index]
                    lines.insert(existing.index + 1, item)
                    placement = Placement.EXISTING_SECTION
                else:
                    header = render_header(category, source, reference_date)
                    at = doc.marker_index + 1
                    block = [header, item]
                    if at < len(lines) and lines[at].strip():
                        block.append("")
                    lines[at:at] = block
                    placement = Placement.NEW_SECTION

            self.write("\n".join(lines) + "\n")

        logger.info("Inserted task %r into %s (%s)", task.title, self.path, placement.value)
        return InsertResult(placement=placement, header=header, item=item)
