"""Split a study proposal into titled sections.

Section titles are taken from a table of contents when the document has one,
otherwise from markdown or numbered headers. Four independent strategies then
locate each title in the body and the candidates are merged, keeping the
longest content found for every title. Anything the heuristics cannot place
degrades to a single ``Full Study`` section.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

FULL_STUDY_TITLE = "Full Study"
MAX_TOC_LINE_LENGTH = 120
MAX_NUMBERED_HEADER_LENGTH = 80

_TOC_LINE = re.compile(r"^\s*(?P<title>.*?[^\W\d_].*?)(?:\s*\.{2,}\s*|\s+)(?P<page>\d{1,4})\s*$")
_PAGE_MARKER = re.compile(r"^[ \t]*Page[ \t]+(?P<page>\d+)[ \t]+of[ \t]+\d+[ \t]*$", re.IGNORECASE | re.MULTILINE)
_MARKDOWN_HEADER = re.compile(r"^[ \t]*#{1,6}[ \t]+(?P<text>.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_NUMBERED_HEADER = re.compile(r"^[ \t]*\d+(?:\.\d+)*\.?[ \t]+(?P<text>[^\W\d_].*?)[ \t]*$", re.MULTILINE)
_LEADING_NUMBERING = re.compile(r"^\s*(?:\d+(?:\.\d+)*\s+|\d+(?:\.\d+)*\.(?!\d)\s*|[IVXLCDM]+\.\s+|[A-Z]\.\s+)")
_HEADING_MARKUP = re.compile(r"[ \t#]*(?:\d+(?:\.\d+)*\.?)?[ \t]*")
_NUMBERING_PREFIX = r"(?:(?:\d+(?:\.\d+)*\.?|[IVXLCDM]+\.|[A-Z]\.)[ \t]*)?"


@dataclass(frozen=True, slots=True)
class Section:
    title: str
    content: str

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("Section title must not be empty")


@dataclass(frozen=True, slots=True)
class SectionTitleCandidate:
    """A title and the page it starts on.

    ``synthetic_page`` marks pages that are sequential indexes assigned to
    headers rather than page numbers read from a table of contents.
    """

    title: str
    page: int
    synthetic_page: bool = False


@dataclass(frozen=True, slots=True)
class TitleExtraction:
    titles: List[SectionTitleCandidate]
    body_start: int = 0
    source: str = "fallback"


@dataclass(frozen=True, slots=True)
class SectionConsistencyReport:
    missing: List[str] = field(default_factory=list)
    unexpected: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.missing and not self.unexpected


def normalize_title(raw: str) -> str:
    """Clean up a title read from a table of contents or header line."""

    title = re.sub(r"\.{2,}", " ", raw)
    title = _LEADING_NUMBERING.sub("", title)
    title = re.sub(r"(?<=[a-z])(?=[A-Z])", " ", title)
    title = re.sub(r"(?<=[^\W\d_])(?=\d)|(?<=\d)(?=[^\W\d_])", " ", title)
    title = re.sub(r"\s*,\s*", ", ", title)
    title = re.sub(r"\s+", " ", title)
    return title.strip(" \t:.,")


def _match_key(title: str) -> str:
    return re.sub(r"\s+", "", normalize_title(title)).lower()


def _dedupe(titles: Sequence[SectionTitleCandidate]) -> List[SectionTitleCandidate]:
    seen = set()
    unique: List[SectionTitleCandidate] = []
    for candidate in titles:
        key = candidate.title.lower()
        if not candidate.title or key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def _find_toc(text: str) -> Optional[Tuple[List[SectionTitleCandidate], int]]:
    run: List[SectionTitleCandidate] = []
    run_end = 0
    offset = 0

    for line in text.splitlines(keepends=True):
        line_end = offset + len(line)
        offset = line_end
        stripped = line.strip()
        if not stripped:
            continue

        match = None
        if len(stripped) <= MAX_TOC_LINE_LENGTH and not _PAGE_MARKER.match(stripped):
            match = _TOC_LINE.match(stripped)

        if match is not None:
            page = int(match.group("page"))
            if run and page < run[-1].page:
                if len(run) >= 2:
                    return run, run_end
                run = []
            run.append(SectionTitleCandidate(normalize_title(match.group("title")), page))
            run_end = line_end
            continue

        if len(run) >= 2:
            return run, run_end
        run = []

    if len(run) >= 2:
        return run, run_end
    return None


def _scan_headers(text: str) -> List[Tuple[str, int, int]]:
    """Return ``(title, start, end)`` for every markdown or numbered header."""

    headers: List[Tuple[str, int, int]] = []
    for match in _MARKDOWN_HEADER.finditer(text):
        title = normalize_title(match.group("text"))
        if title:
            headers.append((title, match.start(), match.end()))
    for match in _NUMBERED_HEADER.finditer(text):
        heading = match.group("text")
        if len(heading) > MAX_NUMBERED_HEADER_LENGTH or heading.endswith((".", ",", ";")):
            continue
        title = normalize_title(heading)
        if title:
            headers.append((title, match.start(), match.end()))
    headers.sort(key=lambda header: header[1])
    return headers


def extract_section_titles(text: str) -> TitleExtraction:
    """Return the candidate section titles of ``text``.

    ``body_start`` is the offset just past the table of contents, or 0 when
    the titles came from headers.
    """

    toc = _find_toc(text)
    if toc is not None:
        titles, body_start = toc
        titles = _dedupe(titles)
        if titles:
            LOGGER.debug("Found table of contents with %s titles", len(titles))
            return TitleExtraction(titles=titles, body_start=body_start, source="toc")

    headers = _header_titles(text)
    if headers is not None:
        return headers

    return TitleExtraction(
        titles=[SectionTitleCandidate(FULL_STUDY_TITLE, 1, synthetic_page=True)],
        body_start=0,
        source="fallback",
    )


def _header_titles(text: str) -> Optional[TitleExtraction]:
    headers = _scan_headers(text)
    titles = _dedupe(
        [
            SectionTitleCandidate(title, index + 1, synthetic_page=True)
            for index, (title, _, _) in enumerate(headers)
        ]
    )
    if titles:
        # Pages are re-numbered after de-duplication so they stay sequential.
        titles = [
            SectionTitleCandidate(candidate.title, index + 1, synthetic_page=True)
            for index, candidate in enumerate(titles)
        ]
        LOGGER.debug("Found %s headers", len(titles))
        return TitleExtraction(titles=titles, body_start=0, source="headers")
    return None


def _sections_from_spans(text: str, located: Sequence[Tuple[str, int, int]]) -> List[Section]:
    """Turn ``(title, start, end)`` matches into sections ending at the next match."""

    ordered = sorted(located, key=lambda item: item[1])
    sections: List[Section] = []
    for index, (title, _, end) in enumerate(ordered):
        stop = ordered[index + 1][1] if index + 1 < len(ordered) else len(text)
        content = text[end:stop].strip()
        if content:
            sections.append(Section(title=title, content=content))
    return sections


def match_exact(text: str, titles: Sequence[SectionTitleCandidate]) -> List[Section]:
    located: List[Tuple[str, int, int]] = []
    position = 0
    for candidate in titles:
        start = text.find(candidate.title, position)
        if start == -1:
            continue
        end = start + len(candidate.title)
        line_start = text.rfind("\n", 0, start) + 1
        if _HEADING_MARKUP.fullmatch(text, line_start, start):
            start = line_start
        located.append((candidate.title, start, end))
        position = end
    return _sections_from_spans(text, located)


def _flexible_pattern(title: str) -> re.Pattern:
    words = [re.escape(word) for word in title.split()]
    body = r"[ \t]*".join(words)
    return re.compile(
        rf"^[ \t]*{_NUMBERING_PREFIX}{body}[ \t]*:?[ \t]*$",
        re.IGNORECASE | re.MULTILINE,
    )


def match_flexible(text: str, titles: Sequence[SectionTitleCandidate]) -> List[Section]:
    located: List[Tuple[str, int, int]] = []
    position = 0
    for candidate in titles:
        match = _flexible_pattern(candidate.title).search(text, position)
        if match is None:
            continue
        located.append((candidate.title, match.start(), match.end()))
        position = match.end()
    return _sections_from_spans(text, located)


def match_page_numbers(text: str, titles: Sequence[SectionTitleCandidate]) -> List[Section]:
    """Bound sections by ``Page N of M`` markers using the recorded start pages."""

    if not titles or any(candidate.synthetic_page for candidate in titles):
        return []
    markers = [(int(match.group("page")), match.start(), match.end()) for match in _PAGE_MARKER.finditer(text)]
    if not markers:
        return []

    sections: List[Section] = []
    for index, candidate in enumerate(titles):
        start_marker = next((marker for marker in markers if marker[0] >= candidate.page), None)
        if start_marker is None:
            continue
        stop = len(text)
        if index + 1 < len(titles):
            next_page = titles[index + 1].page
            end_marker = next(
                (marker for marker in markers if marker[0] >= next_page and marker[1] >= start_marker[2]),
                None,
            )
            if end_marker is not None:
                stop = end_marker[1]
        content = text[start_marker[2]:stop].strip()
        if content:
            sections.append(Section(title=candidate.title, content=content))
    return sections


def match_headers(text: str, titles: Sequence[SectionTitleCandidate]) -> List[Section]:
    wanted: Dict[str, str] = {_match_key(candidate.title): candidate.title for candidate in titles}
    located: List[Tuple[str, int, int]] = []
    seen = set()
    for heading, start, end in _scan_headers(text):
        key = _match_key(heading)
        if key not in wanted or key in seen:
            continue
        seen.add(key)
        located.append((wanted[key], start, end))
    return _sections_from_spans(text, located)


STRATEGIES: Tuple[Callable[[str, Sequence[SectionTitleCandidate]], List[Section]], ...] = (
    match_exact,
    match_flexible,
    match_page_numbers,
    match_headers,
)


def merge_sections(
    titles: Sequence[SectionTitleCandidate],
    candidates: Sequence[Sequence[Section]],
) -> List[Section]:
    """Fold strategy results into one section per extracted title.

    Only extracted titles are admitted and an existing section is replaced
    only by strictly longer content. The result follows title order.
    """

    order = {candidate.title.lower(): index for index, candidate in enumerate(titles)}
    merged: Dict[str, Section] = {}
    arrival: Dict[str, int] = {}

    for results in candidates:
        for section in results:
            key = section.title.lower()
            if key not in order:
                continue
            current = merged.get(key)
            if current is None:
                merged[key] = section
                arrival[key] = len(arrival)
            elif len(section.content) > len(current.content):
                merged[key] = section

    return sorted(merged.values(), key=lambda section: (order[section.title.lower()], arrival[section.title.lower()]))


def check_section_consistency(
    titles: Sequence[SectionTitleCandidate],
    sections: Sequence[Section],
) -> SectionConsistencyReport:
    expected = {candidate.title.lower() for candidate in titles}
    realized = {section.title.lower() for section in sections}
    report = SectionConsistencyReport(
        missing=[candidate.title for candidate in titles if candidate.title.lower() not in realized],
        unexpected=[section.title for section in sections if section.title.lower() not in expected],
    )
    if report.missing:
        LOGGER.warning("Section titles not found in document: %s", ", ".join(report.missing))
    if report.unexpected:
        LOGGER.warning("Sections without an extracted title: %s", ", ".join(report.unexpected))
    return report


def _locate_sections(text: str, extraction: TitleExtraction) -> List[Section]:
    body = text[extraction.body_start:]
    return merge_sections(
        extraction.titles,
        [strategy(body, extraction.titles) for strategy in STRATEGIES],
    )


def identify_sections(text: str) -> List[Section]:
    """Return the ordered sections of ``text``; never empty."""

    whole = text.strip()
    extraction = extract_section_titles(text)
    if extraction.source == "fallback":
        return [Section(title=FULL_STUDY_TITLE, content=whole)]

    sections = _locate_sections(text, extraction)
    if not sections and extraction.source == "toc":
        # Lines that merely end in numbers can pass for a table of contents.
        headers = _header_titles(text)
        if headers is not None:
            LOGGER.info("Table of contents titles not found in body; using headers instead")
            extraction = headers
            sections = _locate_sections(text, extraction)
    if not sections:
        LOGGER.info("No section boundaries found; evaluating the document as a whole")
        sections = [Section(title=FULL_STUDY_TITLE, content=whole)]

    check_section_consistency(extraction.titles, sections)
    LOGGER.info(
        "Identified %s sections (titles from %s)",
        len(sections),
        extraction.source,
    )
    return sections


__all__ = [
    "FULL_STUDY_TITLE",
    "STRATEGIES",
    "Section",
    "SectionConsistencyReport",
    "SectionTitleCandidate",
    "TitleExtraction",
    "check_section_consistency",
    "extract_section_titles",
    "identify_sections",
    "match_exact",
    "match_flexible",
    "match_headers",
    "match_page_numbers",
    "merge_sections",
    "normalize_title",
]
