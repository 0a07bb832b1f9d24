"""13F document parser: XML, HTML and legacy plain-text information tables."""

from __future__ import annotations

import html
import logging
import re
from datetime import date, datetime
from typing import ClassVar

from bs4 import BeautifulSoup
from lxml import etree

from edgar13f.core.exceptions import (
    MissingInformationTableError,
    ParsingError,
    UnsupportedFormatError,
)
from edgar13f.core.models import (
    CoverPage,
    DocumentFormat,
    ParsedFiling,
    ParsedHolding,
    SummaryPage,
    VotingAuthority,
    is_valid_cusip,
)

logger = logging.getLogger(__name__)

# Filers state values in thousands of currency units
VALUE_MULTIPLIER = 1_000


class FilingParser:
    """Turns one raw 13F document into a `ParsedFiling`.

    The structured XML path is preferred. HTML and plain-text documents are
    handled by a positional heuristic anchored on the CUSIP cell: the
    declared value follows it, then the share count. Rows whose CUSIP is
    missing or invalid are dropped; the rest of the filing still parses.

    Summary totals are always computed from the parsed holdings. Totals the
    filer declared are kept separately for cross-checking.
    """

    _XML_DECLARATION: ClassVar[re.Pattern[str]] = re.compile(r"<\?xml\b", re.IGNORECASE)
    _INFO_TABLE_TAG: ClassVar[re.Pattern[str]] = re.compile(
        r"<(?:[\w.-]+:)?informationTable\b", re.IGNORECASE
    )
    _INFO_TABLE_BLOCK: ClassVar[re.Pattern[str]] = re.compile(
        r"<(?:[\w.-]+:)?informationTable\b.*?</(?:[\w.-]+:)?informationTable\s*>",
        re.IGNORECASE | re.DOTALL,
    )
    _HTML_TABLE: ClassVar[re.Pattern[str]] = re.compile(r"<table\b", re.IGNORECASE)
    _TEXT_HEADER: ClassVar[re.Pattern[str]] = re.compile(
        r"INFORMATION\s+TABLE", re.IGNORECASE
    )
    _TEXT_END: ClassVar[re.Pattern[str]] = re.compile(
        r"END\s+OF|</TABLE>", re.IGNORECASE
    )
    _COLUMN_SPLIT: ClassVar[re.Pattern[str]] = re.compile(r"\s{2,}|\t")

    # Namespace noise removed before handing a fragment to lxml
    _NS_DECLARATION: ClassVar[re.Pattern[str]] = re.compile(
        r"\s+xmlns(?::[\w.-]+)?\s*=\s*(\"[^\"]*\"|'[^']*')"
    )
    _PREFIXED_ATTR: ClassVar[re.Pattern[str]] = re.compile(
        r"\s+[\w.-]+:[\w.-]+\s*=\s*(\"[^\"]*\"|'[^']*')"
    )
    _TAG_PREFIX: ClassVar[re.Pattern[str]] = re.compile(r"<(/?)[\w.-]+:")

    # Header cues identifying the information table among HTML tables
    _HTML_HEADER_CUES: ClassVar[tuple[str, ...]] = ("cusip", "name of issuer", "issuer")

    _DISCRETION_CODES: ClassVar[frozenset[str]] = frozenset(
        {"SOLE", "SHARED", "DFND", "OTR", "NONE"}
    )

    # Cover-page cues in text headers, highest priority first
    _TEXT_PERIOD_PATTERNS: ClassVar[list[re.Pattern[str]]] = [
        re.compile(r"CONFORMED\s+PERIOD\s+OF\s+REPORT\s*:\s*(\d{8})", re.IGNORECASE),
        re.compile(
            r"QUARTER\s+ENDED\s*:?\s*([A-Za-z]+\s+\d{1,2},\s*\d{4}|\d{1,2}[/-]\d{1,2}[/-]\d{4})",
            re.IGNORECASE,
        ),
    ]
    _TEXT_SUBMISSION_TYPE: ClassVar[re.Pattern[str]] = re.compile(
        r"CONFORMED\s+SUBMISSION\s+TYPE\s*:\s*(\S+)", re.IGNORECASE
    )
    _TEXT_ENTRY_TOTAL: ClassVar[re.Pattern[str]] = re.compile(
        r"Information\s+Table\s+Entry\s+Total\s*:?\s*\$?\s*([\d,]+)", re.IGNORECASE
    )
    _TEXT_VALUE_TOTAL: ClassVar[re.Pattern[str]] = re.compile(
        r"Information\s+Table\s+Value\s+Total\s*:?\s*\$?\s*([\d,]+)", re.IGNORECASE
    )

    _DATE_FORMATS: ClassVar[tuple[str, ...]] = (
        "%m-%d-%Y",
        "%Y-%m-%d",
        "%m/%d/%Y",
        "%Y%m%d",
        "%B %d, %Y",
        "%b %d, %Y",
    )

    def parse(self, content: str) -> ParsedFiling:
        """Detect the document dialect and parse it.

        Raises:
            UnsupportedFormatError: No dialect matched.
            MissingInformationTableError: Dialect matched, table not found.
            ParsingError: The information table could not be read.
        """
        fmt = self.detect_format(content)
        if fmt == DocumentFormat.XML:
            return self.parse_xml(content)
        if fmt == DocumentFormat.HTML:
            try:
                return self.parse_html(content)
            except MissingInformationTableError:
                if not self._TEXT_HEADER.search(content):
                    raise
                logger.debug("No HTML information table, falling back to text layout")
                return self.parse_text(content)
        return self.parse_text(content)

    def detect_format(self, content: str) -> DocumentFormat:
        """Classify a document as XML, HTML or plain text."""
        if not content or not content.strip():
            raise UnsupportedFormatError(
                "Empty filing document", context={"reason": "empty"}
            )
        if self._XML_DECLARATION.search(content) or self._INFO_TABLE_TAG.search(content):
            return DocumentFormat.XML
        if self._HTML_TABLE.search(content):
            return DocumentFormat.HTML
        if self._TEXT_HEADER.search(content):
            return DocumentFormat.TEXT
        raise UnsupportedFormatError(
            "Unsupported filing format", context={"reason": "no known dialect markers"}
        )

    # --- XML ---

    def parse_xml(self, content: str) -> ParsedFiling:
        """Parse the information-table fragment of an XML filing."""
        match = self._INFO_TABLE_BLOCK.search(content)
        if match is None:
            raise MissingInformationTableError(
                "Information table not found in XML",
                context={"reason": "no informationTable element"},
            )

        fragment = self._strip_namespaces(match.group(0))
        xml_parser = etree.XMLParser(
            recover=True,
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
        )
        try:
            root = etree.fromstring(fragment.encode("utf-8"), parser=xml_parser)
        except etree.XMLSyntaxError as e:
            raise ParsingError(
                f"Failed to parse XML information table: {e}",
                context={"reason": "xml syntax"},
            ) from e
        if root is None:
            raise ParsingError(
                "Failed to parse XML information table",
                context={"reason": "empty document after recovery"},
            )

        # A filing with one position has a single node; iter() covers both
        nodes = [el for el in root.iter() if _local_name(el) == "infotable"]
        holdings: list[ParsedHolding] = []
        for node in nodes:
            holding = self._holding_from_xml(node)
            if holding is not None:
                holdings.append(holding)

        self._log_dropped(len(nodes), len(holdings), DocumentFormat.XML)
        return self._assemble(content, holdings, DocumentFormat.XML)

    def _holding_from_xml(self, node: etree._Element) -> ParsedHolding | None:
        cusip = _child_text(node, "cusip")
        if not is_valid_cusip(cusip):
            logger.debug("Dropping XML holding with invalid CUSIP %r", cusip)
            return None

        value = _to_int(_child_text(node, "value"))
        shares = _to_int(_child_text(node, "shrsOrPrnAmt", "sshPrnamt"))
        if value is None or shares is None or value < 0 or shares < 0:
            logger.debug(
                "Dropping XML holding %s: unreadable or negative value/shares", cusip
            )
            return None

        put_call = _normalize_put_call(_child_text(node, "putCall"))
        return ParsedHolding(
            issuer_name=_normalize_text(_child_text(node, "nameOfIssuer")),
            title_of_class=_normalize_text(_child_text(node, "titleOfClass")),
            cusip=cusip,
            value=value * VALUE_MULTIPLIER,
            shares=shares,
            share_type=(_child_text(node, "shrsOrPrnAmt", "sshPrnamtType") or "SH").upper(),
            put_call=put_call,
            investment_discretion=(_child_text(node, "investmentDiscretion") or "SOLE").upper(),
            voting=VotingAuthority(
                sole=_to_int(_child_text(node, "votingAuthority", "Sole")) or 0,
                shared=_to_int(_child_text(node, "votingAuthority", "Shared")) or 0,
                none=_to_int(_child_text(node, "votingAuthority", "None")) or 0,
            ),
        )

    def _strip_namespaces(self, fragment: str) -> str:
        fragment = self._NS_DECLARATION.sub("", fragment)
        fragment = self._PREFIXED_ATTR.sub("", fragment)
        return self._TAG_PREFIX.sub(r"<\1", fragment)

    # --- HTML ---

    def parse_html(self, content: str) -> ParsedFiling:
        """Parse the first HTML table whose header names issuer/CUSIP columns."""
        soup = BeautifulSoup(content, "lxml")
        table = self._find_information_table(soup)
        if table is None:
            raise MissingInformationTableError(
                "Information table not found in HTML",
                context={"reason": "no table with issuer/cusip header"},
            )

        rows = table.find_all("tr")
        holdings: list[ParsedHolding] = []
        candidate_rows = 0
        for row in rows:
            cells = [
                html.unescape(cell.get_text(" ", strip=True))
                for cell in row.find_all(["td", "th"])
            ]
            if len(cells) < 4:
                continue
            candidate_rows += 1
            holding = self._holding_from_cells(cells)
            if holding is not None:
                holdings.append(holding)

        logger.debug(
            "HTML table yielded %d holdings from %d rows", len(holdings), candidate_rows
        )
        return self._assemble(soup.get_text("\n"), holdings, DocumentFormat.HTML)

    def _find_information_table(self, soup: BeautifulSoup):
        for table in soup.find_all("table"):
            header_text = " ".join(
                row.get_text(" ", strip=True) for row in table.find_all("tr", limit=3)
            ).lower()
            if any(cue in header_text for cue in self._HTML_HEADER_CUES):
                return table
        return None

    # --- Plain text ---

    def parse_text(self, content: str) -> ParsedFiling:
        """Parse whitespace-delimited rows following an INFORMATION TABLE header.

        Rows are read until a blank line or an end marker once the first
        holding has been found. Lines without a valid CUSIP are skipped.
        """
        header = self._TEXT_HEADER.search(content)
        if header is None:
            raise MissingInformationTableError(
                "Information table section not found in text filing",
                context={"reason": "no INFORMATION TABLE header"},
            )

        lines = content[header.end():].splitlines()[1:]
        holdings: list[ParsedHolding] = []
        started = False
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                if started:
                    break
                continue
            if started and self._TEXT_END.search(line):
                break
            cells = self._COLUMN_SPLIT.split(line)
            if len(cells) < 3:
                continue
            holding = self._holding_from_cells(cells)
            if holding is not None:
                holdings.append(holding)
                started = True

        return self._assemble(content, holdings, DocumentFormat.TEXT)

    # --- Shared positional heuristic ---

    def _holding_from_cells(self, cells: list[str]) -> ParsedHolding | None:
        """Build a holding from a row of cells anchored on the CUSIP cell.

        Layout assumed relative to the CUSIP: issuer name first, class title
        second, then value (thousands), share count, and optional share
        type, put/call, discretion and a trailing voting triple.
        """
        cells = [c.strip() for c in cells]
        idx = next((i for i, c in enumerate(cells) if is_valid_cusip(c)), None)
        if idx is None:
            return None

        tokens = " ".join(cells[idx + 1:]).replace("$", " ").split()
        if len(tokens) < 2:
            return None
        value = _to_int(tokens[0])
        shares = _to_int(tokens[1])
        if value is None or shares is None or value < 0 or shares < 0:
            logger.debug("Dropping row for %s: unreadable or negative value/shares", cells[idx])
            return None

        share_type = "SH"
        put_call = None
        discretion = "SOLE"
        for token in tokens[2:]:
            upper = token.upper()
            if upper in ("SH", "PRN"):
                share_type = upper
            elif upper in ("PUT", "CALL"):
                put_call = upper.title()
            elif upper in self._DISCRETION_CODES:
                discretion = upper

        voting = VotingAuthority(sole=shares)
        tail = [_to_int(t) for t in tokens[-3:]] if len(tokens) >= 5 else []
        if len(tail) == 3 and all(v is not None for v in tail):
            voting = VotingAuthority(sole=tail[0], shared=tail[1], none=tail[2])

        return ParsedHolding(
            issuer_name=_normalize_text(cells[0]) if idx > 0 else "",
            title_of_class=_normalize_text(cells[1]) if idx > 1 else "",
            cusip=cells[idx],
            value=value * VALUE_MULTIPLIER,
            shares=shares,
            share_type=share_type,
            put_call=put_call,
            investment_discretion=discretion,
            voting=voting,
        )

    # --- Cover and summary ---

    def _assemble(
        self,
        content: str,
        holdings: list[ParsedHolding],
        fmt: DocumentFormat,
    ) -> ParsedFiling:
        declared_entries, declared_value, other_managers = self._declared_totals(content)
        return ParsedFiling(
            cover_page=self.extract_cover_page(content),
            summary_page=SummaryPage(
                other_included_managers_count=other_managers,
                table_entry_total=len(holdings),
                table_value_total=sum(h.value for h in holdings),
                declared_entry_total=declared_entries,
                declared_value_total=declared_value,
            ),
            holdings=holdings,
            source_format=fmt,
        )

    def extract_cover_page(self, content: str) -> CoverPage:
        """Pull period, amendment and submission-type fields from any dialect."""
        period_text = (
            _xml_tag(content, "reportCalendarOrQuarter")
            or _xml_tag(content, "periodOfReport")
        )
        period = self._parse_date(period_text) if period_text else None
        if period is None:
            for pattern in self._TEXT_PERIOD_PATTERNS:
                match = pattern.search(content)
                if match:
                    period_text = match.group(1)
                    period = self._parse_date(period_text)
                    if period is not None:
                        break

        submission_type = _xml_tag(content, "submissionType")
        if not submission_type:
            match = self._TEXT_SUBMISSION_TYPE.search(content)
            submission_type = match.group(1) if match else "13F-HR"
        submission_type = submission_type.upper()

        amendment_flag = _xml_tag(content, "isAmendment")
        if amendment_flag:
            is_amendment = amendment_flag.strip().lower() in ("true", "y", "yes", "1")
        else:
            is_amendment = submission_type.endswith("/A")

        return CoverPage(
            report_calendar_or_quarter=period_text or "",
            period_end_date=period,
            is_amendment=is_amendment,
            amendment_no=_xml_tag(content, "amendmentNo") or None,
            submission_type=submission_type,
        )

    def _declared_totals(self, content: str) -> tuple[int | None, int | None, int]:
        entries = _to_int(_xml_tag(content, "tableEntryTotal"))
        value = _to_int(_xml_tag(content, "tableValueTotal"))
        if entries is None:
            match = self._TEXT_ENTRY_TOTAL.search(content)
            entries = _to_int(match.group(1)) if match else None
        if value is None:
            match = self._TEXT_VALUE_TOTAL.search(content)
            value = _to_int(match.group(1)) if match else None
        other = _to_int(_xml_tag(content, "otherIncludedManagersCount")) or 0
        return entries, value * VALUE_MULTIPLIER if value is not None else None, other

    def _parse_date(self, text: str) -> date | None:
        text = " ".join(text.split())
        for fmt in self._DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        return None

    @staticmethod
    def _log_dropped(seen: int, kept: int, fmt: DocumentFormat) -> None:
        if seen > kept:
            logger.debug("Dropped %d of %d %s holdings", seen - kept, seen, fmt.value)


# --- Module helpers ---


def _local_name(element: etree._Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1].lower()


def _child_text(element: etree._Element, *path: str) -> str:
    """Follow child local names case-insensitively; '' if any step is missing."""
    current = element
    for name in path:
        wanted = name.lower()
        current = next((c for c in current if _local_name(c) == wanted), None)
        if current is None:
            return ""
    return (current.text or "").strip()


def _xml_tag(content: str, tag: str) -> str:
    """First text value of `<tag>` anywhere in the raw document, any prefix."""
    match = re.search(
        rf"<(?:[\w.-]+:)?{tag}\b[^>]*>\s*(.*?)\s*</(?:[\w.-]+:)?{tag}\s*>",
        content,
        re.IGNORECASE | re.DOTALL,
    )
    return match.group(1).strip() if match else ""


def _to_int(text: str | None) -> int | None:
    if text is None:
        return None
    cleaned = text.replace(",", "").replace("$", "").strip()
    if not cleaned:
        return None
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        return int(float(cleaned))
    except (ValueError, OverflowError):
        return None


def _normalize_text(text: str) -> str:
    return " ".join(text.split())


def _normalize_put_call(text: str) -> str | None:
    upper = text.upper()
    if "PUT" in upper:
        return "Put"
    if "CALL" in upper:
        return "Call"
    return None
