"""
X12 Segment Tokenizer & Envelope Reader

Turns raw X12 text into segments, then groups segments into an
interchange envelope plus its transaction sets.

X12 layout:
    ISA*...*~         ← Interchange header (fixed width, 106 chars)
    GS*...*~          ← Functional group header
    ST*855*0001~      ← Transaction set header
    ...segments...
    SE*...*~          ← Transaction set trailer
    GE*...*~          ← Functional group trailer
    IEA*...*~         ← Interchange trailer

Inbound documents carry their own delimiters in the ISA header:
element separator at offset 3, sub-element separator at offset 104,
segment terminator at offset 105. Outbound documents use configured
delimiters (defaults * : ~).
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from integrations.errors import MalformedEnvelope

logger = structlog.get_logger()

ISA_HEADER_LENGTH = 106
ELEMENT_SEPARATOR_OFFSET = 3
SUB_ELEMENT_SEPARATOR_OFFSET = 104
SEGMENT_TERMINATOR_OFFSET = 105

DEFAULT_ELEMENT_SEPARATOR = "*"
DEFAULT_SUB_ELEMENT_SEPARATOR = ":"
DEFAULT_SEGMENT_TERMINATOR = "~"


# ── Containers ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Delimiters:
    element: str = DEFAULT_ELEMENT_SEPARATOR
    sub_element: str = DEFAULT_SUB_ELEMENT_SEPARATOR
    segment: str = DEFAULT_SEGMENT_TERMINATOR


@dataclass(frozen=True)
class Segment:
    """One X12 record. elements[0] is the segment id (LIN, PO1, ...)."""

    elements: tuple[str, ...]

    @property
    def id(self) -> str:
        return self.elements[0] if self.elements else ""

    def element(self, index: int, default: str = "") -> str:
        """Element at a 1-based X12 position (e.g. BAK01 is element(1))."""
        if 0 <= index < len(self.elements):
            return self.elements[index]
        return default

    def __len__(self) -> int:
        return len(self.elements)


@dataclass(frozen=True)
class Envelope:
    sender_id: str
    receiver_id: str
    interchange_control_number: int
    functional_group_code: str
    delimiters: Delimiters


@dataclass(frozen=True)
class TransactionSet:
    """One ST..SE span (inclusive)."""

    document_type: str
    control_number: str
    segments: tuple[Segment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Interchange:
    envelope: Envelope
    transaction_sets: tuple[TransactionSet, ...]
    segment_count: int = 0


# ── Tokenizer ─────────────────────────────────────────────────────────────


def decode_payload(raw: str | bytes) -> str:
    """Bytes to text: UTF-8, falling back to latin-1."""
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return raw.decode("latin-1")
    return raw


def detect_delimiters(raw: str | bytes) -> Delimiters:
    """Read delimiters from the fixed-width ISA header."""
    text = decode_payload(raw).lstrip("\ufeff")
    if len(text) < ISA_HEADER_LENGTH:
        raise MalformedEnvelope(
            f"Invalid X12: content too short ({len(text)} chars, need {ISA_HEADER_LENGTH})"
        )
    if not text.startswith("ISA"):
        raise MalformedEnvelope("Invalid X12: document does not start with an ISA segment")

    delimiters = Delimiters(
        element=text[ELEMENT_SEPARATOR_OFFSET],
        sub_element=text[SUB_ELEMENT_SEPARATOR_OFFSET],
        segment=text[SEGMENT_TERMINATOR_OFFSET],
    )
    if delimiters.segment.isalnum() or delimiters.element.isalnum():
        raise MalformedEnvelope("Invalid X12: ISA header delimiters are unreadable")
    return delimiters


def tokenize(raw: str | bytes, delimiters: Delimiters | None = None) -> list[Segment]:
    """
    Split raw X12 into segments.

    When ``delimiters`` is None the fixed ISA header is read (inbound
    mode); otherwise the supplied delimiters are used (outbound mode).
    Whitespace-only segments are dropped; vendors pad files with line
    breaks inconsistently.
    """
    text = decode_payload(raw).lstrip("\ufeff")
    if delimiters is None:
        delimiters = detect_delimiters(text)

    cleaned = text.replace("\r\n", "\n")
    segments: list[Segment] = []
    for chunk in cleaned.split(delimiters.segment):
        chunk = chunk.strip()
        if not chunk:
            continue
        segments.append(Segment(tuple(chunk.split(delimiters.element))))
    return segments


# ── Envelope reader ───────────────────────────────────────────────────────


def read_envelope(segments: list[Segment], delimiters: Delimiters) -> Envelope:
    """Populate envelope metadata from the ISA and GS segments."""
    isa = next((s for s in segments if s.id == "ISA"), None)
    gs = next((s for s in segments if s.id == "GS"), None)

    control_number = 0
    if isa is not None:
        raw_number = isa.element(13).strip()
        if raw_number.isdigit():
            control_number = int(raw_number)

    return Envelope(
        sender_id=isa.element(6).strip() if isa else "",
        receiver_id=isa.element(8).strip() if isa else "",
        interchange_control_number=control_number,
        functional_group_code=gs.element(1).strip() if gs else "",
        delimiters=delimiters,
    )


def group_transaction_sets(segments: list[Segment]) -> list[TransactionSet]:
    """
    Single linear pass building ST..SE spans.

    Sets without a trailing SE are dropped rather than failing the file;
    upstream files are sometimes truncated.
    """
    transaction_sets: list[TransactionSet] = []
    current: list[Segment] | None = None
    document_type = ""
    control_number = ""

    for seg in segments:
        if seg.id == "ST":
            if current is not None:
                logger.debug("x12.unterminated_set_dropped", document_type=document_type, control_number=control_number)
            current = [seg]
            document_type = seg.element(1).strip()
            control_number = seg.element(2).strip()
            continue

        if current is None:
            continue

        current.append(seg)
        if seg.id == "SE":
            transaction_sets.append(
                TransactionSet(
                    document_type=document_type,
                    control_number=control_number,
                    segments=tuple(current),
                )
            )
            current = None

    if current is not None:
        logger.debug("x12.unterminated_set_dropped", document_type=document_type, control_number=control_number)

    return transaction_sets


def parse_interchange(raw: str | bytes) -> Interchange:
    """Tokenize an inbound document and read its envelope and transaction sets."""
    text = decode_payload(raw)
    delimiters = detect_delimiters(text)
    segments = tokenize(text, delimiters)
    return Interchange(
        envelope=read_envelope(segments, delimiters),
        transaction_sets=tuple(group_transaction_sets(segments)),
        segment_count=len(segments),
    )
