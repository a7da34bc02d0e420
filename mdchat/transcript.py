# mdchat/transcript.py
"""
Turns a document body into a role-tagged chat transcript.

    body --scan()--> segments --build_transcript()--> turns --validate_transcript()--> turns

The body is split on three literal delimiters (prefix + role marker + suffix).
Each delimiter switches the current role; the text right after it becomes a
turn for that role.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from mdchat.errors import EmptyTranscriptError, InvalidFinalTurnError
from mdchat.settings import Settings


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# declaration order is also the tie-break order when two delimiters match at the same index
ROLE_ORDER: Tuple[Role, ...] = (Role.USER, Role.ASSISTANT, Role.SYSTEM)


@dataclass(frozen=True)
class Delimiter:
    role: Role
    literal: str


@dataclass(frozen=True)
class Segment:
    content: str = ""
    delimiter: Optional[Delimiter] = None

    @property
    def is_delimiter(self) -> bool:
        return self.delimiter is not None

    @property
    def raw(self) -> str:
        """Exact span of the body this segment covers."""
        return self.delimiter.literal if self.delimiter is not None else self.content


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


def build_delimiters(settings: Settings) -> List[Delimiter]:
    return [Delimiter(role=role, literal=settings.delimiter_for(role.value)) for role in ROLE_ORDER]


# -----------------------
# Scanner
# -----------------------

def _compile_delimiters(delimiters: Sequence[Delimiter]) -> Tuple[Optional["re.Pattern[str]"], List[Delimiter]]:
    # an empty literal would match everywhere, so it never delimits anything
    usable = [d for d in delimiters if d.literal]
    if not usable:
        return None, []
    # one group per delimiter; Python alternation tries them left to right, so at a
    # given index the first declared delimiter wins
    pattern = "|".join(f"({re.escape(d.literal)})" for d in usable)
    return re.compile(pattern), usable


def scan(body: str, delimiters: Sequence[Delimiter]) -> List[Segment]:
    """
    Split `body` into free text and delimiter segments, in document order.

    Matches are literal and non-overlapping, earliest first. Empty free text
    between two matches (or at either end) is not emitted.
    """
    regex, usable = _compile_delimiters(delimiters)
    if regex is None:
        return [Segment(content=body)] if body else []

    segments: List[Segment] = []
    last_index = 0
    for m in regex.finditer(body):
        if m.start() > last_index:
            segments.append(Segment(content=body[last_index:m.start()]))
        segments.append(Segment(delimiter=usable[m.lastindex - 1]))
        last_index = m.end()

    if last_index < len(body):
        segments.append(Segment(content=body[last_index:]))
    return segments


# -----------------------
# Builder
# -----------------------

def _is_blank(text: str) -> bool:
    return not text.strip()


def _step(
    role: Role,
    index: int,
    segment: Segment,
    lookahead: Optional[Segment],
    system_delimiter: Optional[Delimiter],
) -> Tuple[Role, Optional[Turn]]:
    """
    One transition of the builder: (current role, segment) -> (next role, emitted turn).
    """
    if segment.is_delimiter:
        role = segment.delimiter.role
        if lookahead is not None and not lookahead.is_delimiter and not _is_blank(lookahead.content):
            return role, Turn(role=role, content=lookahead.content)
        return role, None

    if index != 0:
        # free text is only ever consumed through the delimiter in front of it
        return role, None

    if _is_blank(segment.content):
        if lookahead is not None and lookahead.is_delimiter and _is_system_delimiter(lookahead.delimiter, system_delimiter):
            return Role.SYSTEM, None
        return role, None

    return role, Turn(role=Role.USER, content=segment.content)


def _is_system_delimiter(found: Delimiter, system_delimiter: Optional[Delimiter]) -> bool:
    if system_delimiter is not None:
        return found.literal == system_delimiter.literal
    return found.role == Role.SYSTEM


def build_transcript(segments: Sequence[Segment], delimiters: Optional[Sequence[Delimiter]] = None) -> List[Turn]:
    """
    Walk the segments and assign each turn a role.

    If `delimiters` is given, the opening-system check compares against the
    system delimiter literal, so a system marker that is textually identical
    to an earlier-declared one still counts.
    """
    system_delimiter = None
    if delimiters:
        system_delimiter = next((d for d in delimiters if d.role == Role.SYSTEM), None)

    turns: List[Turn] = []
    role = Role.USER
    for i, segment in enumerate(segments):
        lookahead = segments[i + 1] if i + 1 < len(segments) else None
        role, turn = _step(role, i, segment, lookahead, system_delimiter)
        if turn is not None:
            turns.append(turn)
    return turns


# -----------------------
# Validator
# -----------------------

def validate_transcript(turns: List[Turn]) -> List[Turn]:
    if not turns:
        raise EmptyTranscriptError("Transcript is empty: no turns found in the document.")
    last = turns[-1]
    if last.role != Role.USER:
        raise InvalidFinalTurnError(f"Last message must be from the user, got '{last.role.value}'.")
    if _is_blank(last.content):
        raise InvalidFinalTurnError("Last message must be from the user and cannot be empty.")
    return turns


def parse_transcript(body: str, settings: Settings) -> List[Turn]:
    delimiters = build_delimiters(settings)
    segments = scan(body, delimiters)
    return validate_transcript(build_transcript(segments, delimiters))
