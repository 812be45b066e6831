from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SegmentKind(str, Enum):
    """Kinds of units a template is split into before code generation."""
    LITERAL = "literal"
    SCRIPTLET = "scriptlet"
    RAW_EXPRESSION = "raw"
    ESCAPED_EXPRESSION = "escaped"


# Leading character of a directive body selecting its kind
SIGILS: dict[str, SegmentKind] = {
    "-": SegmentKind.RAW_EXPRESSION,
    "=": SegmentKind.ESCAPED_EXPRESSION,
}


@dataclass(frozen=True)
class Segment:
    """One parsed unit of a template.

    - kind: which of the four segment kinds this is
    - text: raw literal text, expression source without its sigil, or the
      whole scriptlet body
    """
    kind: SegmentKind
    text: str

    @property
    def is_expression(self) -> bool:
        return self.kind in (SegmentKind.RAW_EXPRESSION, SegmentKind.ESCAPED_EXPRESSION)
