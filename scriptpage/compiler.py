from __future__ import annotations

import io
import logging
import re
import textwrap
import tokenize
from dataclasses import dataclass, field

from .config import DelimiterConfig
from .jinja import render_module
from .types import SIGILS, Segment, SegmentKind

logger = logging.getLogger(__name__)

INDENT = "    "

# Characters that cannot appear as-is inside a single-quoted Python literal
_LITERAL_ESCAPES = str.maketrans({
    "\\": "\\\\",
    "'": "\\'",
    "\t": "\\t",
    "\r": "\\r",
    "\n": "\\n",
    "\0": "\\x00",
})

BLOCK_END = "end"
_CONTINUATION = re.compile(r"^(?:elif\b|else\s*:|except\b|finally\s*:)")

_EXPRESSION_WRAPPERS = {
    SegmentKind.RAW_EXPRESSION: "str",
    SegmentKind.ESCAPED_EXPRESSION: "_escape",
}


def escape_literal(text: str) -> str:
    """Escape 'text' so it can sit between single quotes in generated code."""
    return text.translate(_LITERAL_ESCAPES)


def parse_segments(source: str, delimiters: DelimiterConfig | None = None) -> list[Segment]:
    """Split template source into literal and directive segments.

    The source is wrapped as close + source + open so the first and last
    literal runs are found the same way as any other. Scanning stops at the
    first open marker without a matching close marker (or the reverse) and
    everything after it is dropped; that is not an error.
    """
    delimiters = delimiters or DelimiterConfig()
    open_m, close_m = delimiters.open_marker, delimiters.close_marker
    src = close_m + source + open_m
    synthetic_open = len(src) - len(open_m)

    segments: list[Segment] = []
    pos = 0
    while pos < len(src):
        close_at = src.find(close_m, pos)
        if close_at == -1:
            break
        start = close_at + len(close_m)
        end = src.find(open_m, start)
        if end == -1:
            logger.debug("Unmatched close marker at offset %d, dropping the rest", start - len(close_m))
            break
        if end > start:
            segments.append(Segment(SegmentKind.LITERAL, src[start:end]))

        open_at = end
        start = open_at + len(open_m)
        end = src.find(close_m, start)
        if end == -1:
            if open_at < synthetic_open:
                logger.debug("Unterminated directive at offset %d, dropping the rest", open_at - len(close_m))
            break
        body = src[start:end]
        kind = SIGILS.get(body[:1], SegmentKind.SCRIPTLET)
        if kind is SegmentKind.SCRIPTLET:
            segments.append(Segment(kind, body))
        else:
            segments.append(Segment(kind, body[1:]))
        pos = end
    return segments


@dataclass
class _Block:
    indent: str
    filled: bool = False


@dataclass
class _BodyWriter:
    """Accumulates indented body lines and tracks scriptlet-opened blocks.

    Each block remembers its own indentation, so a block opened by a nested
    statement inside a multi-line scriptlet sits under that statement, and
    whether any code was written into it yet, so an empty one gets a 'pass'.
    """
    lines: list[str] = field(default_factory=list)
    blocks: list[_Block] = field(default_factory=list)

    @property
    def indent(self) -> str:
        return self.blocks[-1].indent if self.blocks else INDENT

    def write(self, line: str) -> None:
        self.lines.append(self.indent + line if line else line)
        code = line.strip()
        if self.blocks and code and not code.startswith("#"):
            self.blocks[-1].filled = True

    def open_block(self, offset: str = "") -> None:
        self.blocks.append(_Block(self.indent + offset + INDENT))

    def close_block(self) -> bool:
        if not self.blocks:
            return False
        if not self.blocks[-1].filled:
            self.write("pass")
        self.blocks.pop()
        return True

    def close_all(self) -> None:
        while self.close_block():
            pass


def _scriptlet_lines(body: str) -> list[str]:
    """Normalize a scriptlet body into lines relative to column zero.

    Code sharing a line with the open marker is taken as-is; the following
    lines are dedented among themselves. When that first line opens a block
    and the next code line would land at its level, the rest is indented
    into the block.
    """
    raw = body.splitlines()
    head = raw[0].strip() if raw else ""
    tail = [line.rstrip() for line in textwrap.dedent("\n".join(raw[1:])).splitlines()]
    if head and tail and _block_opener([head]) is not None:
        first_code = next((line for line in tail if line.strip()), "")
        if first_code and not first_code[0].isspace():
            tail = [INDENT + line if line else line for line in tail]
    lines = ([head] if head else []) + tail
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


_NON_CODE_TOKENS = frozenset({
    tokenize.NEWLINE,
    tokenize.NL,
    tokenize.COMMENT,
    tokenize.INDENT,
    tokenize.DEDENT,
    tokenize.ENDMARKER,
})


def _block_opener(lines: list[str]) -> str | None:
    """Return the indentation of a trailing block-opening statement, else None.

    Comments are ignored, so '# note:' does not open anything. Code that
    does not tokenize (an unclosed bracket, say) opens nothing; it fails
    when the module is loaded.
    """
    last = None
    statement_start = None
    new_statement = True
    try:
        for tok in tokenize.generate_tokens(io.StringIO("\n".join(lines) + "\n").readline):
            if tok.type in _NON_CODE_TOKENS:
                if tok.type == tokenize.NEWLINE:
                    new_statement = True
                continue
            if new_statement:
                statement_start = tok.start
                new_statement = False
            last = tok
    except (tokenize.TokenError, SyntaxError):
        return None
    if last is None or statement_start is None or last.type != tokenize.OP or last.string != ":":
        return None
    row, col = statement_start
    return lines[row - 1][:col]


class Compiler:
    """Translates template source into the source of a Python module.

    The module defines render(<context_param_name>) returning the output
    string, plus a private _escape helper used by '=' directives.
    """

    def __init__(self, delimiters: DelimiterConfig | None = None) -> None:
        self.delimiters = delimiters or DelimiterConfig()

    def compile(self, source: str, origin: str = "<string>") -> str:
        segments = parse_segments(source, self.delimiters)
        writer = _BodyWriter()
        for segment in segments:
            self._emit(segment, writer)
        if writer.blocks:
            logger.debug("%s: closing %d unterminated block(s) at end of template", origin, len(writer.blocks))
        writer.close_all()
        logger.debug("%s: compiled %d segment(s) into %d line(s)", origin, len(segments), len(writer.lines))
        return render_module(self.delimiters.context_param_name, writer.lines, origin=origin)

    def _emit(self, segment: Segment, writer: _BodyWriter) -> None:
        if segment.kind is SegmentKind.LITERAL:
            writer.write(f"_buf.append('{escape_literal(segment.text)}')")
        elif segment.is_expression:
            writer.write(f"_buf.append({_EXPRESSION_WRAPPERS[segment.kind]}({segment.text}))")
        else:
            self._emit_scriptlet(segment.text, writer)

    def _emit_scriptlet(self, body: str, writer: _BodyWriter) -> None:
        lines = _scriptlet_lines(body)
        if not lines:
            return
        if len(lines) == 1 and lines[0].strip() == BLOCK_END:
            if not writer.close_block():
                logger.warning("Ignoring '%s' directive with no open block", BLOCK_END)
            return
        if _CONTINUATION.match(lines[0]):
            writer.close_block()
        for line in lines:
            writer.write(line)
        offset = _block_opener(lines)
        if offset is not None:
            writer.open_block(offset)


def compile_source(source: str, delimiters: DelimiterConfig | None = None, origin: str = "<string>") -> str:
    """Compile template 'source' into Python module source text."""
    return Compiler(delimiters).compile(source, origin=origin)
