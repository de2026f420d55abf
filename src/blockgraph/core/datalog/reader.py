"""Reader for the EDN subset used by Datalog queries.

Vectors read as ``list``, lists as ``tuple``, sets as ``frozenset`` and maps
as ``dict``; keywords and symbols get their own small types.
"""

import re
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Keyword:
    name: str

    def __str__(self) -> str:
        return f":{self.name}"


@dataclass(frozen=True)
class Symbol:
    name: str

    def __str__(self) -> str:
        return self.name


class ReadError(ValueError):
    """Raised on malformed query text."""


_DELIMITERS = set("()[]{}\"; \t\n\r,")
_STRING_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}
_CLOSERS = {"[": "]", "(": ")", "{": "}", "#{": "}"}
_INT_TOKEN = re.compile(r"[+-]?\d+")
_FLOAT_TOKEN = re.compile(r"[+-]?\d+\.\d*(?:[eE][+-]?\d+)?")


class _Reader:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in " \t\n\r,":
                self.pos += 1
            elif ch == ";":
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end == -1 else end + 1
            else:
                return

    def at_end(self) -> bool:
        self._skip_whitespace()
        return self.pos >= len(self.text)

    def read(self) -> Any:
        self._skip_whitespace()
        if self.pos >= len(self.text):
            msg = "Unexpected end of input"
            raise ReadError(msg)
        ch = self.text[self.pos]
        if ch == "#" and self.text.startswith("#{", self.pos):
            self.pos += 2
            return frozenset(self._read_until("}"))
        if ch in "[({":
            self.pos += 1
            items = self._read_until(_CLOSERS[ch])
            if ch == "[":
                return items
            if ch == "(":
                return tuple(items)
            if len(items) % 2:
                msg = "Map literal needs an even number of forms"
                raise ReadError(msg)
            return dict(zip(items[::2], items[1::2], strict=True))
        if ch in ")]}":
            msg = f"Unexpected {ch!r} at offset {self.pos}"
            raise ReadError(msg)
        if ch == '"':
            return self._read_string()
        return self._read_atom()

    def _read_until(self, closer: str) -> list[Any]:
        items: list[Any] = []
        while True:
            self._skip_whitespace()
            if self.pos >= len(self.text):
                msg = f"Missing {closer!r}"
                raise ReadError(msg)
            if self.text[self.pos] == closer:
                self.pos += 1
                return items
            items.append(self.read())

    def _read_string(self) -> str:
        self.pos += 1
        out: list[str] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(out)
            if ch == "\\":
                escaped = self.text[self.pos + 1 : self.pos + 2]
                if escaped not in _STRING_ESCAPES:
                    msg = f"Unsupported escape \\{escaped} at offset {self.pos}"
                    raise ReadError(msg)
                out.append(_STRING_ESCAPES[escaped])
                self.pos += 2
                continue
            out.append(ch)
            self.pos += 1
        msg = "Unterminated string literal"
        raise ReadError(msg)

    def _read_atom(self) -> Any:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _DELIMITERS:
            self.pos += 1
        token = self.text[start : self.pos]
        if token.startswith(":"):
            return Keyword(token[1:])
        if token == "nil":
            return None
        if token in ("true", "false"):
            return token == "true"
        if _INT_TOKEN.fullmatch(token):
            return int(token)
        if _FLOAT_TOKEN.fullmatch(token):
            return float(token)
        return Symbol(token)


def read_form(text: str) -> Any:
    """Read exactly one form from ``text``.

    Raises:
        ReadError: On syntax errors or trailing input.
    """
    reader = _Reader(text)
    form = reader.read()
    if not reader.at_end():
        msg = f"Trailing input at offset {reader.pos}"
        raise ReadError(msg)
    return form
