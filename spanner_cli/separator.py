"""Splitting of raw input into individual statements."""

from dataclasses import dataclass
from typing import List

DELIMITER_HORIZONTAL = ";"
DELIMITER_VERTICAL = "\\G"


@dataclass(frozen=True)
class InputStatement:
    """One statement cut out of the input, with the terminator that ended it."""
    statement: str
    delimiter: str = DELIMITER_HORIZONTAL

    @property
    def vertical(self) -> bool:
        return self.delimiter == DELIMITER_VERTICAL

    @property
    def terminated(self) -> bool:
        return self.delimiter != ""


class _Separator:
    """Single pass scanner over the input.

    Quoted literals are copied verbatim, comments are dropped, and ``;`` or
    ``\\G`` outside of literals and comments end a statement.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.buffer: List[str] = []
        self.statements: List[InputStatement] = []

    def peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def emit(self, delimiter: str) -> None:
        statement = "".join(self.buffer).strip()
        self.buffer = []
        if statement:
            self.statements.append(InputStatement(statement, delimiter))

    def run(self) -> List[InputStatement]:
        while self.pos < len(self.text):
            ch = self.peek()

            if ch in ("'", '"'):
                if self.peek(1) == ch and self.peek(2) == ch:
                    self.consume_quoted(ch * 3)
                else:
                    self.consume_quoted(ch)
            elif ch == "`":
                self.consume_quoted(ch)
            elif ch == "#" or (ch == "-" and self.peek(1) == "-"):
                self.skip_line_comment()
            elif ch == "/" and self.peek(1) == "*":
                self.skip_block_comment()
            elif ch == ";":
                self.pos += 1
                self.emit(DELIMITER_HORIZONTAL)
            elif ch == "\\" and self.peek(1) == "G":
                self.pos += 2
                self.emit(DELIMITER_VERTICAL)
            else:
                self.buffer.append(ch)
                self.pos += 1

        self.emit("")
        return self.statements

    def consume_quoted(self, quote: str) -> None:
        self.buffer.append(quote)
        self.pos += len(quote)
        while self.pos < len(self.text):
            ch = self.peek()
            if ch == "\\":
                self.buffer.append(self.text[self.pos:self.pos + 2])
                self.pos += 2
                continue
            if self.text.startswith(quote, self.pos):
                self.buffer.append(quote)
                self.pos += len(quote)
                return
            self.buffer.append(ch)
            self.pos += 1

    def skip_line_comment(self) -> None:
        end = self.text.find("\n", self.pos)
        if end == -1:
            self.pos = len(self.text)
        else:
            self.pos = end

    def skip_block_comment(self) -> None:
        end = self.text.find("*/", self.pos + 2)
        self.pos = len(self.text) if end == -1 else end + 2
        self.buffer.append(" ")


def separate_input(text: str) -> List[InputStatement]:
    """Split ``text`` into statements.

    A trailing statement without terminator is returned with an empty
    delimiter so interactive callers can keep reading input.
    """
    return _Separator(text).run()
