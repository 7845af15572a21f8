from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class VeclError(Exception):
    """Base class for toolchain errors."""


class VeclLexError(VeclError):
    """Raised when the source contains a character no token can start with."""

    def __init__(self, message: str, *, char: str = "", line: int = 0, column: int = 0) -> None:
        super().__init__(message)
        self.char = char
        self.line = line
        self.column = column


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


KEYWORDS = {
    "BEGIN",
    "END",
    "IF",
    "ELSE",
    "WHILE",
    "UNTIL",
}

SYMBOLS = {
    "(": "LPAREN",
    ")": "RPAREN",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    "+": "PLUS",
    "-": "MINUS",
    "~": "TILDE",
    "*": "STAR",
    "/": "SLASH",
    "#": "HASH",
    "<": "LT",
    ">": "GT",
    "=": "EQ",
}

# Matched before their one-character prefixes.
DOUBLE_SYMBOLS = {
    "<-": "ASSIGN",
    "<=": "LTE",
    "<>": "NEQ",
    ">=": "GTE",
}

LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DIGITS = "0123456789"


class Lexer:
    """Lazy scanner: tokens are produced one at a time as the parser asks for them."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.index = 0
        self.line = 1
        self.column = 1
        self._log: List[Token] = []
        self._peeked: Optional[Token] = None
        self._last_type: Optional[str] = None

    def tokens(self) -> List[Token]:
        return self._log

    def next_token(self) -> Token:
        if self._peeked is not None:
            token, self._peeked = self._peeked, None
        else:
            token = self._scan()
        self._log.append(token)
        return token

    def peek(self) -> Token:
        if self._peeked is None:
            self._peeked = self._scan()
        return self._peeked

    def _scan(self) -> Token:
        token = self._scan_token()
        self._last_type = token.type
        return token

    def _scan_token(self) -> Token:
        text = self.text
        n = len(text)
        _advance = self._advance

        while self.index < n:
            ch: str = text[self.index]
            if ch == " " or ch == "\t" or ch == "\r":
                _advance()
                continue
            if ch == "\n":
                line, col = self.line, self.column
                _advance()
                # Blank lines collapse into one separator and leading ones are dropped.
                if self._last_type is None or self._last_type == "NEWLINE":
                    continue
                return Token("NEWLINE", "\n", line, col)
            if ch == "/" and self._peek_char() == "*":
                self._consume_comment()
                continue
            if ch in DIGITS or (ch == "-" and self._next_in(DIGITS)):
                return self._consume_int()
            if ch == '"':
                return self._consume_string()
            if ch in LETTERS or (ch == "." and self._next_in(LETTERS)):
                return self._consume_identifier()
            pair = text[self.index:self.index + 2]
            if pair in DOUBLE_SYMBOLS:
                token = Token(DOUBLE_SYMBOLS[pair], pair, self.line, self.column)
                _advance()
                _advance()
                return token
            if ch in SYMBOLS:
                token = Token(SYMBOLS[ch], ch, self.line, self.column)
                _advance()
                return token
            raise VeclLexError(
                f"Unexpected char {ch!r} at line {self.line} column {self.column}",
                char=ch,
                line=self.line,
                column=self.column,
            )
        return Token("EOF", "", self.line, self.column)

    def _consume_comment(self) -> None:
        line, col = self.line, self.column
        text = self.text
        n = len(text)
        _advance = self._advance
        _advance()
        _advance()
        while self.index < n:
            if text[self.index] == "*" and self._peek_char() == "/":
                _advance()
                _advance()
                return
            _advance()
        raise VeclLexError(f"Unterminated comment at line {line} column {col}", char="/", line=line, column=col)

    def _consume_int(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        if self.text[self.index] == "-":
            chars.append("-")
            self._advance()
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] in DIGITS:
            chars.append(text[self.index])
            self._advance()
        return Token("INT", "".join(chars), line, col)

    def _consume_string(self) -> Token:
        line, col = self.line, self.column
        self._advance()  # opening quote
        chars: List[str] = []
        text = self.text
        n = len(text)
        while self.index < n:
            ch = text[self.index]
            if ch == '"':
                self._advance()
                return Token("STRING", "".join(chars), line, col)
            chars.append(ch)
            self._advance()
        raise VeclLexError(f"Unterminated string literal at line {line} column {col}", char='"', line=line, column=col)

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        if text[self.index] == ".":
            chars.append(".")
            self._advance()
        while self.index < n and (text[self.index] in LETTERS or text[self.index] in DIGITS or text[self.index] == "_"):
            chars.append(text[self.index])
            self._advance()
        value = "".join(chars)
        token_type: str = value if value in KEYWORDS else "IDENT"
        return Token(token_type, value, line, col)

    def _next_in(self, chars: str) -> bool:
        ch = self._peek_char()
        return ch != "" and ch in chars

    def _peek_char(self) -> str:
        if self.index + 1 >= len(self.text):
            return ""
        return self.text[self.index + 1]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1


def tokenize(text: str) -> List[Token]:
    lexer = Lexer(text)
    while lexer.next_token().type != "EOF":
        continue
    return lexer.tokens()
