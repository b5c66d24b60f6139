"""
cfquery expression tokenizer
Turns query text into tokens on demand, with a one-token pushback buffer
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

# Import pyparsing with error handling
try:
    from pyparsing import ParseException, Regex, Word, alphanums
except ImportError:
    raise ImportError("pyparsing library not found. Install with: pip install pyparsing")

from error_handling import QuerySyntaxError, syntax_error_from_parse_exception


class Kind(Enum):
    """Token kinds; punctuation kinds carry their own spelling"""
    NAME = "name"
    VARIABLE = "$"
    NUMBER = "number"
    END = "end"
    EQUALS = "=="
    NOT_EQUALS = "!="
    LESS_THAN = "<"
    GREATER_THAN = ">"
    LESS_THAN_OR_EQUAL_TO = "<="
    GREATER_THAN_OR_EQUAL_TO = ">="
    AND = "&&"
    OR = "||"
    PLUS = "+"
    MINUS = "-"
    MUL = "*"
    DIV = "/"
    MODULO = "%"
    ENDS = ";"
    ASSIGN = "="
    LEFT_PARENTHESIS = "("
    RIGHT_PARENTHESIS = ")"
    LEFT_ACCOLADE = "{"
    RIGHT_ACCOLADE = "}"
    COMMA = ","


@dataclass(frozen=True)
class Token:
    """Token with the position where it starts in the query text"""
    kind: Kind
    value: Any
    position: int

    def __str__(self) -> str:
        if self.kind in (Kind.NUMBER, Kind.NAME):
            return f"{self.kind.name}({self.value!r})"
        return self.kind.name


# Characters that form a token on their own
SINGLE_CHARACTER_TOKENS = frozenset(";*/%+-(){},$")

# floating-point-literal as read by strtod, without sign
NUMBER = Regex(r"([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?").set_name("floating-point literal")

# Name: [a-zA-Z0-9][a-zA-Z_0-9]*; a leading digit only reaches here when followed by '_'
NAME = Word(alphanums, alphanums + "_").set_name("identifier")

# Two-character operators: first char -> (second char, combined kind, kind when alone)
COMPOUND_OPERATORS = {
    "=": ("=", Kind.EQUALS, Kind.ASSIGN),
    "!": ("=", Kind.NOT_EQUALS, None),
    "&": ("&", Kind.AND, None),
    "|": ("|", Kind.OR, None),
    ">": ("=", Kind.GREATER_THAN_OR_EQUAL_TO, Kind.GREATER_THAN),
    "<": ("=", Kind.LESS_THAN_OR_EQUAL_TO, Kind.LESS_THAN),
}


class TokenStream:
    """Cursor over the query text producing one token per get() call"""

    def __init__(self, text: str):
        self.text = text
        self._pos = 0
        self._full = False
        self._kind = Kind.END
        self._value: Any = None
        self._start = 0

    @property
    def value(self) -> Any:
        """Value of the last number (float) or name (str) read"""
        return self._value

    @property
    def position(self) -> int:
        """Index of the next character to read"""
        return self._pos

    def reset(self) -> None:
        """Return to the beginning of the text"""
        self._pos = 0
        self._full = False
        self._kind = Kind.END
        self._value = None

    def __bool__(self) -> bool:
        """True while there is something left to analyse"""
        return self._full or self._pos < len(self.text)

    def put_back(self, kind: Kind) -> None:
        """Replay `kind` on the next get(); only one token may be pending"""
        if self._full:
            raise RuntimeError("reset input stream into a full buffer")
        self._kind = kind
        self._full = True

    def to_string(self) -> str:
        """Text consumed so far, used to locate syntax errors"""
        return self.text[:self._pos]

    def get(self) -> Kind:
        """Read the next token and return its kind"""
        if self._full:
            self._full = False
            return self._kind

        text = self.text
        while self._pos < len(text) and text[self._pos].isspace():
            self._pos += 1
        if self._pos >= len(text):
            self._kind = Kind.END
            return self._kind

        self._start = self._pos
        current = text[self._pos]
        self._pos += 1

        if current in SINGLE_CHARACTER_TOKENS:
            self._kind = Kind(current)
            return self._kind

        if current in COMPOUND_OPERATORS:
            second, combined, alone = COMPOUND_OPERATORS[current]
            if text[self._pos:self._pos + 1] == second:
                self._pos += 1
                self._kind = combined
                return self._kind
            if alone is not None:
                self._kind = alone
                return self._kind
            raise self._bad_token(current)

        if ((current.isdigit() and current.isascii()) or current == ".") and text[self._pos:self._pos + 1] != "_":
            self._kind = self._read_number()
            return self._kind

        if current.isalnum() and current.isascii():
            self._kind = self._read_name()
            return self._kind

        raise self._bad_token(current)

    def tokens(self) -> Iterator[Token]:
        """Iterate over the remaining tokens, END excluded"""
        while True:
            kind = self.get()
            if kind is Kind.END:
                return
            value: Optional[Any] = self._value if kind in (Kind.NUMBER, Kind.NAME) else kind.value
            yield Token(kind, value, self._start)

    def _read_number(self) -> Kind:
        start = self._start
        try:
            end = NUMBER.try_parse(self.text, start)
        except ParseException as e:
            raise syntax_error_from_parse_exception(e, "bad number", self.text)
        self._value = float(self.text[start:end])
        self._pos = end
        return Kind.NUMBER

    def _read_name(self) -> Kind:
        start = self._start
        end = NAME.try_parse(self.text, start)
        self._value = self.text[start:end]
        self._pos = end
        return Kind.NAME

    def _bad_token(self, current: str) -> QuerySyntaxError:
        return QuerySyntaxError(f"bad token '{current}'", self.to_string(), self._start, current)


def tokenize(text: str) -> Iterator[Token]:
    """Tokenize a whole query, mainly for diagnostics"""
    return TokenStream(text).tokens()
