import re
from enum import Enum
from typing import List, NamedTuple, Optional

_WORD_RE = re.compile(r"[A-Za-z0-9]+")


class TokenKind(Enum):
    START = "start"
    END = "end"
    VALUE = "value"


class Token(NamedTuple):
    """
    Identity of a chain node: a Start sentinel, an End sentinel, or a word.
    Equality and hashing follow (kind, text), so two Value tokens with the
    same text are the same token.
    """

    kind: TokenKind
    text: Optional[str] = None

    @classmethod
    def value(cls, text: str) -> "Token":
        return cls(TokenKind.VALUE, text)

    def is_start(self) -> bool:
        return self.kind is TokenKind.START

    def is_end(self) -> bool:
        return self.kind is TokenKind.END

    def is_value(self) -> bool:
        return self.kind is TokenKind.VALUE

    def __repr__(self):
        if self.kind is TokenKind.VALUE:
            return f"Value({self.text!r})"
        return self.kind.name.capitalize()


START = Token(TokenKind.START)
END = Token(TokenKind.END)


def is_word(text: str) -> bool:
    # fullmatch on the ASCII class; str.isalnum() would also accept non-ASCII letters
    return _WORD_RE.fullmatch(text) is not None


def tokenize(line: str) -> List[str]:
    """
    Split on whitespace and keep only tokens made entirely of ASCII letters/digits.
    "a! b c#1" -> ["b"]
    """
    return [t for t in line.split() if is_word(t)]
