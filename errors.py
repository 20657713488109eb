from enum import Enum


class ErrorKind(Enum):
    BREAK = "BREAK"
    SYNTAX = "SYNTAX"
    LOGIC = "LOGIC"
    SYSTEM = "SYSTEM"


class BasicError(Exception):
    """Base class for every condition that aborts the current statement.

    The detail text is for logs only; the operator sees just the kind and,
    while a program runs, the line number.
    """
    kind = None

    def __init__(self, detail=""):
        super().__init__(detail or self.kind.value)
        self.detail = detail

    def message(self, line_number=None):
        text = self.kind.value if self.kind is ErrorKind.BREAK else f"{self.kind.value} ERROR"
        if line_number is not None:
            text += f" IN {line_number}"
        return text


class BasicBreak(BasicError):
    kind = ErrorKind.BREAK


class BasicSyntaxError(BasicError):
    kind = ErrorKind.SYNTAX


class BasicLogicError(BasicError):
    kind = ErrorKind.LOGIC


class BasicSystemError(BasicError):
    kind = ErrorKind.SYSTEM
