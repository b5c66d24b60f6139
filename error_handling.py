"""
Error handling for cfquery expressions
Pure functions build the error records, the exception classes wrap them
"""

from typing import Dict, Optional
from pyparsing import ParseException


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_syntax_error(
    message: str,
    consumed: str,
    position: Optional[int] = None,
    got: Optional[str] = None
) -> Dict:
    """Create an immutable syntax error structure"""
    return {
        'message': message,
        'consumed': consumed,
        'position': len(consumed) if position is None else position,
        'got': got,
    }


def format_syntax_error(error: Dict) -> str:
    """Format syntax error as string: '<message>: <consumed><-- here'"""
    return f"{error['message']}: {error['consumed']}<-- here"


def format_operand_error(op: str, *kind_names: str) -> str:
    """Format the message raised when an operator does not support its operands"""
    if len(kind_names) == 1:
        return f"unsupported operand type for {op}: '{kind_names[0]}'"
    quoted = " and ".join(f"'{name}'" for name in kind_names)
    return f"unsupported operand type(s) for {op}: {quoted}"


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class QueryError(Exception):
    """Base class of every error raised while evaluating a query"""
    pass


class QuerySyntaxError(QueryError):
    """Malformed expression, reported with the text consumed so far"""
    def __init__(self, message: str, consumed: str = "", position: Optional[int] = None,
                 got: Optional[str] = None):
        error = make_syntax_error(message, consumed, position, got)
        self.message = error['message']
        self.consumed = error['consumed']
        self.position = error['position']
        self.got = error['got']
        super().__init__(format_syntax_error(error))


class QueryRuntimeError(QueryError):
    """Semantic error raised while evaluating a well-formed expression"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class QueryNameError(QueryRuntimeError):
    """Undefined local name or unknown dataset variable"""
    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f"name '{name}' is not defined")


class UnsupportedOperandError(QueryRuntimeError):
    """Operator or function applied to a combination of kinds it cannot handle"""
    def __init__(self, op: str, *kind_names: str):
        self.op = op
        self.kind_names = kind_names
        super().__init__(format_operand_error(op, *kind_names))


class OperandLengthError(QueryRuntimeError):
    """Element-wise operation between arrays of different lengths"""
    def __init__(self, op: str, left_length: int, right_length: int):
        self.op = op
        self.left_length = left_length
        self.right_length = right_length
        super().__init__(
            f"operands could not be combined with {op}: "
            f"lengths {left_length} and {right_length} differ"
        )


class UnitError(QueryError):
    """Unit string could not be parsed or the units cannot be converted"""
    pass


def syntax_error_from_parse_exception(exc: ParseException, message: str,
                                      source_text: str) -> QuerySyntaxError:
    """Convert a pyparsing exception raised while scanning a token"""
    loc = exc.loc
    got = source_text[loc:loc + 1] or "end of input"
    return QuerySyntaxError(message, source_text[:loc + 1], loc, got)
