"""
cfquery Interpreter
Recursive-descent evaluation of query expressions, one pass, no syntax tree

  Statement:
      Or
      Statement ; Or
  Or:
      And
      Or || And
  And:
      Equality
      And && Equality
  Equality:
      Comparison
      Equality == Comparison
      Equality != Comparison
  Comparison:
      Expression
      Comparison >= Expression
      Comparison >  Expression
      Comparison <  Expression
      Comparison <= Expression
  Expression:
      Term
      Expression + Term
      Expression - Term
  Term:
      Primary
      Term * Primary
      Term / Primary
      Term % Primary
  Primary:
      Number
      ${Name}
      Name
      Name = Or
      Name ( Or [, Or [, Or]] )
      ( Or )
      - Or
      + Or
"""

from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional

from error_handling import QueryNameError, QuerySyntaxError
from parsing import Kind, TokenStream
from stdlib import (
  IdentifierType,
  arity_of,
  call_builtin,
  get_constant,
  get_identifier_type
)
from values import TaggedValue, apply_operator, make_value


OR_OPERATORS: FrozenSet[Kind] = frozenset({Kind.OR})
AND_OPERATORS: FrozenSet[Kind] = frozenset({Kind.AND})
EQUALITY_OPERATORS: FrozenSet[Kind] = frozenset({Kind.EQUALS, Kind.NOT_EQUALS})
COMPARISON_OPERATORS: FrozenSet[Kind] = frozenset({
    Kind.GREATER_THAN_OR_EQUAL_TO,
    Kind.GREATER_THAN,
    Kind.LESS_THAN,
    Kind.LESS_THAN_OR_EQUAL_TO,
})
EXPRESSION_OPERATORS: FrozenSet[Kind] = frozenset({Kind.PLUS, Kind.MINUS})
TERM_OPERATORS: FrozenSet[Kind] = frozenset({Kind.MUL, Kind.DIV, Kind.MODULO})


class LiteralExpression:
  """Evaluator of one query string

  `query` resolves ${name} references: any object with a
  load_variable(name) method returning the samples (already converted to
  the requested unit). It may be None when the expression only uses
  numbers, constants and local names.
  """

  def __init__(self, query: Any, text: str, debug: bool = False):
    self.query = query
    self.stream = TokenStream(text)
    self.debug = debug
    self._variables: Dict[str, TaggedValue] = {}

  @property
  def variables(self) -> Mapping[str, TaggedValue]:
    """Local names bound by the last evaluation"""
    return MappingProxyType(self._variables)

  def evaluate(self) -> TaggedValue:
    """Evaluate every statement, return the value of the last one"""
    result = TaggedValue.empty()
    self.stream.reset()
    self._variables.clear()

    while True:
      token = self.stream.get()
      while token is Kind.ENDS:
        token = self.stream.get()
      if token is Kind.END:
        break
      self.stream.put_back(token)
      result = self._or()

      token = self.stream.get()
      if token not in (Kind.ENDS, Kind.END):
        raise self._syntax_error("';' expected")
      self.stream.put_back(token)

    if self.debug:
      print(f"Result: {result!r}")
    return result

  # ==========================================================================
  # GRAMMAR LEVELS
  # ==========================================================================

  def _left_associative(self, operand: Callable[[], TaggedValue],
                        operators: FrozenSet[Kind]) -> TaggedValue:
    left = operand()
    token = self.stream.get()
    while token in operators:
      left = apply_operator(token.value, left, operand())
      token = self.stream.get()
    self.stream.put_back(token)
    return left

  def _or(self) -> TaggedValue:
    return self._left_associative(self._and, OR_OPERATORS)

  def _and(self) -> TaggedValue:
    return self._left_associative(self._equality, AND_OPERATORS)

  def _equality(self) -> TaggedValue:
    return self._left_associative(self._comparison, EQUALITY_OPERATORS)

  def _comparison(self) -> TaggedValue:
    return self._left_associative(self._expression, COMPARISON_OPERATORS)

  def _expression(self) -> TaggedValue:
    return self._left_associative(self._term, EXPRESSION_OPERATORS)

  def _term(self) -> TaggedValue:
    return self._left_associative(self._primary, TERM_OPERATORS)

  def _primary(self) -> TaggedValue:
    token = self.stream.get()
    if self.debug:
      print(f"Evaluating: Primary {token.name}")

    if token is Kind.LEFT_PARENTHESIS:
      value = self._or()
      if self.stream.get() is not Kind.RIGHT_PARENTHESIS:
        raise self._syntax_error("')' expected")
      return value

    if token is Kind.NUMBER:
      return TaggedValue.scalar(self.stream.value)

    if token is Kind.VARIABLE:
      return self._load_variable()

    if token is Kind.NAME:
      return self._handle_identifier(self.stream.value)

    # The sign applies to everything up to the next lower-precedence break
    if token is Kind.MINUS:
      return -self._or()

    if token is Kind.PLUS:
      return +self._or()

    raise self._syntax_error("primary expected")

  # ==========================================================================
  # NAMES, FUNCTIONS AND DATASET VARIABLES
  # ==========================================================================

  def _handle_identifier(self, identifier: str) -> TaggedValue:
    identifier_type = get_identifier_type(identifier)

    if identifier_type is IdentifierType.CONSTANT:
      return get_constant(identifier)

    if identifier_type is IdentifierType.NOT_A_FUNCTION:
      token = self.stream.get()
      if token is Kind.ASSIGN:
        self._set_value(identifier, self._or())
      else:
        self.stream.put_back(token)
      return self._get_value(identifier)

    return self._call(identifier)

  def _call(self, identifier: str) -> TaggedValue:
    if self.stream.get() is not Kind.LEFT_PARENTHESIS:
      raise self._syntax_error("'(' expected")

    args = []
    for index in range(arity_of(identifier)):
      if index > 0 and self.stream.get() is not Kind.COMMA:
        raise self._syntax_error("',' expected")
      args.append(self._or())

    if self.stream.get() is not Kind.RIGHT_PARENTHESIS:
      raise self._syntax_error("')' expected")

    if self.debug:
      print(f"Calling: {identifier}/{len(args)}")
    return call_builtin(identifier, args)

  def _load_variable(self) -> TaggedValue:
    if self.stream.get() is not Kind.LEFT_ACCOLADE:
      raise self._syntax_error("'{' expected")
    if self.stream.get() is not Kind.NAME:
      raise self._syntax_error("identifier expected")
    name = self.stream.value
    if self.stream.get() is not Kind.RIGHT_ACCOLADE:
      raise self._syntax_error("'}' expected")

    if self.debug:
      print(f"Loading: ${{{name}}}")
    if self.query is None:
      raise QueryNameError(name, f"{name}: no such variable")
    return make_value(self.query.load_variable(name))

  def _set_value(self, name: str, value: TaggedValue) -> None:
    if self.debug:
      print(f"Bound: {name} = {value!r}")
    self._variables[name] = value

  def _get_value(self, name: str) -> TaggedValue:
    try:
      return self._variables[name]
    except KeyError:
      raise QueryNameError(name) from None

  def _syntax_error(self, message: str) -> QuerySyntaxError:
    return QuerySyntaxError(message, self.stream.to_string())


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_evaluator(query: Any, text: str, debug: bool = False) -> LiteralExpression:
  """Create an evaluator for `text` resolving ${name} through `query`"""
  return LiteralExpression(query, text, debug=debug)


def create_debug_evaluator(query: Any, text: str) -> LiteralExpression:
  """Create an evaluator that traces its work on stdout"""
  return create_evaluator(query, text, debug=True)


def evaluate(text: str, query: Optional[Any] = None, debug: bool = False) -> TaggedValue:
  """Evaluate `text` and return the tagged value of its last statement"""
  return create_evaluator(query, text, debug).evaluate()
