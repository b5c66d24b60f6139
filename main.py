"""
cfquery - Main Entry Point
Evaluate query expressions against variables given on the command line
"""

import sys
import argparse
import traceback
from typing import Any, Dict, List, Optional, Sequence
import os

import numpy as np

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from dataset import Dataset, Variable
from error_handling import QueryError, QuerySyntaxError, UnitError
from parsing import tokenize
from query import Query
from stdlib import list_builtin_functions, list_constants


VERSION = 'cfquery 0.1.0'


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='cfquery',
      description='cfquery - expressions over dataset variables with unit conversion',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s "11.2*sin(0.41)"                          # Plain arithmetic
  %(prog)s -v t=273.15,300@K -u degC '${t}'          # Convert a variable
  %(prog)s -v x=1,2,3 --attr x:scale_factor=10 '${x}'
  %(prog)s --tokens 'a = 1; a + 2'                   # Show the token stream
  %(prog)s -i -v x=1,2,3                             # Interactive mode
        """
  )

  parser.add_argument(
      'expression',
      nargs='?',
      help='Query expression to evaluate'
  )

  parser.add_argument(
      '-u', '--unit',
      default='',
      help='Unit of the result; variables are converted to it'
  )

  parser.add_argument(
      '-v', '--var',
      action='append',
      default=[],
      metavar='NAME=v1,v2,...[@unit]',
      help='Define a dataset variable (repeatable)'
  )

  parser.add_argument(
      '--attr',
      action='append',
      default=[],
      metavar='NAME:key=value',
      help='Set an attribute of a variable (repeatable)'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Print the tokens of the expression instead of evaluating it'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--units-file',
      default=None,
      help='pint unit definition file replacing the default one'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Trace the evaluation'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


# ============================================================================
# DATASET FROM THE COMMAND LINE
# ============================================================================

def parse_var_option(option: str) -> Variable:
  """NAME=v1,v2,...[@unit] -> Variable"""
  name, sep, rest = option.partition('=')
  name = name.strip()
  if not sep or not name:
    raise ValueError(f"invalid variable definition '{option}', expected NAME=v1,v2,...[@unit]")
  samples, _, unit = rest.partition('@')
  try:
    data = [float(item) for item in samples.split(',') if item.strip()]
  except ValueError:
    raise ValueError(f"invalid samples for variable '{name}': '{samples}'") from None
  attributes: Dict[str, Any] = {}
  if unit.strip():
    attributes['units'] = unit.strip()
  return Variable(name, data, attributes)


def _attribute_value(text: str) -> Any:
  items = text.split(',')
  try:
    values = [float(item) for item in items]
  except ValueError:
    return text
  return values[0] if len(values) == 1 else values


def apply_attr_option(dataset: Dataset, option: str) -> None:
  """NAME:key=value -> attribute of an existing variable"""
  name, sep, assignment = option.partition(':')
  key, eq, value = assignment.partition('=')
  if not sep or not eq or not key:
    raise ValueError(f"invalid attribute '{option}', expected NAME:key=value")
  variable = dataset.find_variable(name)
  if variable is None:
    raise ValueError(f"attribute for unknown variable '{name}'")
  variable.attributes[key] = _attribute_value(value)


def build_dataset(var_options: Sequence[str], attr_options: Sequence[str]) -> Dataset:
  dataset = Dataset()
  for option in var_options:
    dataset.add_variable(parse_var_option(option))
  for option in attr_options:
    apply_attr_option(dataset, option)
  return dataset


def format_result(values: np.ndarray) -> str:
  return "[" + ", ".join(repr(float(value)) for value in values) + "]"


# ============================================================================
# COMMANDS
# ============================================================================

def print_tokens(expression: str) -> None:
  """Print one token per line"""
  for token in tokenize(expression):
    print(f"{token.position:4d}  {token}")


def evaluate_expression(query: Query, dataset: Dataset, expression: str, unit: str,
                        debug: bool = False) -> None:
  """Evaluate and print, exiting with status 1 on error"""
  try:
    values = query.evaluate(dataset, expression, unit, debug)
    print(format_result(values))
  except QuerySyntaxError as e:
    print(f"Syntax error: {e}")
    sys.exit(1)
  except UnitError as e:
    print(f"Unit error: {e}")
    sys.exit(1)
  except QueryError as e:
    print(f"Error: {e}")
    sys.exit(1)
  except Exception as e:
    print(f"Unexpected error: {e}")
    if debug:
      traceback.print_exc()
    sys.exit(1)


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.cfquery_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First time, no history yet

  readline.set_history_length(1000)

  completions = list_builtin_functions() + list_constants() + [":vars", ":help", "exit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def print_help() -> None:
  print("REPL Commands:")
  print("  :vars             - Show dataset variables")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Expressions:")
  print("  ${name}           - Dataset variable, converted to the result unit")
  print("  x = 1; x * 2      - Local names, statements separated by ';'")
  print(f"  Functions: {', '.join(list_builtin_functions())}")
  print(f"  Constants: {', '.join(list_constants())}")


def run_interactive_mode(query: Query, dataset: Dataset, unit: str = "",
                         debug: bool = False) -> None:
  """Read-evaluate-print loop over the given dataset"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if unit:
    print(f"Results in '{unit}'")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  while True:
    try:
      code = input("cfquery> ").strip()
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    if code == "exit":
      break
    if not code:
      continue

    if code == ":help":
      print_help()
      continue

    if code == ":vars":
      if len(dataset) == 0:
        print("  (no variables)")
      for name, variable in dataset.variables.items():
        print(f"  {name} [{variable.units}] = {format_result(variable.read())}")
      continue

    try:
      print(f"=> {format_result(query.evaluate(dataset, code, unit, debug))}")
    except QuerySyntaxError as e:
      print(f"Syntax error: {e}")
    except QueryError as e:
      print(f"Error: {e}")
    except Exception as e:
      print(f"Unexpected error: {e}")
      if debug:
        traceback.print_exc()
      else:
        print("  Hint: use --debug to see the traceback")


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for cfquery"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  try:
    dataset = build_dataset(args.var, args.attr)
    query = Query(args.units_file)
  except (ValueError, QueryError) as e:
    print(f"Error: {e}")
    sys.exit(1)

  if args.interactive:
    run_interactive_mode(query, dataset, args.unit, debug=args.debug)
    return

  if args.expression is None:
    arg_parser.print_help()
    return

  if args.tokens:
    try:
      print_tokens(args.expression)
    except QuerySyntaxError as e:
      print(f"Syntax error: {e}")
      sys.exit(1)
    return

  evaluate_expression(query, dataset, args.expression, args.unit, debug=args.debug)


if __name__ == "__main__":
  main()
