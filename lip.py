"""Line-oriented interpreter for prefix integer arithmetic.

Every input line holds one expression such as ``(+ 1 (* 2 3))`` or
``(define x 5)``. A line is parsed into a tree, evaluated against a fresh
environment and reported as the rendered tree followed by the result.

>>> run_line("(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6))")
'(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6)) = 57'

"""
import enum
import logging
import re
import sys
from dataclasses import dataclass
from operator import add, mul, sub


logger = logging.getLogger(__name__)

MAX_DEPTH = 256
INT_BITS = 32


def wrap_int(number):
    """Wrap an integer into the signed INT_BITS range (two's complement)."""
    modulus = 1 << INT_BITS
    half = modulus >> 1
    return (number + half) % modulus - half


# Errors

class LipError(Exception):
    """Base class for everything that can go wrong on a single line."""


class ParseError(LipError):
    """The line is not a well-formed expression."""
    UNEXPECTED_END = 'UnexpectedEnd'
    UNEXPECTED_PAREN = 'UnexpectedParen'
    UNKNOWN_OPERATOR = 'UnknownOperator'
    EMPTY_LIST = 'EmptyList'
    TOO_DEEP = 'TooDeep'
    TRAILING_TOKENS = 'TrailingTokens'

    def __init__(self, kind, token=None):
        self.kind = kind
        self.token = token
        message = kind if token is None else '%s: %r' % (kind, token)
        super().__init__(message)


class EvalError(LipError):
    """Evaluation failure; the message is prefixed with the error kind."""

    def __init__(self, message):
        super().__init__('%s: %s' % (type(self).__name__, message))


class UndefinedReference(EvalError):
    def __init__(self, name):
        self.name = name
        super().__init__(repr(name))


class TypeMismatch(EvalError):
    pass


class ArityMismatch(EvalError):
    pass


# Data model

class Operator(enum.Enum):
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DEFINE = 'define'

    @classmethod
    def lookup(cls, keyword):
        """Return the operator spelled by ``keyword`` or None."""
        try:
            return cls(keyword)
        except ValueError:
            return None


@dataclass(frozen=True)
class Number:
    value: int

    def __str__(self):
        return str(self.value)


@dataclass(frozen=True)
class Reference:
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class Atomic:
    value: object  # Number or Reference


@dataclass(frozen=True)
class ListExpr:
    operator: Operator
    operands: tuple


# Tokenizer

def preprocess(line):
    """Pad every paren with spaces so that it splits off as its own token."""
    return line.replace('(', ' ( ').replace(')', ' ) ')


class Tokenizer:
    """Forward-only token stream with one token of lookahead."""

    def __init__(self, text):
        self._matches = re.finditer(r'\S+', text)
        self._lookahead = self._read()

    def _read(self):
        match = next(self._matches, None)
        return match.group() if match else None

    def peek(self):
        return self._lookahead

    def next(self):
        token = self._lookahead
        if token is not None:
            self._lookahead = self._read()
        return token

    def __iter__(self):
        return self

    def __next__(self):
        token = self.next()
        if token is None:
            raise StopIteration
        return token


def tokenize(source):
    """Tokenize a single line of source. """
    return list(Tokenizer(preprocess(source)))


# Parser

NUMBER = re.compile(r"""
    (?P<sign>[+-]?)
    (?:
        0[xX](?P<hex>(?:_?[0-9a-fA-F])+)
      | 0[oO](?P<oct>(?:_?[0-7])+)
      | 0[bB](?P<bin>(?:_?[01])+)
      | (?P<dec>[0-9](?:_?[0-9])*)
    )
""", re.VERBOSE | re.ASCII)

DIGIT_CHUNK = 1000


def parse_decimal(digits):
    """Wrapped int from decimal digits, read in chunks under the int() limit."""
    modulus = 1 << INT_BITS
    number = 0
    for i in range(0, len(digits), DIGIT_CHUNK):
        chunk = digits[i:i + DIGIT_CHUNK]
        number = (number * 10 ** len(chunk) + int(chunk)) % modulus
    return number


def parse_atom(token):
    """ASCII integer literal (decimal, 0x, 0o, 0b) or a reference."""
    match = NUMBER.fullmatch(token)
    if match is None:
        return Atomic(Reference(token))
    if match.group('dec') is not None:
        number = parse_decimal(match.group('dec').replace('_', ''))
    else:
        # power-of-two bases are not subject to the int() digit limit
        number = int(token.lstrip('+-'), 0)
    if match.group('sign') == '-':
        number = -number
    return Atomic(Number(wrap_int(number)))


def read_expression(tokens, depth=0):
    """Read one expression from the tokenizer, consuming exactly its tokens."""
    if depth > MAX_DEPTH:
        raise ParseError(ParseError.TOO_DEEP)

    token = tokens.next()
    if token is None:
        raise ParseError(ParseError.UNEXPECTED_END)
    if token == ')':
        raise ParseError(ParseError.UNEXPECTED_PAREN, token)
    if token != '(':
        return parse_atom(token)

    keyword = tokens.peek()
    if keyword is None:
        raise ParseError(ParseError.UNEXPECTED_END)
    operator = Operator.lookup(keyword)
    if operator is None:
        raise ParseError(ParseError.UNKNOWN_OPERATOR, keyword)
    tokens.next()

    operands = []
    while tokens.peek() != ')':
        if tokens.peek() is None:
            raise ParseError(ParseError.UNEXPECTED_END)
        operands.append(read_expression(tokens, depth + 1))
    tokens.next()

    if not operands:
        raise ParseError(ParseError.EMPTY_LIST, keyword)
    return ListExpr(operator, tuple(operands))


def parse(line, strict=False):
    """Parse the first expression of a line.

    Tokens after a complete expression are ignored unless ``strict`` is set,
    in which case they raise ParseError(TrailingTokens).
    """
    tokens = Tokenizer(preprocess(line))
    expr = read_expression(tokens)
    if strict and tokens.peek() is not None:
        raise ParseError(ParseError.TRAILING_TOKENS, tokens.peek())
    logger.debug('Parsed %r into %r', line, expr)
    return expr


# Evaluator

ARITHMETIC = {
    Operator.ADD: add,
    Operator.SUB: sub,
    Operator.MUL: mul,
}


def evaluate(expr, env):
    """Evaluate an expression tree, binding names in ``env`` via define."""
    if isinstance(expr, Atomic):
        value = expr.value
        if isinstance(value, Number):
            return value
        if isinstance(value, Reference):
            try:
                return env[value.name]
            except KeyError:
                raise UndefinedReference(value.name) from None
        raise TypeError('Bad atom: %r' % (value,))

    if isinstance(expr, ListExpr):
        if expr.operator is Operator.DEFINE:
            return define(expr.operands, env)
        return fold(ARITHMETIC[expr.operator], expr.operands, env)

    raise TypeError('Bad expression: %r' % (expr,))


def evaluate_number(expr, env):
    value = evaluate(expr, env)
    if not isinstance(value, Number):
        raise TypeMismatch('Expected a number, got %s' % value)
    return value.value


def fold(combine, operands, env):
    """Left fold over the operands, starting from the first one."""
    first, *rest = operands
    acc = evaluate_number(first, env)
    for operand in rest:
        acc = wrap_int(combine(acc, evaluate_number(operand, env)))
    return Number(acc)


def define(operands, env):
    if len(operands) != 2:
        raise ArityMismatch('define takes 2 operands, got %d' % len(operands))
    target, value_expr = operands
    if not (isinstance(target, Atomic) and isinstance(target.value, Reference)):
        raise TypeMismatch('define needs a name, got %s' % render(target, {}))
    name = target.value.name
    env[name] = evaluate(value_expr, env)
    return Reference(name)


# Rendering

def render(expr, env):
    """Render a tree, showing references by their bound value when known.

    Names in the binding position of define are always shown as names.
    Never modifies ``env``.
    """
    if isinstance(expr, Atomic):
        return render_value(expr.value, env)
    if isinstance(expr, ListExpr):
        parts = [expr.operator.value]
        operands = expr.operands
        if expr.operator is Operator.DEFINE and is_reference(operands[0]):
            parts.append(operands[0].value.name)
            operands = operands[1:]
        parts.extend(render(operand, env) for operand in operands)
        return '(%s)' % ' '.join(parts)
    raise TypeError('Bad expression: %r' % (expr,))


def render_value(value, env):
    if isinstance(value, Reference) and value.name in env:
        return str(env[value.name])
    return str(value)


def is_reference(expr):
    return isinstance(expr, Atomic) and isinstance(expr.value, Reference)


# Line driver

def run_line(line):
    """Parse and evaluate one line in its own environment."""
    expr = parse(line, strict=True)
    env = {}
    result = evaluate(expr, env)
    logger.debug('%r evaluated to %r with env %r', line, result, env)
    return '%s = %s' % (render(expr, env), result)


def run(lines, out):
    """Evaluate every non-blank line, writing one output line for each.

    Failed lines are reported as ``error: ...`` and do not stop the loop.
    Return the number of failed lines.
    """
    failures = 0
    for line in lines:
        if not line.strip():
            continue
        try:
            output = run_line(line)
        except LipError as e:
            logger.warning('Failed line %r: %s', line.rstrip('\n'), e)
            failures += 1
            output = 'error: %s' % e
        out.write(output + '\n')
    return failures


def main():
    logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')
    run(sys.stdin, sys.stdout)
    return 0


if __name__ == '__main__':
    sys.exit(main())
