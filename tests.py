import io
import logging

import pytest

from lip import (
    INT_BITS, MAX_DEPTH,
    ArityMismatch, Atomic, EvalError, ListExpr, Number, Operator, ParseError,
    Reference, Tokenizer, TypeMismatch, UndefinedReference,
    evaluate, main, parse, preprocess, render, run, run_line, tokenize,
    wrap_int,
)


def e(source, env=None):
    """Shortcut for evaluating a single line in tests."""
    return evaluate(parse(source), {} if env is None else env)


def n(value):
    return Atomic(Number(value))


def r(name):
    return Atomic(Reference(name))


def test_preprocess():
    assert preprocess('(+ 1 (- 2 3))') == ' ( + 1  ( - 2 3 )  ) '
    assert preprocess('x') == 'x'


def test_tokenizer():
    source = '(+ (* 2 4)(- 3 x))'
    tokens = ['(', '+', '(', '*', '2', '4', ')', '(', '-', '3', 'x', ')', ')']
    assert tokenize(source) == tokens


def test_tokenizer_peek_does_not_consume():
    tokens = Tokenizer(preprocess('(define x 5)'))
    assert tokens.peek() == '('
    assert tokens.peek() == '('
    assert tokens.next() == '('
    assert tokens.next() == 'define'
    assert list(tokens) == ['x', '5', ')']
    assert tokens.peek() is None
    assert tokens.next() is None


def test_tokenizer_reads_one_token_ahead():
    tokens = Tokenizer(' 1\t(+\n 2) ')
    assert tokens.peek() == '1'
    assert next(tokens) == '1'
    assert tokens.peek() == '(+'
    assert list(tokens) == ['(+', '2)']
    with pytest.raises(StopIteration):
        next(tokens)


def test_operator_lookup():
    assert Operator.lookup('+') is Operator.ADD
    assert Operator.lookup('-') is Operator.SUB
    assert Operator.lookup('*') is Operator.MUL
    assert Operator.lookup('define') is Operator.DEFINE
    assert Operator.lookup('/') is None
    assert Operator.lookup('lambda') is None


def test_parser():
    assert parse('42') == n(42)
    assert parse('x') == r('x')
    assert parse('(+ 1 2)') == ListExpr(Operator.ADD, (n(1), n(2)))
    assert parse('(define x (* 2 y))') == ListExpr(Operator.DEFINE, (
        r('x'),
        ListExpr(Operator.MUL, (n(2), r('y'))),
    ))
    assert parse('(+ 1 )') == ListExpr(Operator.ADD, (n(1),))


@pytest.mark.parametrize("token,value", [
    ('7', 7),
    ('-7', -7),
    ('+7', 7),
    ('0x1f', 31),
    ('-0x10', -16),
    ('0o17', 15),
    ('0b101', 5),
    ('007', 7),
    ('1_000', 1000),
    ('0x_1f', 31),
    ('0X1F', 31),
])
def test_number_literals(token, value):
    assert parse(token) == n(value)


@pytest.mark.parametrize("token", [
    '-', 'define', 'x1', '0xg', '1.5', '1__0', '0b2', '_1', '\u0663', '1\u0663',
])
def test_non_numeric_atoms_are_references(token):
    assert parse(token) == r(token)


def test_parse_ignores_trailing_tokens_unless_strict():
    assert parse('(+ 1 2) 3') == ListExpr(Operator.ADD, (n(1), n(2)))
    with pytest.raises(ParseError) as excinfo:
        parse('(+ 1 2) 3', strict=True)
    assert excinfo.value.kind == ParseError.TRAILING_TOKENS
    assert excinfo.value.token == '3'


@pytest.mark.parametrize("source,kind", [
    ('', ParseError.UNEXPECTED_END),
    ('(', ParseError.UNEXPECTED_END),
    ('(+ 1', ParseError.UNEXPECTED_END),
    ('(+ 1 (* 2', ParseError.UNEXPECTED_END),
    (')', ParseError.UNEXPECTED_PAREN),
    ('(foo 1 2)', ParseError.UNKNOWN_OPERATOR),
    ('((+ 1) 2)', ParseError.UNKNOWN_OPERATOR),
    ('()', ParseError.UNKNOWN_OPERATOR),
    ('(+)', ParseError.EMPTY_LIST),
    ('(* 2 (-))', ParseError.EMPTY_LIST),
])
def test_parse_errors(source, kind):
    with pytest.raises(ParseError) as excinfo:
        parse(source)
    assert excinfo.value.kind == kind


def test_parse_depth_is_bounded():
    deep = '(+ ' * (MAX_DEPTH + 10) + '1' + ')' * (MAX_DEPTH + 10)
    with pytest.raises(ParseError) as excinfo:
        parse(deep)
    assert excinfo.value.kind == ParseError.TOO_DEEP

    shallow = '(+ ' * 50 + '1' + ')' * 50
    assert e(shallow) == Number(1)


arithmetic_tests = [
    ("(+ 1 2 3)", 6),
    ("(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6))", 57),
    ("(- 10 7)", 3),
    ("(- 10 7 2)", 1),
    ("(* 2 3 4)", 24),
    ("(+ 1 )", 1),
    ("(- 5)", 5),
    ("(* 5)", 5),
    ("(- 0x10 0b11)", 13),
    ("(* -3 (- 2 9))", 21),
    ("17", 17),
]


@pytest.mark.parametrize("code,result", arithmetic_tests)
def test_eval(code, result):
    assert e(code) == Number(result)


@pytest.mark.parametrize("code,result", arithmetic_tests)
def test_eval_is_deterministic(code, result):
    expr = parse(code)
    assert evaluate(expr, {}) == evaluate(expr, {}) == Number(result)


def test_overflow_wraps():
    assert INT_BITS == 32
    assert e('(+ 2147483647 1)') == Number(-2147483648)
    assert e('(- -2147483648 1)') == Number(2147483647)
    assert e('(* 65536 65536)') == Number(0)
    assert e('(* 2147483647 2)') == Number(-2)
    assert parse('4294967295') == n(-1)


def test_long_literals_wrap():
    ones = '1' * 5000
    value = wrap_int((10 ** 5000 - 1) // 9)
    assert parse(ones) == n(value)
    assert parse('-' + ones) == n(wrap_int(-value))
    assert parse('0x' + 'f' * 2000) == n(-1)
    assert e('(+ %s 1)' % ones) == Number(wrap_int(value + 1))
    assert run_line('(* %s 0)' % ones) == '(* %d 0) = 0' % value


def test_unicode_digits_are_not_numbers():
    assert run_line('(define ٣ 1)') == '(define ٣ 1) = ٣'
    with pytest.raises(UndefinedReference):
        run_line('(+ ٣ 1)')


def test_wrap_int():
    assert wrap_int(0) == 0
    assert wrap_int(2 ** 31 - 1) == 2 ** 31 - 1
    assert wrap_int(2 ** 31) == -2 ** 31
    assert wrap_int(-2 ** 31 - 1) == 2 ** 31 - 1


def test_define():
    env = {}
    assert e('(define x 5)', env) == Reference('x')
    assert env == {'x': Number(5)}
    assert e('x', env) == Number(5)
    assert e('(+ x 1)', env) == Number(6)

    with pytest.raises(UndefinedReference) as excinfo:
        e('x', {})
    assert excinfo.value.name == 'x'


def test_define_overwrites_and_evaluates_value():
    env = {'x': Number(1)}
    assert e('(define x (+ x 10))', env) == Reference('x')
    assert env['x'] == Number(11)


def test_define_binds_reference_values():
    env = {'x': Number(3)}
    e('(define y (define z x))', env)
    assert env == {'x': Number(3), 'z': Number(3), 'y': Reference('z')}


def test_undefined_reference():
    with pytest.raises(UndefinedReference) as excinfo:
        e('(+ 1 y)')
    assert excinfo.value.name == 'y'
    assert isinstance(excinfo.value, EvalError)


@pytest.mark.parametrize("code,error", [
    ('(define x)', ArityMismatch),
    ('(define x 1 2)', ArityMismatch),
    ('(define 5 1)', TypeMismatch),
    ('(define (+ 1 2) 1)', TypeMismatch),
    ('(+ 1 (define x 2))', TypeMismatch),
    ('(* (define x 2) 3)', TypeMismatch),
])
def test_eval_errors(code, error):
    with pytest.raises(error):
        e(code)


@pytest.mark.parametrize("code,message", [
    ('(define x)', 'ArityMismatch: define takes 2 operands, got 1'),
    ('(define 5 1)', 'TypeMismatch: define needs a name, got 5'),
    ('(+ 1 (define x 2))', 'TypeMismatch: Expected a number, got x'),
    ('(+ 1 y)', "UndefinedReference: 'y'"),
])
def test_eval_error_messages_start_with_kind(code, message):
    with pytest.raises(EvalError) as excinfo:
        e(code)
    assert str(excinfo.value) == message


def test_failed_define_does_not_bind():
    env = {}
    with pytest.raises(UndefinedReference):
        e('(define x y)', env)
    assert env == {}


def test_render():
    expr = parse('(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6))')
    assert render(expr, {}) == '(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6))'
    assert render(parse('(+ 0x10 x)'), {}) == '(+ 16 x)'


def test_render_resolves_references_without_side_effects():
    expr = parse('(define y (+ x 1))')
    env = {'x': Number(4)}
    assert render(expr, env) == '(define y (+ 4 1))'
    assert env == {'x': Number(4)}
    assert render(parse('(+ z 1)'), {'z': Reference('x')}) == '(+ x 1)'


@pytest.mark.parametrize("line,output", [
    ("(+ 1 2 3)", "(+ 1 2 3) = 6"),
    ("(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6))",
     "(+ (* 3 (+ (* 2 4) (+ 3 5))) (+ (- 10 7) 6)) = 57"),
    ("(define x (* 2 3))", "(define x (* 2 3)) = x"),
    ("  (-   10\t7)\n", "(- 10 7) = 3"),
])
def test_run_line(line, output):
    assert run_line(line) == output


def test_run_line_rejects_trailing_tokens():
    with pytest.raises(ParseError):
        run_line('(+ 1 2) (+ 3 4)')


def test_run_reports_errors_and_continues():
    lines = io.StringIO(
        "(+ 1 2 3)\n"
        "(define x 5)\n"
        "(+ x 1)\n"
        "\n"
        "(\n"
        "(* 2 3 4)\n"
    )
    out = io.StringIO()
    failures = run(lines, out)
    assert failures == 2
    assert out.getvalue().splitlines() == [
        "(+ 1 2 3) = 6",
        "(define x 5) = x",
        "error: UndefinedReference: 'x'",
        "error: UnexpectedEnd",
        "(* 2 3 4) = 24",
    ]


def test_main_reads_stdin(monkeypatch, capsys, caplog):
    monkeypatch.setattr('sys.stdin', io.StringIO("(+ 1 2)\n(+ 1 y)\n(- 7 2)\n"))
    assert main() == 0
    assert capsys.readouterr().out.splitlines() == [
        "(+ 1 2) = 3",
        "error: UndefinedReference: 'y'",
        "(- 7 2) = 5",
    ]
    warnings = [rec for rec in caplog.records if rec.levelno >= logging.WARNING]
    assert len(warnings) == 1
    assert warnings[0].name == 'lip'
    assert "UndefinedReference: 'y'" in warnings[0].getMessage()
