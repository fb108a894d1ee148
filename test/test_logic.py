from nltk.sem.logic import Expression

from ccglearn.lexicon import Lexicon
from ccglearn.logic import *


def _make_categories():
  lex = Lexicon.fromstring(r"""
  :- S, N
  """)
  return lex.parse_category("N"), lex.parse_category("N/N")


def test_canonicalize_alpha_equivalent():
  a = canonicalize(Expression.fromstring(r"\x.foo(x)"))
  b = canonicalize(Expression.fromstring(r"\y.foo(y)"))
  assert a == b
  assert str(a) == str(b)
  assert hash(a) == hash(b)


def test_canonicalize_avoids_free_variables():
  expr = canonicalize(Expression.fromstring(r"\y.foo(y,x1)"))
  assert expr == Expression.fromstring(r"\z.foo(z,x1)")
  assert expr.free() == Expression.fromstring("x1").free()


def test_canonicalize_nested():
  a = canonicalize(Expression.fromstring(r"\P x.(P(x) & exists y.bar(x,y))"))
  b = canonicalize(Expression.fromstring(r"\Q z.(Q(z) & exists w.bar(z,w))"))
  assert str(a) == str(b)


def test_read_semantics_simplifies():
  expr = read_semantics(r"(\x.foo(x))(bar)")
  assert expr == Expression.fromstring("foo(bar)")


def test_consistent_with_syntax():
  n, n_n = _make_categories()
  assert consistent_with_syntax(n, read_semantics("foo(bar)"))
  assert consistent_with_syntax(n_n, read_semantics(r"\x.x"))
  assert consistent_with_syntax(n_n, None)
  assert not consistent_with_syntax(n_n, read_semantics("foo(bar)"))


def test_apply_semantics():
  result = apply_semantics(read_semantics(r"\x.foo(x)"), read_semantics("bar"))
  assert result == Expression.fromstring("foo(bar)")


def test_apply_semantics_non_function():
  assert apply_semantics(read_semantics("foo(bar)"), read_semantics("baz")) is None
  assert apply_semantics(None, read_semantics("baz")) is None


def test_compose_semantics():
  result = compose_semantics(read_semantics(r"\x.foo(x)"),
                             read_semantics(r"\y.bar(y)"))
  assert result == read_semantics(r"\z.foo(bar(z))")


def test_compose_semantics_requires_lambda_argument():
  assert compose_semantics(read_semantics(r"\x.foo(x)"), read_semantics("bar")) is None


def test_type_raise_semantics():
  raised = type_raise_semantics(read_semantics("john"))
  assert raised == read_semantics(r"\F.F(john)")
  assert apply_semantics(raised, read_semantics(r"\x.sleep(x)")) \
      == Expression.fromstring("sleep(john)")


def test_conjoin_modifier_semantics():
  shifted = conjoin_modifier_semantics(read_semantics(r"\x.red(x)"))
  assert shifted == read_semantics(r"\F x.(F(x) & red(x))")
  assert conjoin_modifier_semantics(read_semantics("red")) is None


def test_listify():
  @listify
  def gen():
    yield 1
    yield 2

  assert gen() == [1, 2]
