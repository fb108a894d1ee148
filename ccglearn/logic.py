# -*- coding: utf-8
"""
Functions for dealing with the logical language attached to CCG categories.

Logical forms are `nltk.sem.logic` expressions. All expressions produced by
this module are simplified (beta-reduced) and have their bound variables
renamed canonically, so that alpha-equivalent forms share both `==` and
`hash`.
"""

import functools
import itertools

from nltk.sem import logic as l


def listify(fn=None, wrapper=list):
  """
  A decorator which wraps a function's return value in ``list(...)``.

  Useful when an algorithm can be expressed more cleanly as a generator but
  the function should return an list.
  """
  def listify_return(fn):
    @functools.wraps(fn)
    def listify_helper(*args, **kw):
      return wrapper(fn(*args, **kw))
    return listify_helper
  if fn is None:
    return listify_return
  return listify_return(fn)


def canonicalize(expr):
  """
  Rename every bound variable of `expr` to a canonical name determined only by
  its binding position (`x1`, `x2`, ... for individuals, `F1`, ... for
  functions, `e1`, ... for events).
  """
  if expr is None:
    return None

  free = expr.free()
  counter = itertools.count(1)

  def fresh(var):
    if l.is_indvar(var.name):
      prefix = "x"
    elif l.is_funcvar(var.name):
      prefix = "F"
    elif l.is_eventvar(var.name):
      prefix = "e"
    else:
      return var

    while True:
      new_var = l.Variable("%s%i" % (prefix, next(counter)))
      if new_var not in free:
        return new_var

  def inner(node):
    if isinstance(node, l.VariableBinderExpression):
      node = node.alpha_convert(fresh(node.variable))
      return node.__class__(node.variable, inner(node.term))
    elif isinstance(node, l.AbstractVariableExpression):
      return node
    return node.visit_structured(inner, node.__class__)

  return inner(expr)


def read_semantics(expr_str):
  """
  Parse, simplify and canonicalize a logical form string.
  """
  return canonicalize(l.Expression.fromstring(expr_str).simplify())


def is_applicable(expr):
  """
  Whether `expr` may stand in function position of an application.
  """
  return isinstance(expr, (l.LambdaExpression, l.ConstantExpression,
                           l.FunctionVariableExpression))


def consistent_with_syntax(syntax, semantics):
  """
  Function categories must carry function-typed semantics. Categories without
  semantics (syntax-only parsing) are always consistent.
  """
  if semantics is None or not syntax.is_function():
    return True
  return is_applicable(semantics)


def _bound_safe_variable(pattern, *exprs):
  ignore = set()
  for expr in exprs:
    ignore |= expr.free()
  return l.unique_variable(pattern=pattern, ignore=ignore)


def _reduce(expr):
  try:
    return canonicalize(expr.simplify())
  except (ValueError, TypeError):
    # nltk refuses beta-reductions which blow up in size.
    return None


def apply_semantics(function, argument):
  """
  Beta-reduce `function(argument)`. Returns `None` if the function cannot be
  applied.
  """
  if function is None or argument is None:
    return None
  if not is_applicable(function):
    return None
  return _reduce(l.ApplicationExpression(function, argument))


def compose_semantics(function, argument):
  r"""
  Compose two functions: `\x.function(argument(x))`. Returns `None` unless
  both are functions and `argument` is a lambda expression.
  """
  if function is None or argument is None:
    return None
  if not is_applicable(function) or not isinstance(argument, l.LambdaExpression):
    return None

  var = _bound_safe_variable(argument.variable, function, argument)
  inner = l.ApplicationExpression(argument, l.VariableExpression(var))
  return _reduce(l.LambdaExpression(var, l.ApplicationExpression(function, inner)))


def type_raise_semantics(semantics):
  r"""
  Pure type-raising: `x => \F.F(x)`.
  """
  if semantics is None:
    return None
  var = _bound_safe_variable(l.Variable("F"), semantics)
  return _reduce(l.LambdaExpression(
      var, l.ApplicationExpression(l.VariableExpression(var), semantics)))


def conjoin_modifier_semantics(semantics):
  r"""
  Raise a one-place predicate into a modifier which threads its argument
  through the modified function:

      \x.p(x)   ==>   \F x.(F(x) & p(x))

  Returns `None` if `semantics` is not a one-place lambda expression.
  """
  if not isinstance(semantics, l.LambdaExpression):
    return None

  fn_var = _bound_safe_variable(l.Variable("F"), semantics)
  arg_var = _bound_safe_variable(semantics.variable, semantics)
  arg = l.VariableExpression(arg_var)
  body = l.AndExpression(
      l.ApplicationExpression(l.VariableExpression(fn_var), arg),
      l.ApplicationExpression(semantics, arg))
  return _reduce(l.LambdaExpression(fn_var, l.LambdaExpression(arg_var, body)))
