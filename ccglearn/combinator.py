"""
CCG grammar rules operating on `(syntax, semantics)` pairs.

Binary rules wrap the directed combinators of `nltk.ccg.combinator` for the
syntactic half and compute the attached logical form with
`ccglearn.logic`. Unary rules (type raising and type shifting) map a single
category to at most one new category.

Rules are stateless; two rule instances are equal iff they have the same
name, so that model features can be attached per rule name.
"""

from nltk.ccg import combinator as ncombinator
from nltk.ccg.api import Direction, FunctionalCategory, PrimitiveCategory

from ccglearn.logic import apply_semantics, compose_semantics, \
    conjoin_modifier_semantics, consistent_with_syntax, listify, \
    type_raise_semantics


FORWARD = Direction("/", [])
BACKWARD = Direction("\\", [])


class Rule(object):
  """
  Base class for named grammar rules.
  """

  def __init__(self, name):
    self.name = name

  def __eq__(self, other):
    return isinstance(other, Rule) and self.name == other.name

  def __ne__(self, other):
    return not self == other

  def __hash__(self):
    return hash(self.name)

  def __str__(self):
    return self.name

  __repr__ = __str__


class BinaryRule(Rule):
  """
  A binary rule built on an `nltk` directed combinator.

  Subclasses define how the semantics of the two children are combined.
  """

  def __init__(self, name, combinator, backward=False):
    super().__init__(name)
    self._combinator = combinator
    # For backward rules the functor is the right child.
    self._backward = backward

  def combine_semantics(self, function, argument):
    raise NotImplementedError()

  @listify
  def apply(self, left, right):
    """
    Combine two adjacent categories.

    Args:
      left: `(syntax, semantics)` pair for the left child
      right: `(syntax, semantics)` pair for the right child

    Returns:
      list of `(syntax, semantics)` results (possibly empty)
    """
    left_syn, left_sem = left
    right_syn, right_sem = right
    if not self._combinator.can_combine(left_syn, right_syn):
      return

    if self._backward:
      function, argument = right_sem, left_sem
    else:
      function, argument = left_sem, right_sem

    if function is None and argument is None:
      # Syntax-only parsing.
      semantics = None
    else:
      semantics = self.combine_semantics(function, argument)
      if semantics is None:
        return

    for syntax in self._combinator.combine(left_syn, right_syn):
      if consistent_with_syntax(syntax, semantics):
        yield syntax, semantics


class ApplicationRule(BinaryRule):
  r"""
  Function application:

      X/Y : f    Y : a   =>   X : f(a)      (>)
      Y : a    X\Y : f   =>   X : f(a)      (<)
  """

  def combine_semantics(self, function, argument):
    return apply_semantics(function, argument)


class CompositionRule(BinaryRule):
  r"""
  Harmonic function composition:

      X/Y : f    Y/Z : g   =>   X/Z : \x.f(g(x))      (>B)
      Y\Z : g    X\Y : f   =>   X\Z : \x.f(g(x))      (<B)
  """

  def combine_semantics(self, function, argument):
    return compose_semantics(function, argument)


class UnaryRule(Rule):
  """
  A unary rule maps a single `(syntax, semantics)` pair to a new pair, or to
  `None` if the rule does not apply.
  """

  def apply(self, category):
    raise NotImplementedError()


class TypeShiftingRule(UnaryRule):
  """
  Shift a primitive category `source` to the category `target`, raising its
  semantics into a modifier which threads its argument through the modified
  constituent.
  """

  def __init__(self, name, source, target):
    super().__init__(name)
    if isinstance(source, str):
      source = PrimitiveCategory(source)
    self.source = source
    self.target = target

  def apply(self, category):
    syntax, semantics = category
    if not (syntax.is_primitive() and syntax.categ() == self.source.categ()):
      return None

    if semantics is None:
      return self.target, None

    raised = conjoin_modifier_semantics(semantics)
    if raised is None:
      return None
    return self.target, raised


class AdverbialTypeShifting(TypeShiftingRule):
  r"""
  AP => S\S
  """

  def __init__(self, name="shift_ap"):
    super().__init__(name, "AP", FunctionalCategory(PrimitiveCategory("S"),
                                                    PrimitiveCategory("S"),
                                                    BACKWARD))


class PrepositionTypeShifting(TypeShiftingRule):
  r"""
  PP => N\N
  """

  def __init__(self, name="shift_pp"):
    super().__init__(name, "PP", FunctionalCategory(PrimitiveCategory("N"),
                                                    PrimitiveCategory("N"),
                                                    BACKWARD))


class TypeRaisingRule(UnaryRule):
  r"""
  Type raising of primitive categories to a fixed result `T`:

      X : a   =>   T/(T\X) : \F.F(a)      (forward)
      X : a   =>   T\(T/X) : \F.F(a)      (backward)

  Only categories listed in `sources` (all primitives if empty) are raised.
  """

  def __init__(self, name, result, sources=(), backward=False):
    super().__init__(name)
    if isinstance(result, str):
      result = PrimitiveCategory(result)
    self.result = result
    self.sources = frozenset(sources)
    self.backward = backward

  def apply(self, category):
    syntax, semantics = category
    if not syntax.is_primitive():
      return None
    if self.sources and syntax.categ() not in self.sources:
      return None

    if self.backward:
      raised = FunctionalCategory(self.result,
                                  FunctionalCategory(self.result, syntax, FORWARD),
                                  BACKWARD)
    else:
      raised = FunctionalCategory(self.result,
                                  FunctionalCategory(self.result, syntax, BACKWARD),
                                  FORWARD)
    return raised, type_raise_semantics(semantics)


ForwardApplication = ApplicationRule(">", ncombinator.ForwardApplication)
BackwardApplication = ApplicationRule("<", ncombinator.BackwardApplication,
                                      backward=True)
ForwardComposition = CompositionRule(">B", ncombinator.ForwardComposition)
BackwardComposition = CompositionRule("<B", ncombinator.BackwardComposition,
                                      backward=True)

# Common sets of rules.
ApplicationRuleSet = [ForwardApplication, BackwardApplication]
CompositionRuleSet = [ForwardComposition, BackwardComposition]
DefaultRuleSet = ApplicationRuleSet + CompositionRuleSet

TypeShiftingRuleSet = [AdverbialTypeShifting(), PrepositionTypeShifting()]
