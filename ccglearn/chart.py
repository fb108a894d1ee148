"""
Weighted CKY chart parsing for CCG.

The chart is packed: each cell (a half-open token span) holds one
`ChartEntry` per distinct `(syntax, semantics)` signature, and every entry
records all the ways (`Step`s) in which it was built. Scores are log-linear:
the score of a step is the dot product of the model parameters with the
step's local features, plus the scores of its children.
"""

from collections import namedtuple, OrderedDict
import itertools
import logging
import time

from nltk.tree import Tree
import numpy as np

from ccglearn.combinator import DefaultRuleSet, TypeShiftingRuleSet
from ccglearn.features import HashVector


L = logging.getLogger(__name__)


class Step(namedtuple("Step", ["rule", "entry", "children", "features", "local_score"])):
  """
  One way of building a chart entry: either a lexical entry (`entry` set, no
  children) or a rule application over one or two child chart entries.
  """

  def score(self):
    return self.local_score + sum(child.viterbi_score for child in self.children)

  def log_inside(self):
    return self.local_score + sum(child.log_inside for child in self.children)


class ChartEntry(object):
  """
  All derivations of a single `(syntax, semantics)` category over a span.
  """

  def __init__(self, span, syntax, semantics, order, secondary_score=0.0):
    self.span = span
    self.syntax = syntax
    self.semantics = semantics
    self.order = order
    self.secondary_score = secondary_score

    self.steps = []
    self.finalized = False
    self.viterbi_score = -np.inf
    self.log_inside = -np.inf

    self._avg_max_features = None
    self._max_lexical_entries = None

  @property
  def category(self):
    return self.syntax, self.semantics

  def max_steps(self):
    return [step for step in self.steps if step.score() == self.viterbi_score]

  def average_max_features(self):
    """
    Feature vector of the maximal-scoring derivations of this entry, averaged
    at each node over the tied maximal steps. Cached; callers must not mutate
    the returned vector.
    """
    if self._avg_max_features is None:
      ret = HashVector()
      max_steps = self.max_steps()
      for step in max_steps:
        weight = 1.0 / len(max_steps)
        step.features.add_times_into(weight, ret)
        for child in step.children:
          child.average_max_features().add_times_into(weight, ret)
      self._avg_max_features = ret
    return self._avg_max_features

  def max_lexical_entries(self):
    if self._max_lexical_entries is None:
      ret = set()
      for step in self.max_steps():
        if step.entry is not None:
          ret.add(step.entry)
        for child in step.children:
          ret |= child.max_lexical_entries()
      self._max_lexical_entries = frozenset(ret)
    return self._max_lexical_entries

  def __str__(self):
    return "[%i,%i] %s%s : %.4f" % (self.span[0], self.span[1], self.syntax,
                                    " {%s}" % self.semantics if self.semantics is not None else "",
                                    self.viterbi_score)

  __repr__ = __str__


class Chart(object):
  """
  Triangular table of chart cells indexed by `(start, end)` spans.
  """

  def __init__(self, tokens):
    self._tokens = tuple(tokens)
    self._cells = {}
    self._order = itertools.count()

  def num_leaves(self):
    return len(self._tokens)

  def leaves(self):
    return self._tokens

  def select(self, span):
    """
    Return the entries of the cell for `span`, in insertion order.
    """
    cell = self._cells.get(span)
    return list(cell.values()) if cell is not None else []

  def add_step(self, span, syntax, semantics, step, secondary_score_fn=None):
    """
    Add a derivation step for category `(syntax, semantics)` over `span`,
    creating the chart entry if necessary.

    Returns:
      the `ChartEntry`
    """
    cell = self._cells.setdefault(span, OrderedDict())
    key = (syntax, semantics)
    entry = cell.get(key)
    if entry is None:
      secondary_score = 0.0
      if secondary_score_fn is not None:
        secondary_score = secondary_score_fn(semantics)
      entry = ChartEntry(span, syntax, semantics, next(self._order),
                         secondary_score=secondary_score)
      cell[key] = entry
    entry.steps.append(step)
    return entry

  def finalize(self, span):
    """
    Compute Viterbi and inside scores for every entry in the cell of `span`.
    Must be called once the cell is fully populated.
    """
    for entry in self.select(span):
      self._finalize_entry(entry, set())

  def _finalize_entry(self, entry, in_progress):
    """
    Entries are finalized depth-first in cell insertion order. On a unary
    cycle, the step leading back to an entry still being finalized is the one
    dropped, so the cycle is cut at the earliest-inserted entry on it.
    """
    if entry.finalized:
      return

    in_progress.add(entry)
    steps = []
    for step in entry.steps:
      cyclic = False
      for child in step.children:
        if child.finalized:
          continue
        if child in in_progress:
          # Unary cycle within the span.
          cyclic = True
          break
        self._finalize_entry(child, in_progress)
      if not cyclic:
        steps.append(step)
    in_progress.discard(entry)

    entry.steps = steps
    if steps:
      entry.viterbi_score = max(step.score() for step in steps)
      entry.log_inside = np.logaddexp.reduce([step.log_inside() for step in steps])
    entry.finalized = True

  def prune(self, span, beam_size=None, margin=None):
    """
    Prune the cell for `span`, keeping at most `beam_size` entries and
    dropping entries scoring more than `margin` below the best entry. Ties
    are broken by secondary score (higher first), then by insertion order.

    Returns:
      list of retained entries
    """
    cell = self._cells.get(span)
    if not cell:
      return []

    ranked = sorted((entry for entry in cell.values() if entry.steps),
                    key=lambda entry: (-entry.viterbi_score,
                                       -entry.secondary_score, entry.order))
    if margin is not None and ranked:
      threshold = ranked[0].viterbi_score - margin
      ranked = [entry for entry in ranked if entry.viterbi_score >= threshold]
    if beam_size is not None:
      ranked = ranked[:beam_size]

    keep = set(ranked)
    dropped = len(cell) - len(keep)
    if dropped:
      L.debug("Pruned %i entries from cell %s", dropped, span)
    self._cells[span] = OrderedDict((key, entry) for key, entry in cell.items()
                                    if entry in keep)
    return self.select(span)

  def parses(self, goal=None):
    """
    Return the entries spanning the full input whose syntax is compatible
    with `goal` (all full-span entries if `goal` is `None`).
    """
    roots = self.select((0, self.num_leaves()))
    if goal is None:
      return roots
    return [entry for entry in roots if entry.syntax.can_unify(goal) is not None]


class Parse(object):
  """
  A complete parse: a read-only view on a full-span chart entry.
  """

  def __init__(self, entry):
    self._entry = entry

  @property
  def syntax(self):
    return self._entry.syntax

  @property
  def semantics(self):
    return self._entry.semantics

  @property
  def category(self):
    return self._entry.category

  @property
  def score(self):
    return self._entry.viterbi_score

  @property
  def log_inside_score(self):
    """
    Log un-normalized inside score, marginalizing over all derivations of
    this parse's category.
    """
    return self._entry.log_inside

  def average_max_features(self):
    return self._entry.average_max_features().copy()

  def max_lexical_entries(self):
    return set(self._entry.max_lexical_entries())

  def tree(self):
    """
    Return an `nltk.tree.Tree` for one maximal-scoring derivation.
    """
    def inner(entry):
      label = "%s%s" % (entry.syntax, " {%s}" % entry.semantics
                        if entry.semantics is not None else "")
      step = entry.max_steps()[0]
      if step.entry is not None:
        return Tree(label, [step.entry.token()])
      return Tree("%s (%s)" % (label, step.rule), [inner(child) for child in step.children])

    return inner(self._entry)

  def __eq__(self, other):
    return isinstance(other, Parse) and self._entry is other._entry

  def __hash__(self):
    return id(self._entry)

  def __str__(self):
    return "%s%s [%.4f]" % (self.syntax, " : %s" % self.semantics
                            if self.semantics is not None else "", self.score)

  __repr__ = __str__


class ParserOutput(object):
  """
  Result of parsing a sentence: the complete parses, plus marginal queries
  over the packed chart.
  """

  def __init__(self, chart, roots, parsing_time):
    self.chart = chart
    self._roots = list(roots)
    self._parses = [Parse(root) for root in self._roots]
    self.parsing_time = parsing_time

  def all_parses(self):
    return list(self._parses)

  def best_parses(self):
    """
    Return all the complete parses tied at the maximum score.
    """
    if not self._parses:
      return []
    best = max(parse.score for parse in self._parses)
    return [parse for parse in self._parses if parse.score == best]

  def _filter_roots(self, filter_fn):
    if filter_fn is None:
      return list(self._roots)
    return [root for root in self._roots if filter_fn(root.semantics)]

  def log_norm(self, filter_fn=None):
    """
    Log of the total un-normalized mass of the complete parses whose
    semantics pass `filter_fn`. `-inf` if no parse passes.
    """
    roots = self._filter_roots(filter_fn)
    if not roots:
      return -np.inf
    return float(np.logaddexp.reduce([root.log_inside for root in roots]))

  def norm(self, filter_fn=None, offset=0.0):
    """
    Total un-normalized mass of the complete parses whose semantics pass
    `filter_fn`, scaled by `exp(-offset)`. Exactly 0.0 if no parse passes.
    """
    return float(sum(np.exp(root.log_inside - offset)
                     for root in self._filter_roots(filter_fn)))

  def expected_features(self, filter_fn=None, offset=0.0):
    """
    Un-normalized feature expectation over all derivations of the complete
    parses whose semantics pass `filter_fn`, scaled by `exp(-offset)`. Divide
    by `norm(filter_fn, offset)` to normalize. Passing
    `offset=log_norm(filter_fn)` keeps both finite for large scores.
    """
    roots = self._filter_roots(filter_fn)
    order = _topological_order(roots)

    log_outside = {entry: -np.inf for entry in order}
    for root in roots:
      log_outside[root] = 0.0

    ret = HashVector()
    for entry in order:
      outside = log_outside[entry]
      if outside == -np.inf:
        continue

      for step in entry.steps:
        step_mass = outside + step.log_inside() - offset
        step.features.add_times_into(np.exp(step_mass), ret)

        for i, child in enumerate(step.children):
          siblings = sum(sibling.log_inside
                         for j, sibling in enumerate(step.children) if j != i)
          log_outside[child] = np.logaddexp(log_outside[child],
                                            outside + step.local_score + siblings)

    return ret


def _topological_order(roots):
  """
  Order the entries reachable from `roots` such that every entry precedes its
  children.
  """
  visited = set()
  postorder = []

  def visit(entry):
    if entry in visited:
      return
    visited.add(entry)
    for step in entry.steps:
      for child in step.children:
        visit(child)
    postorder.append(entry)

  for root in roots:
    visit(root)
  return postorder[::-1]


class WeightedCCGChartParser(object):
  """
  CKY parser for weighted CCGs.

  The chart is filled by increasing span length. For each span, lexical
  entries covering exactly the span are added first, then every binary rule
  is applied at every split point, then every unary rule is applied (once) to
  each resulting entry. The cell is then scored and pruned before any longer
  span is considered.
  """

  def __init__(self, rules=None, unary_rules=None, beam_size=50,
               prune_margin=None, start=None):
    """
    Args:
      rules: Binary rules. Defaults to application and composition.
      unary_rules: Unary rules. Defaults to the adverbial and prepositional
        type-shifting rules.
      beam_size: Maximum number of entries retained per cell.
      prune_margin: If set, drop entries scoring more than this below the
        best entry of their cell.
      start: Goal category. Defaults to the start category of the model's
        lexicon.
    """
    self._rules = list(DefaultRuleSet if rules is None else rules)
    self._unary_rules = list(TypeShiftingRuleSet if unary_rules is None else unary_rules)
    self.beam_size = beam_size
    self.prune_margin = prune_margin
    self._start = start

  def parse(self, tokens, model, lexicon=None, beam_size=None,
            secondary_score_fn=None):
    """
    Args:
      tokens: list of string tokens
      model: `Model` or `DataItemModel` used to look up lexical entries and
        score features.
      lexicon: Optional additional `Lexicon` (e.g. generated entries) used
        together with the model lexicon for this parse only.
      beam_size: Overrides the parser's beam size for this parse.
      secondary_score_fn: Optional function `semantics -> float` breaking
        ties between equal-scoring entries during pruning.

    Returns:
      `ParserOutput`
    """
    start_time = time.time()
    tokens = tuple(tokens)
    beam_size = self.beam_size if beam_size is None else beam_size

    lexicons = [model.lexicon]
    if lexicon is not None:
      lexicons.append(lexicon)
    max_entry_length = max(lex.max_entry_length for lex in lexicons)

    chart = Chart(tokens)
    for length in range(1, len(tokens) + 1):
      for start in range(0, len(tokens) - length + 1):
        span = (start, start + length)
        if length <= max_entry_length:
          self._add_lexical_entries(chart, span, lexicons, model, secondary_score_fn)
        self._apply_binary_rules(chart, span, model, secondary_score_fn)
        self._apply_unary_rules(chart, span, model, secondary_score_fn)

        chart.finalize(span)
        chart.prune(span, beam_size=beam_size, margin=self.prune_margin)

    goal = self._start if self._start is not None else model.lexicon.start()
    roots = chart.parses(goal)
    parsing_time = time.time() - start_time
    L.debug("Parsed '%s' in %.4fs: %i complete parses", " ".join(tokens),
            parsing_time, len(roots))
    return ParserOutput(chart, roots, parsing_time)

  def _add_lexical_entries(self, chart, span, lexicons, model, secondary_score_fn):
    tokens = chart.leaves()[span[0]:span[1]]
    seen = set()
    for lexicon in lexicons:
      for entry in lexicon.get(tokens):
        if entry in seen:
          continue
        seen.add(entry)

        features = model.lexical_features(entry)
        step = Step(None, entry, (), features, model.score(features))
        chart.add_step(span, entry.categ(), entry.semantics(), step,
                       secondary_score_fn=secondary_score_fn)

  def _apply_binary_rules(self, chart, span, model, secondary_score_fn):
    start, end = span
    for mid in range(start + 1, end):
      for left in chart.select((start, mid)):
        for right in chart.select((mid, end)):
          for rule in self._rules:
            for syntax, semantics in rule.apply(left.category, right.category):
              self._add_rule_step(chart, span, rule, syntax, semantics,
                                  (left, right), model, secondary_score_fn)

  def _apply_unary_rules(self, chart, span, model, secondary_score_fn):
    for entry in chart.select(span):
      for rule in self._unary_rules:
        result = rule.apply(entry.category)
        if result is None:
          continue
        syntax, semantics = result
        self._add_rule_step(chart, span, rule, syntax, semantics, (entry,),
                            model, secondary_score_fn)

  def _add_rule_step(self, chart, span, rule, syntax, semantics, children,
                     model, secondary_score_fn):
    features = model.rule_features(rule, syntax, semantics)
    step = Step(rule, None, children, features, model.score(features))
    chart.add_step(span, syntax, semantics, step,
                   secondary_score_fn=secondary_score_fn)
