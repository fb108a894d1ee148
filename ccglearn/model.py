"""
Log-linear parsing model: a lexicon, feature sets and the shared parameter
vector `theta`.
"""

import logging

from ccglearn.features import HashVector


L = logging.getLogger(__name__)


class LexicalFeatureSet(object):
  """
  One indicator feature per lexical entry.
  """

  def __init__(self, name="LEX", initial_weight_fn=None):
    """
    Args:
      name: Feature set name, used as the first element of every key.
      initial_weight_fn: Optional function `entry -> float` used to
        initialize the weight of entries newly added to the model.
    """
    self.name = name
    self.initial_weight_fn = initial_weight_fn

  def key(self, entry):
    return (self.name, entry.token(), str(entry.categ()), str(entry.semantics()))

  def lexical_features(self, entry, features):
    features[self.key(entry)] += 1.0

  def rule_features(self, rule, syntax, semantics, features):
    pass

  def entry_added(self, entry, theta):
    if self.initial_weight_fn is not None:
      theta[self.key(entry)] = self.initial_weight_fn(entry)


class RuleFeatureSet(object):
  """
  One indicator feature per grammar rule name.
  """

  def __init__(self, name="RULE"):
    self.name = name

  def key(self, rule):
    return (self.name, rule.name)

  def lexical_features(self, entry, features):
    pass

  def rule_features(self, rule, syntax, semantics, features):
    features[self.key(rule)] += 1.0

  def entry_added(self, entry, theta):
    pass


class Model(object):
  """
  A weighted CCG. The parameter vector `theta` is shared by every parse made
  with the model and is mutated in place by the learners.
  """

  def __init__(self, lexicon, feature_sets=None, theta=None,
               frozen_feature_sets=()):
    """
    Args:
      lexicon: `Lexicon` of the model.
      feature_sets: List of feature sets. Defaults to one
        `LexicalFeatureSet` and one `RuleFeatureSet`.
      theta: Initial parameter vector (`HashVector`).
      frozen_feature_sets: Names of feature sets whose weights may not be
        updated.
    """
    self.lexicon = lexicon
    if feature_sets is None:
      feature_sets = [LexicalFeatureSet(), RuleFeatureSet()]
    self.feature_sets = list(feature_sets)
    self.theta = theta if theta is not None else HashVector()
    self.frozen_feature_sets = frozenset(frozen_feature_sets)

  def lexical_features(self, entry):
    features = HashVector()
    for feature_set in self.feature_sets:
      feature_set.lexical_features(entry, features)
    return features

  def rule_features(self, rule, syntax, semantics):
    features = HashVector()
    for feature_set in self.feature_sets:
      feature_set.rule_features(rule, syntax, semantics, features)
    return features

  def score(self, features):
    return self.theta.dot(features)

  def add_lex_entry(self, entry):
    """
    Add an entry to the model lexicon, initializing its features.

    Returns:
      `True` iff the entry is new to the lexicon.
    """
    if not self.lexicon.add(entry):
      return False

    L.debug("Added lexical entry %s", entry)
    for feature_set in self.feature_sets:
      feature_set.entry_added(entry, self.theta)
    return True

  def is_valid_weight_vector(self, update):
    """
    Check that every key of `update` belongs to a known, non-frozen feature
    set.
    """
    known = set(feature_set.name for feature_set in self.feature_sets)
    for key in update:
      name = key[0] if isinstance(key, tuple) and key else None
      if name not in known or name in self.frozen_feature_sets:
        L.error("Illegal update key: %r", key)
        return False
    return True

  def create_data_item_model(self, example):
    return DataItemModel(self, example)


class DataItemModel(object):
  """
  Per-example scoring view on a `Model`. Reads go straight through to the
  model's parameters; nothing is copied.
  """

  def __init__(self, model, example):
    self.model = model
    self.example = example

  @property
  def theta(self):
    return self.model.theta

  @property
  def lexicon(self):
    return self.model.lexicon

  def lexical_features(self, entry):
    return self.model.lexical_features(entry)

  def rule_features(self, rule, syntax, semantics):
    return self.model.rule_features(rule, syntax, semantics)

  def score(self, features):
    return self.model.score(features)

  def score_entry(self, entry):
    return self.score(self.lexical_features(entry))
