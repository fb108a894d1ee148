import numpy as np
import pytest

from nltk.sem.logic import Expression

from ccglearn.chart import WeightedCCGChartParser
from ccglearn.data import Example, LabeledExample, StubValidator
from ccglearn.learner import BadUpdateError
from ccglearn.lexicon import GENERATED_ORIGIN, Lexicon, LexicalEntry
from ccglearn.model import Model
from ccglearn.stocgrad import *


DOG = Expression.fromstring("dog")
CAT = Expression.fromstring("cat")


def _make_model(with_nouns=True):
  lex_str = r"""
  :- N
  the => N/N {\x.x}
  """
  if with_nouns:
    lex_str += r"""
    dog => N {dog}
    dog => N {cat}
    """
  return Model(Lexicon.fromstring(lex_str, include_semantics=True))


def _lex_key(model, semantics):
  entry, = [entry for entry in model.lexicon.get("dog") if entry.semantics() == semantics]
  return next(iter(model.lexical_features(entry).keys()))


def _make_learner(label=DOG, config=None, **kwargs):
  config = config or StocGradConfig(num_iterations=1)
  examples = [LabeledExample("the dog", label)]
  return ValidationStocGrad(examples, WeightedCCGChartParser(), config=config, **kwargs)


def test_config_defaults():
  config = StocGradConfig()
  assert config.num_iterations == 4
  assert config.alpha0 == 0.1
  assert config.c == 0.0001
  assert config.lexicon_generation_beam_size == 20
  assert not config.lexicon_learning


def test_learning_rate_decay():
  learner = _make_learner(config=StocGradConfig(alpha0=1.0, c=1.0))
  assert learner.learning_rate == 1.0
  learner.step_counter = 3
  assert learner.learning_rate == 0.25


def test_update():
  model = _make_model()
  learner = _make_learner()
  stats = learner.train(model)

  # E[f | valid] - E[f] = dog - (dog + cat) / 2, scaled by alpha0.
  assert model.theta[_lex_key(model, DOG)] == pytest.approx(0.05)
  assert model.theta[_lex_key(model, CAT)] == pytest.approx(-0.05)
  assert model.theta[("RULE", ">")] == 0.0
  assert learner.step_counter == 1
  assert stats["triggered_update"] == 1
  assert stats["has_valid_parse"] == 1


def test_update_large_scores():
  """
  Scores far beyond the range of `exp` still give a finite update.
  """
  model = _make_model()
  model.theta[_lex_key(model, DOG)] = 800.0
  model.theta[_lex_key(model, CAT)] = 799.0
  learner = _make_learner()
  stats = learner.train(model)

  # Only the lexical weights differ between the two parses: p(cat) = 1 / (1 + e).
  delta = 0.1 / (1.0 + np.e)
  assert model.theta[_lex_key(model, DOG)] == pytest.approx(800.0 + delta)
  assert model.theta[_lex_key(model, CAT)] == pytest.approx(799.0 - delta)
  assert not model.theta.is_bad()
  assert stats["triggered_update"] == 1


def test_dataset_must_be_reiterable():
  examples = (example for example in [LabeledExample("the dog", DOG)])
  with pytest.raises(TypeError):
    ValidationStocGrad(examples, WeightedCCGChartParser())


def test_dataset_iterated_every_epoch():
  model = _make_model()
  learner = _make_learner(config=StocGradConfig(num_iterations=3))
  stats = learner.train(model)
  assert stats["processed"] == 3
  assert all(stats.count("processed", epoch=epoch) == 1 for epoch in range(3))


def test_updates_move_towards_valid_parse():
  model = _make_model()
  learner = _make_learner(config=StocGradConfig(num_iterations=3))
  learner.train(model)

  assert learner.step_counter == 3
  assert model.theta[_lex_key(model, DOG)] > 0.1
  assert model.theta[_lex_key(model, CAT)] < -0.1


def test_zero_conditioned_mass():
  """
  An example without any valid parse leaves the model and the update counter
  untouched.
  """
  model = _make_model()
  learner = _make_learner(label=Expression.fromstring("bird"))
  stats = learner.train(model)

  assert len(model.theta) == 0
  assert learner.step_counter == 0
  assert stats["triggered_update"] == 0
  assert stats["processed"] == 1


def test_counter_resets_on_train():
  model = _make_model()
  learner = _make_learner()
  learner.train(model)
  learner.train(model)
  assert learner.step_counter == 1


def test_executor():
  model = _make_model()
  examples = [Example("the dog", label="DOG")]
  validator = lambda example, result: result == example.label
  learner = ValidationStocGrad(examples, WeightedCCGChartParser(),
                               config=StocGradConfig(num_iterations=1),
                               validator=validator,
                               executor=lambda semantics: str(semantics).upper())
  learner.train(model)
  assert model.theta[_lex_key(model, DOG)] == pytest.approx(0.05)


def test_stub_validator_gives_empty_update():
  """
  When every parse is valid both expectations cancel out.
  """
  model = _make_model()
  learner = _make_learner(validator=StubValidator())
  stats = learner.train(model)

  assert len(model.theta) == 0
  assert learner.step_counter == 1
  assert stats["triggered_update"] == 0


def test_lexicon_learning():
  n = Lexicon.fromstring(":- N").parse_category("N")
  generator = lambda example: [LexicalEntry("dog", n, DOG, origin=GENERATED_ORIGIN),
                               LexicalEntry("dog", n, CAT, origin=GENERATED_ORIGIN)]
  model = _make_model(with_nouns=False)
  examples = [LabeledExample("the dog", DOG, entry_generator=generator)]
  learner = ValidationStocGrad(examples, WeightedCCGChartParser(),
                               config=StocGradConfig(num_iterations=1,
                                                     lexicon_learning=True))
  stats = learner.train(model)

  assert [entry.semantics() for entry in model.lexicon.get("dog")] == [DOG]
  assert stats["new_lexical_entries"] == 1


def test_non_finite_update():
  model = _make_model()
  model.theta[_lex_key(model, CAT)] = 0.25
  before = model.theta.copy()

  examples = [LabeledExample("the dog", DOG, quality=float("inf"))]
  learner = ValidationStocGrad(examples, WeightedCCGChartParser(),
                               config=StocGradConfig(num_iterations=1))
  with pytest.raises(BadUpdateError):
    learner.train(model)
  assert model.theta == before
  assert learner.step_counter == 0
