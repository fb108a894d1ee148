"""
Validation-based stochastic gradient learning of weighted CCGs.

The objective is the conditional log-likelihood of the parses whose result
is accepted by a validator:

    grad = E[features | valid] - E[features]

Both expectations are computed over the packed chart of a single parse.
"""

from collections import namedtuple
import logging
import sys

import numpy as np

from ccglearn.data import LabeledValidator
from ccglearn.learner import OnlineLearner


L = logging.getLogger(__name__)


StocGradConfig = namedtuple("StocGradConfig", [
    "num_iterations", "alpha0", "c", "max_sentence_length",
    "lexicon_generation_beam_size", "lexicon_learning"])
StocGradConfig.__new__.__defaults__ = (4, 0.1, 0.0001, sys.maxsize, 20, False)


class ValidationStocGrad(OnlineLearner):
  """
  Stochastic gradient ascent on the likelihood of validated parses, with
  learning rate `alpha0 / (1 + c * num_updates)`.
  """

  def __init__(self, dataset, parser, config=None, validator=None,
               executor=None, **kwargs):
    """
    Args:
      dataset: Re-iterable collection of `Example`s.
      parser: `WeightedCCGChartParser`.
      config: `StocGradConfig`.
      validator: Callable `(example, result) -> bool`. Defaults to comparing
        results with the example label.
      executor: Optional callable mapping the semantics of a parse to the
        result seen by the validator (e.g. an answer computed in some
        environment). If not given, results are the semantics themselves.
      kwargs: See `OnlineLearner`.
    """
    super().__init__(config or StocGradConfig(), dataset, parser, **kwargs)
    self.validator = validator if validator is not None else LabeledValidator()
    self.executor = executor
    self.step_counter = 0

  def _start_training(self):
    self.step_counter = 0

  @property
  def learning_rate(self):
    return self.config.alpha0 / (1.0 + self.config.c * self.step_counter)

  def _result(self, semantics):
    if self.executor is None:
      return semantics
    return self.executor(semantics)

  def _is_valid(self, example, semantics):
    return self.validator(example, self._result(semantics))

  def _process_example(self, example, model, data_item_model, epoch, item):
    if self.config.lexicon_learning:
      self._lexical_induction(example, model, data_item_model,
                              self.validator, epoch, item)

    output = self.parser.parse(example.tokens, data_item_model)
    self.stats.timing("model_parse", epoch, item, output.parsing_time)
    L.info("Model parsing time: %.4fs", output.parsing_time)
    L.info("Output is %s", "empty" if not output.all_parses() else "non-empty")

    self._is_gold_optimal(example, output, epoch, item)

    is_valid = lambda semantics: self._is_valid(example, semantics)
    conditioned_log_norm = output.log_norm(is_valid)
    L.info("Conditioned log norm: %s", conditioned_log_norm)
    if conditioned_log_norm == -np.inf:
      L.info("No valid parses -- skipping")
      return
    self.stats.record("has_valid_parse", epoch, item)

    # Positive half: expectation over valid parses. Both halves are computed
    # relative to their own log norm so that large scores do not overflow.
    update = output.expected_features(is_valid, offset=conditioned_log_norm)
    update.divide_by(output.norm(is_valid, offset=conditioned_log_norm))
    update.drop_small_entries()

    # Negative half: expectation over all parses.
    log_norm = output.log_norm()
    negative = output.expected_features(offset=log_norm)
    negative.divide_by(output.norm(offset=log_norm))
    negative.drop_small_entries()
    negative.add_times_into(-1.0, update)

    scale = self.learning_rate * example.quality
    L.info("Scale: %f", scale)
    update.multiply_by(scale)

    applied = self._apply_update(model, update, log_norm=log_norm)
    self.step_counter += 1
    if applied:
      self.stats.record("triggered_update", epoch, item)
    else:
      L.info("No update")
