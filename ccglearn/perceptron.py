"""
Loss-sensitive structured perceptron for learning weighted CCGs.
"""

from collections import namedtuple
import logging

from ccglearn.data import StubValidator
from ccglearn.features import HashVector
from ccglearn.learner import OnlineLearner


L = logging.getLogger(__name__)


PerceptronConfig = namedtuple("PerceptronConfig", [
    "num_iterations", "margin", "max_sentence_length",
    "lexicon_generation_beam_size"])
PerceptronConfig.__new__.__defaults__ = (4, 1.0, 50, 20)


def create_optimal_non_optimal_sets(example, parses):
  """
  Split parses into those with minimal loss and all the others.

  Returns:
    optimal: list of `(loss, parse)` pairs, all with the minimum loss
    non_optimal: list of `(loss, parse)` pairs with strictly greater loss
  """
  min_loss = float("inf")
  optimal, non_optimal = [], []
  for parse in parses:
    loss = example.calculate_loss(parse.semantics)
    if loss < min_loss:
      min_loss = loss
      non_optimal.extend(optimal)
      optimal = [(loss, parse)]
    elif loss == min_loss:
      optimal.append((loss, parse))
    else:
      non_optimal.append((loss, parse))

  return optimal, non_optimal


def find_violations(optimal, non_optimal, theta, margin):
  """
  Compare every optimal parse with every non-optimal parse. Both members of a
  pair are marked violating when the score difference between them is below
  `margin` times the relative loss of the non-optimal parse. A parse is
  marked at most once; pairs whose members are both marked already are not
  compared.

  Returns:
    violating_optimal, violating_non_optimal: lists of `(loss, parse)` pairs
  """
  min_loss = optimal[0][0]
  optimal_flags = [False] * len(optimal)
  non_optimal_flags = [False] * len(non_optimal)
  violating_optimal, violating_non_optimal = [], []

  for i, (opt_loss, opt_parse) in enumerate(optimal):
    for j, (non_opt_loss, non_opt_parse) in enumerate(non_optimal):
      if optimal_flags[i] and non_optimal_flags[j]:
        continue

      delta = opt_parse.average_max_features() - non_opt_parse.average_max_features()
      delta_score = delta.dot(theta)
      required = margin * (non_opt_loss - min_loss)

      if not optimal_flags[i] and delta_score < required:
        violating_optimal.append((opt_loss, opt_parse))
        optimal_flags[i] = True
      if not non_optimal_flags[j] and delta_score < required:
        violating_non_optimal.append((non_opt_loss, non_opt_parse))
        non_optimal_flags[j] = True

  return violating_optimal, violating_non_optimal


def violation_update(violating_optimal, violating_non_optimal):
  """
  Uniformly-weighted sum of the violating optimal parses' features minus the
  uniformly-weighted sum of the violating non-optimal parses' features.
  """
  update = HashVector()
  for _, parse in violating_optimal:
    parse.average_max_features().add_times_into(1.0 / len(violating_optimal), update)
  for _, parse in violating_non_optimal:
    parse.average_max_features().add_times_into(-1.0 / len(violating_non_optimal), update)
  return update


class LossSensitivePerceptron(OnlineLearner):
  """
  Margin-based perceptron with lexical induction.

  For each example, a first parse with the generated lexicon adds new lexical
  entries to the model; a second parse with the model alone is used for the
  update. Parses are split into optimal (minimum loss) and non-optimal sets,
  and the update moves weight from violating non-optimal parses to violating
  optimal parses.
  """

  def __init__(self, dataset, parser, config=None,
               lexicon_generation_validator=None, **kwargs):
    """
    Args:
      dataset: Re-iterable collection of `Example`s.
      parser: `WeightedCCGChartParser`.
      config: `PerceptronConfig`.
      lexicon_generation_validator: Validator used to accept lexicon
        generation parses for examples without a label. Accepts everything by
        default.
      kwargs: See `OnlineLearner`.
    """
    super().__init__(config or PerceptronConfig(), dataset, parser, **kwargs)
    if lexicon_generation_validator is None:
      lexicon_generation_validator = StubValidator()
    self.lexicon_generation_validator = lexicon_generation_validator

  def _is_valid_generation_result(self, example, result):
    if example.label is not None:
      return example.calculate_loss(result) == 0.0
    return self.lexicon_generation_validator(example, result)

  def _process_example(self, example, model, data_item_model, epoch, item):
    self._lexical_induction(example, model, data_item_model,
                            self._is_valid_generation_result, epoch, item)

    output = self.parser.parse(example.tokens, data_item_model)
    self.stats.timing("model_parse", epoch, item, output.parsing_time)
    parses = output.all_parses()
    L.info("Created %i model parses for training sample", len(parses))
    L.info("Model parsing time: %.4fs", output.parsing_time)

    self._is_gold_optimal(example, output, epoch, item)

    if not parses:
      L.warning("No model parses for: %s", example)
      self.stats.record("no_model_parse", epoch, item)
      return

    optimal, non_optimal = create_optimal_non_optimal_sets(example, parses)
    if optimal:
      self.stats.record("has_valid_parse", epoch, item)
    L.info("%i optimal parses, %i non optimal parses", len(optimal), len(non_optimal))
    for loss, parse in optimal:
      L.debug("Optimal [%.2f] %s", loss, parse)
    for loss, parse in non_optimal:
      L.debug("Non-optimal [%.2f] %s", loss, parse)

    if not optimal or not non_optimal:
      L.info("No optimal/non-optimal parses -- skipping")
      return

    violating_optimal, violating_non_optimal = find_violations(
        optimal, non_optimal, model.theta, self.config.margin)
    L.info("%i violating optimal parses, %i violating non optimal parses",
           len(violating_optimal), len(violating_non_optimal))
    if not violating_optimal:
      L.info("There are no violating optimal/non-optimal parses -- skipping")
      return

    update = violation_update(violating_optimal, violating_non_optimal)
    update.multiply_by(example.quality)

    L.info("Update weight: %f", example.quality)
    if self._apply_update(model, update):
      self.stats.record("triggered_update", epoch, item)
