"""
Shared machinery for online learners: the epoch loop, lexical induction from
generated entries, update validation and training statistics.
"""

from collections import Counter, defaultdict
import logging
import time

from ccglearn.data import constant_score
from ccglearn.lexicon import Lexicon


L = logging.getLogger(__name__)


# Updates with values outside this range are applied, but logged.
UPDATE_WARNING_RANGE = (-100.0, 100.0)


class InvalidUpdateError(RuntimeError):
  """
  An update touches parameters the model does not allow to be updated.
  """
  pass


class BadUpdateError(ArithmeticError):
  """
  An update (or the parameter vector it would produce) is not finite.
  """
  pass


class LearningStats(object):
  """
  Counts and timings collected during training.

  Every recorded event is also passed, as a dict, to the optional `sink`
  callback.
  """

  def __init__(self, sink=None):
    self.sink = sink
    self.counts = Counter()
    self.timings = defaultdict(list)
    self.epoch_counts = defaultdict(Counter)

  def record(self, event, epoch, item, **data):
    self.counts[event] += 1
    self.epoch_counts[epoch][event] += 1
    if self.sink is not None:
      payload = dict(data)
      payload.update(event=event, epoch=epoch, item=item)
      self.sink(payload)

  def timing(self, name, epoch, item, seconds):
    self.timings[name].append(seconds)
    if self.sink is not None:
      self.sink(dict(event="timing", name=name, epoch=epoch, item=item,
                     seconds=seconds))

  def count(self, event, epoch=None):
    if epoch is None:
      return self.counts[event]
    return self.epoch_counts[epoch][event]

  def mean_time(self, name):
    times = self.timings[name]
    return sum(times) / len(times) if times else 0.0

  def __getitem__(self, event):
    return self.counts[event]

  def __str__(self):
    lines = ["%s: %i" % (event, count) for event, count in sorted(self.counts.items())]
    lines += ["%s time: %.4fs mean over %i" % (name, self.mean_time(name), len(times))
              for name, times in sorted(self.timings.items())]
    return "\n".join(lines)


class OnlineLearner(object):
  """
  Base class for online learners. Subclasses implement `_process_example`,
  which computes and applies the update for one training example.
  """

  def __init__(self, config, dataset, parser, gold_debug=None,
               secondary_score_fn=constant_score, stats_sink=None):
    """
    Args:
      config: Learner configuration record (see the subclasses).
      dataset: Re-iterable collection of `Example`s (e.g. a list), iterated
        once per epoch in order. One-shot iterators are rejected.
      parser: `WeightedCCGChartParser`.
      gold_debug: Optional dict mapping token tuples to gold results. Only
        used for logging and statistics.
      secondary_score_fn: Tie-breaking score used when pruning
        lexicon-generation parses.
      stats_sink: Optional callback receiving every statistics event.
    """
    if iter(dataset) is dataset:
      raise TypeError("dataset must be re-iterable across epochs, got an iterator")

    self.config = config
    self.dataset = dataset
    self.parser = parser
    self.gold_debug = dict(gold_debug or {})
    self.secondary_score_fn = secondary_score_fn
    self.stats_sink = stats_sink
    self.stats = LearningStats(stats_sink)

  def _start_training(self):
    pass

  def train(self, model):
    """
    Train `model` in place.

    Returns:
      `LearningStats` of this training run
    """
    self.stats = LearningStats(self.stats_sink)
    self._start_training()

    for epoch in range(self.config.num_iterations):
      L.info("=========================")
      L.info("Training epoch %i", epoch)
      L.info("=========================")

      for item, example in enumerate(self.dataset):
        start = time.time()
        L.info("%i : ================== [%i]", item, epoch)
        L.info("Sample: %s", example)

        if len(example) > self.config.max_sentence_length:
          L.info("Skipped training sample, too long (%i tokens)", len(example))
          self.stats.record("skipped_too_long", epoch, item)
          continue

        self.stats.record("processed", epoch, item)
        data_item_model = model.create_data_item_model(example)
        self._process_example(example, model, data_item_model, epoch, item)

        self.stats.timing("item", epoch, item, time.time() - start)

    L.info("Finished training")
    L.info("%s", self.stats)
    return self.stats

  def _process_example(self, example, model, data_item_model, epoch, item):
    raise NotImplementedError()

  def _result(self, semantics):
    return semantics

  def _gold(self, example):
    return self.gold_debug.get(example.tokens)

  def _is_gold_optimal(self, example, output, epoch, item):
    """
    Record whether the single best model parse matches the debug gold label.
    """
    gold = self._gold(example)
    best = output.best_parses()
    if gold is not None and len(best) == 1 and self._result(best[0].semantics) == gold:
      L.info("CORRECT")
      self.stats.record("gold_optimal", epoch, item)
      return True
    if gold is not None:
      L.info("WRONG: %i best parses", len(best))
    return False

  def _lexical_induction(self, example, model, data_item_model, is_valid,
                         epoch, item):
    """
    Parse the example with the model lexicon plus the entries generated for
    it, and add to the model the lexical entries (and their linked entries)
    used by the best valid parses.

    Among valid parses, only those with minimal loss are considered, and among
    those, all the ones tied at the maximum model score.

    Returns:
      number of entries newly added to the model lexicon
    """
    generated = Lexicon(example.generate_entries())
    L.debug("Generated %i lexical entries", len(generated))

    output = self.parser.parse(example.tokens, data_item_model, lexicon=generated,
                               beam_size=self.config.lexicon_generation_beam_size,
                               secondary_score_fn=self.secondary_score_fn)
    self.stats.timing("generation_parse", epoch, item, output.parsing_time)
    L.info("Lexicon generation parsing time: %.4fs", output.parsing_time)

    valid = []
    for parse in output.all_parses():
      result = self._result(parse.semantics)
      if is_valid(example, result):
        valid.append((parse, example.calculate_loss(result)))

    L.info("Lexicon generation: %i parses, %i valid",
           len(output.all_parses()), len(valid))
    if not valid:
      L.info("No valid lexicon generation parses")
      return 0

    self.stats.record("has_valid_generation_parse", epoch, item)
    min_loss = min(loss for _, loss in valid)
    best = [parse for parse, loss in valid if loss == min_loss]
    max_score = max(parse.score for parse in best)
    best = [parse for parse in best if parse.score == max_score]

    self._log_generation_gold(example, output, best)

    new_entries = 0
    for parse in best:
      for entry in parse.max_lexical_entries():
        for to_add in (entry,) + entry.linked_entries:
          if model.add_lex_entry(to_add):
            L.info("Adding lexical entry: %s", to_add)
            new_entries += 1

    if new_entries:
      self.stats.record("new_lexical_entries", epoch, item, count=new_entries)
    return new_entries

  def _log_generation_gold(self, example, output, best):
    gold = self._gold(example)
    if gold is None:
      return

    gold_parses = [parse for parse in output.all_parses()
                   if self._result(parse.semantics) == gold]
    if not gold_parses:
      L.info("No generation parse matches the gold label")
      return
    if any(parse in best for parse in gold_parses):
      return

    gold_features = gold_parses[0].average_max_features()
    for parse in best:
      L.info("Gold generation parse not among the best. Best: %s", parse)
      L.info("Feature difference (gold - best): %s",
             gold_features - parse.average_max_features())

  def _apply_update(self, model, update, log_norm=None):
    """
    Validate `update` and add it into the model parameters.

    Raises:
      InvalidUpdateError: if the model rejects the update keys.
      BadUpdateError: if the update or the resulting parameters are not
        finite. The parameters are left untouched.

    Returns:
      `True` iff a non-empty update was applied
    """
    if not model.is_valid_weight_vector(update):
      raise InvalidUpdateError("invalid update: %s" % update)

    update.drop_small_entries()
    if update.is_bad():
      L.error("Bad update: %s -- log norm: %s", update, log_norm)
      L.error("theta: %s", model.theta.print_values(update))
      raise BadUpdateError("update is not finite: %s" % update)

    if not update.values_in_range(*UPDATE_WARNING_RANGE):
      L.warning("Large update: %s", update)

    touched = update.copy()
    for key in update:
      touched[key] += model.theta[key]
    if touched.is_bad():
      L.error("Update %s makes parameters non-finite: %s", update,
              model.theta.print_values(update))
      raise BadUpdateError("parameters would not be finite after update")

    if len(update) == 0:
      return False

    L.debug("Update: %s", update)
    update.add_times_into(1.0, model.theta)
    return True
