"""
Training examples and validators consumed by the learners.
"""


class Example(object):
  """
  A training example: a token sequence plus everything a learner needs to
  judge candidate results for it.
  """

  def __init__(self, tokens, label=None, entry_generator=None, quality=1.0):
    """
    Args:
      tokens: Sequence of string tokens (or a whitespace-separated string).
      label: Optional gold result. Used for debugging and, by subclasses, to
        compute losses.
      entry_generator: Optional function `example -> iterable of
        LexicalEntry` proposing candidate entries for this example.
      quality: Weight scaling every update made on this example.
    """
    if isinstance(tokens, str):
      tokens = tokens.split()
    self.tokens = tuple(tokens)
    self.label = label
    self.entry_generator = entry_generator
    self.quality = quality

  def calculate_loss(self, result):
    """
    Non-negative loss of the candidate `result`, zero iff it is correct.
    """
    raise NotImplementedError()

  def generate_entries(self):
    if self.entry_generator is None:
      return set()
    return set(self.entry_generator(self))

  def __len__(self):
    return len(self.tokens)

  def __str__(self):
    return " ".join(self.tokens)


class LabeledExample(Example):
  """
  An example with a gold result. Loss is 0 for the gold result and 1 for
  anything else.
  """

  def __init__(self, tokens, label, entry_generator=None, quality=1.0):
    super().__init__(tokens, label=label, entry_generator=entry_generator,
                     quality=quality)

  def calculate_loss(self, result):
    return 0.0 if result == self.label else 1.0


class LabeledValidator(object):
  """
  Accepts exactly the gold result of labeled examples.
  """

  def is_valid(self, example, result):
    return example.label is not None and result == example.label

  __call__ = is_valid


class StubValidator(object):
  """
  Accepts every result.
  """

  def is_valid(self, example, result):
    return True

  __call__ = is_valid


def constant_score(result):
  """
  Secondary pruning score expressing no preference.
  """
  return 0.0
