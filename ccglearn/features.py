"""
Sparse feature vectors, used both as model parameters and as per-derivation
feature counts.
"""

from collections import defaultdict

import numpy as np


class HashVector(object):
  """
  Sparse mapping from feature keys to float values. Missing keys read as zero.

  Feature keys are arbitrary hashable values; by convention they are tuples
  whose first element names the feature set which produced them, e.g.
  `("RULE", ">")` or `("LEX", "the dog", "N", "dog")`.

  Every instance owns its storage. Operations which return a vector always
  return a new one, and in-place operations only ever touch `self` (or the
  explicit `target` of `add_times_into`).
  """

  # Entries with absolute value below this threshold are dropped by
  # `drop_small_entries`.
  EPSILON = 1e-5

  def __init__(self, values=None):
    self._values = defaultdict(float)
    if values is not None:
      self._values.update(values)

  def __getitem__(self, key):
    return self._values.get(key, 0.0)

  def __setitem__(self, key, value):
    self._values[key] = float(value)

  def __delitem__(self, key):
    del self._values[key]

  def __contains__(self, key):
    return key in self._values

  def __len__(self):
    return len(self._values)

  def __iter__(self):
    return iter(self._values)

  def keys(self):
    return self._values.keys()

  def items(self):
    return self._values.items()

  def values(self):
    return self._values.values()

  def copy(self):
    return HashVector(self._values)

  def add_times_into(self, scale, target):
    """
    Add `self * scale` into `target`, in place. Returns `target`.
    """
    for key, value in self._values.items():
      target._values[key] += value * scale
    return target

  def add_times(self, scale, other):
    """
    Return a new vector `self + scale * other`.
    """
    ret = self.copy()
    other.add_times_into(scale, ret)
    return ret

  def __add__(self, other):
    return self.add_times(1.0, other)

  def __sub__(self, other):
    return self.add_times(-1.0, other)

  def dot(self, other):
    # Iterate over the smaller of the two vectors.
    small, big = (self, other) if len(self) <= len(other) else (other, self)
    return sum(value * big[key] for key, value in small.items())

  def multiply_by(self, scale):
    for key in self._values:
      self._values[key] *= scale
    return self

  def divide_by(self, d):
    for key in self._values:
      self._values[key] /= d
    return self

  def drop_small_entries(self, epsilon=None):
    """
    Remove entries whose absolute value is below `epsilon` (defaults to
    `HashVector.EPSILON`). NaN and infinite entries are never dropped.

    Returns:
      number of entries dropped
    """
    epsilon = self.EPSILON if epsilon is None else epsilon
    small = [key for key, value in self._values.items() if abs(value) < epsilon]
    for key in small:
      del self._values[key]
    return len(small)

  def is_bad(self):
    """
    Return `True` if any entry is NaN or infinite.
    """
    if not self._values:
      return False
    return not np.all(np.isfinite(np.fromiter(self._values.values(), dtype=float)))

  def values_in_range(self, low, high):
    return all(low <= value <= high for value in self._values.values())

  def print_values(self, other):
    """
    Render the values of `self` for the keys present in `other`. Used to show
    the current parameters touched by some update.
    """
    return "{%s}" % ", ".join("%s=%.4f(%.4f)" % (key, self[key], value)
                              for key, value in sorted(other.items(), key=str))

  def __eq__(self, other):
    if not isinstance(other, HashVector):
      return NotImplemented
    keys = set(self._values) | set(other._values)
    return all(self[key] == other[key] for key in keys)

  def __ne__(self, other):
    eq = self.__eq__(other)
    return eq if eq is NotImplemented else not eq

  __hash__ = None

  def __str__(self):
    return "{%s}" % ", ".join("%s=%.4f" % (key, value)
                              for key, value in sorted(self._values.items(), key=lambda kv: str(kv[0])))

  __repr__ = __str__
