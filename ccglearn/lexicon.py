"""
Lexical entries and lexicons.
"""

from collections import defaultdict
import re

from nltk.ccg import lexicon as ccg_lexicon
from nltk.ccg.api import PrimitiveCategory
from nltk.sem import logic as l

from ccglearn.logic import canonicalize, consistent_with_syntax


# Origin tags for lexical entries.
FIXED_ORIGIN = "fixed"
GENERATED_ORIGIN = "generated"

# Like `nltk.ccg.lexicon.LEX_RE`, but the identifier may span several
# whitespace-separated tokens.
LEX_RE = re.compile(r"""(.*?[^\s=-])\s*(::|[-=]+>)\s*(.+)""", re.UNICODE)


class LexicalEntry(ccg_lexicon.Token):
  """
  An immutable `tokens => category {semantics}` triple.

  Entries compare and hash structurally on `(tokens, category, semantics)`.
  The origin tag and the linked entries (variants introduced together with
  this entry) do not take part in equality.
  """

  def __init__(self, tokens, categ, semantics=None, origin=FIXED_ORIGIN,
               linked_entries=()):
    if isinstance(tokens, str):
      tokens = tokens.split()
    self.tokens = tuple(tokens)
    if not self.tokens:
      raise ValueError("lexical entry must cover at least one token")
    semantics = canonicalize(semantics)
    if not consistent_with_syntax(categ, semantics):
      raise ValueError("semantics %s are not a function, as required by %s"
                       % (semantics, categ))

    super().__init__(" ".join(self.tokens), categ, semantics)
    self.origin = origin
    self.linked_entries = tuple(linked_entries)
    self._key = (self.tokens, categ, semantics)

  def token(self):
    return self._token

  def __len__(self):
    return len(self.tokens)

  def __eq__(self, other):
    return isinstance(other, LexicalEntry) and self._key == other._key

  def __ne__(self, other):
    return not self == other

  def __hash__(self):
    return hash(self._key)

  def __str__(self):
    return "%s => %s%s [%s]" % (self._token, self._categ,
                                " {%s}" % self._semantics if self._semantics is not None else "",
                                self.origin)

  __repr__ = __str__


class Lexicon(object):
  """
  A mutable set of lexical entries, indexed by token sequence.

  Entries are only ever added; `add` deduplicates by structural equality and
  reports whether the entry was new.
  """

  def __init__(self, entries=(), start=None, primitives=None, families=None):
    """
    Args:
      entries: Initial lexical entries.
      start: Start symbol. All complete parses must have a root node of this
        category. May be `None` for lexicons which are only ever used to
        supplement another lexicon (e.g. generated lexicons).
      primitives: Primitive category names (strings).
      families: Dict mapping family names to `(category, var)` pairs, as
        produced by `nltk.ccg.lexicon.augParseCategory`.
    """
    if isinstance(start, str):
      start = PrimitiveCategory(start)
    self._start = start
    self._primitives = list(primitives or [])
    self._families = dict(families or {})

    self._entries = defaultdict(list)
    self._entry_set = set()
    self._max_entry_length = 0

    self.add_all(entries)

  @classmethod
  def fromstring(cls, lex_str, include_semantics=False, origin=FIXED_ORIGIN):
    """
    Convert string representation into a lexicon for CCGs.

        :- S, N, NP          # primitive categories; the first is the start
        Det :: NP/N          # family definition
        the => Det {\\x.x}   # entry
        the dog => N {dog}   # multi-token entry
    """
    ccg_lexicon.CCGVar.reset_id()
    primitives = []
    families = {}
    entries = []
    for line in lex_str.splitlines():
      # Strip comments and leading/trailing whitespace.
      line = ccg_lexicon.COMMENTS_RE.match(line).groups()[0].strip()
      if line == "":
        continue

      if line.startswith(':-'):
        # A line of primitive categories.
        # The first one is the target category
        # ie, :- S, N, NP, VP
        primitives = primitives + [prim.strip() for prim in line[2:].strip().split(',')]
        continue

      # Either a family definition, or a word definition
      match = LEX_RE.match(line)
      if match is None:
        raise ValueError("malformed lexicon line: %r" % line)
      (ident, sep, rhs) = match.groups()
      (catstr, semantics_str) = ccg_lexicon.RHS_RE.match(rhs).groups()
      (cat, var) = ccg_lexicon.augParseCategory(catstr, primitives, families)

      if sep == '::':
        # Family definition
        # ie, Det :: NP/N
        families[ident] = (cat, var)
        continue

      semantics = None
      if include_semantics is True:
        if semantics_str is None:
          raise ValueError(line + " must contain semantics because include_semantics is set to True")
        semantics = l.Expression.fromstring(
            ccg_lexicon.SEMANTICS_RE.match(semantics_str).groups()[0]).simplify()

      # Word definition
      # ie, which => (N\N)/(S/NP)
      entries.append(LexicalEntry(ident.split(), cat, semantics, origin=origin))

    if not primitives:
      raise ValueError("lexicon string declares no primitive categories")

    return cls(entries, start=primitives[0], primitives=primitives,
               families=families)

  def parse_category(self, cat_str):
    return ccg_lexicon.augParseCategory(cat_str, self._primitives, self._families)[0]

  def start(self):
    return self._start

  @property
  def max_entry_length(self):
    """
    Number of tokens covered by the longest entry.
    """
    return self._max_entry_length

  def add(self, entry):
    """
    Add a lexical entry.

    Returns:
      `True` iff the entry was not already present.
    """
    if entry in self._entry_set:
      return False

    self._entry_set.add(entry)
    self._entries[entry.tokens].append(entry)
    self._max_entry_length = max(self._max_entry_length, len(entry))
    return True

  def add_all(self, entries):
    """
    Add several entries.

    Returns:
      list of the entries which were newly added
    """
    return [entry for entry in entries if self.add(entry)]

  def get(self, tokens):
    """
    Return the entries covering exactly the token sequence `tokens`.
    """
    if isinstance(tokens, str):
      tokens = tokens.split()
    return list(self._entries.get(tuple(tokens), ()))

  def clone(self):
    """
    Return a copy of this lexicon. Entries are immutable and thus shared.
    """
    return Lexicon(self, start=self._start, primitives=self._primitives,
                   families=self._families)

  def __contains__(self, entry):
    return entry in self._entry_set

  def __len__(self):
    return len(self._entry_set)

  def __iter__(self):
    for entries in self._entries.values():
      yield from entries

  def __str__(self):
    lines = []
    for tokens in sorted(self._entries):
      lines.append("%s => %s" % (" ".join(tokens),
                                 " | ".join("%s%s" % (entry.categ(),
                                                      " {%s}" % entry.semantics()
                                                      if entry.semantics() is not None else "")
                                            for entry in self._entries[tokens])))
    return "\n".join(lines)
