from nltk.sem.logic import Expression

from ccglearn.combinator import *
from ccglearn.lexicon import Lexicon
from ccglearn.logic import read_semantics


def _make_lexicon():
  return Lexicon.fromstring(r"""
  :- S, N, NP, AP, PP
  """)


def _cat(lex, cat_str, sem_str=None):
  return lex.parse_category(cat_str), \
      read_semantics(sem_str) if sem_str is not None else None


def test_forward_application():
  lex = _make_lexicon()
  results = ForwardApplication.apply(_cat(lex, "N/N", r"\x.big(x)"),
                                     _cat(lex, "N", "dog"))
  assert results == [(lex.parse_category("N"), Expression.fromstring("big(dog)"))]


def test_backward_application():
  lex = _make_lexicon()
  results = BackwardApplication.apply(_cat(lex, "NP", "john"),
                                      _cat(lex, r"S\NP", r"\x.sleep(x)"))
  assert results == [(lex.parse_category("S"), Expression.fromstring("sleep(john)"))]


def test_application_direction_mismatch():
  lex = _make_lexicon()
  assert ForwardApplication.apply(_cat(lex, "N", "dog"),
                                  _cat(lex, "N/N", r"\x.big(x)")) == []
  assert BackwardApplication.apply(_cat(lex, "N/N", r"\x.big(x)"),
                                   _cat(lex, "N", "dog")) == []


def test_application_semantic_mismatch():
  """
  A non-function logical form in function position yields no result rather
  than an error.
  """
  lex = _make_lexicon()
  function = (lex.parse_category("N/N"), read_semantics("big(dog)"))
  assert ForwardApplication.apply(function, _cat(lex, "N", "dog")) == []


def test_application_without_semantics():
  lex = _make_lexicon()
  results = ForwardApplication.apply(_cat(lex, "N/N"), _cat(lex, "N"))
  assert results == [(lex.parse_category("N"), None)]


def test_forward_composition():
  lex = _make_lexicon()
  results = ForwardComposition.apply(_cat(lex, "S/NP", r"\x.see(x)"),
                                     _cat(lex, "NP/N", r"\y.the(y)"))
  assert results == [(lex.parse_category("S/N"), read_semantics(r"\z.see(the(z))"))]


def test_backward_composition():
  lex = _make_lexicon()
  results = BackwardComposition.apply(_cat(lex, r"N\NP", r"\y.own(y)"),
                                      _cat(lex, r"S\N", r"\x.happy(x)"))
  assert results == [(lex.parse_category(r"S\NP"), read_semantics(r"\z.happy(own(z))"))]


def test_composition_requires_functions():
  lex = _make_lexicon()
  assert ForwardComposition.apply(_cat(lex, "N/N", r"\x.big(x)"),
                                  _cat(lex, "N", "dog")) == []


def test_adverbial_type_shifting():
  lex = _make_lexicon()
  rule = AdverbialTypeShifting()
  syntax, semantics = rule.apply(_cat(lex, "AP", r"\x.quickly(x)"))
  assert syntax == lex.parse_category(r"S\S")
  assert semantics == read_semantics(r"\F x.(F(x) & quickly(x))")


def test_preposition_type_shifting():
  lex = _make_lexicon()
  rule = PrepositionTypeShifting()
  syntax, semantics = rule.apply(_cat(lex, "PP", r"\x.on(x,table)"))
  assert syntax == lex.parse_category(r"N\N")
  assert semantics == read_semantics(r"\F x.(F(x) & on(x,table))")


def test_type_shifting_does_not_apply():
  lex = _make_lexicon()
  assert AdverbialTypeShifting().apply(_cat(lex, "PP", r"\x.on(x,table)")) is None
  assert AdverbialTypeShifting().apply(_cat(lex, "AP", "quickly")) is None
  assert PrepositionTypeShifting().apply(_cat(lex, "N/N", r"\x.big(x)")) is None


def test_type_raising():
  lex = _make_lexicon()
  rule = TypeRaisingRule("T>", "S", sources=["NP"])

  raised = rule.apply(_cat(lex, "NP", "john"))
  assert raised == (lex.parse_category(r"S/(S\NP)"), read_semantics(r"\F.F(john)"))
  assert rule.apply(_cat(lex, "N", "dog")) is None

  results = ForwardApplication.apply(raised, _cat(lex, r"S\NP", r"\x.sleep(x)"))
  assert results == [(lex.parse_category("S"), Expression.fromstring("sleep(john)"))]


def test_backward_type_raising():
  lex = _make_lexicon()
  rule = TypeRaisingRule("T<", "S", backward=True)
  syntax, _ = rule.apply(_cat(lex, "NP", "john"))
  assert syntax == lex.parse_category(r"S\(S/NP)")


def test_rule_identity_by_name():
  assert ApplicationRule(">", None) == ForwardApplication
  assert hash(ApplicationRule(">", None)) == hash(ForwardApplication)
  assert AdverbialTypeShifting() == AdverbialTypeShifting()
  assert ForwardApplication != BackwardApplication
  assert len(set(DefaultRuleSet)) == 4
