from __future__ import annotations

from extracto.matching import Matcher, Outcome, rx, safe_sub


class _SlowPattern:
    """Patrón que siempre vence el timeout (como haría `regex` con input patológico)."""

    pattern = "(a+)+$"

    def search(self, text, pos=0, timeout=None):
        raise TimeoutError

    def match(self, text, pos=0, timeout=None):
        raise TimeoutError

    def finditer(self, text, timeout=None):
        raise TimeoutError

    def sub(self, repl, text, timeout=None):
        raise TimeoutError

    def split(self, text, timeout=None):
        raise TimeoutError


def test_matcher_outcomes():
    m = Matcher(timeout=0.5)
    date = rx(r"\d{2}/\d{2}/\d{2}")

    hit = m.search(date, "x 15/01/24 y")
    assert hit.ok and hit.outcome is Outcome.MATCH
    assert hit.group(0) == "15/01/24"
    assert hit.start() == 2

    miss = m.search(date, "sin fecha")
    assert miss.outcome is Outcome.NO_MATCH
    assert not miss.ok and not miss.timed_out
    assert miss.group(0) is None and miss.start() == -1

    outcome, found = m.findall(date, "01/01/24 02/01/24")
    assert outcome is Outcome.MATCH and len(found) == 2
    assert m.timeouts == 0


def test_matcher_timeout_is_a_result_not_an_exception():
    m = Matcher(timeout=0.001)
    slow = _SlowPattern()

    assert m.search(slow, "aaaa").timed_out
    assert m.match(slow, "aaaa").outcome is Outcome.TIMEOUT
    assert m.test(slow, "aaaa") is False
    assert m.findall(slow, "aaaa") == (Outcome.TIMEOUT, [])

    # sub/split devuelven el texto intacto
    assert m.sub(slow, "", "aaaa") == "aaaa"
    assert m.split(slow, "aaaa") == ["aaaa"]
    assert safe_sub(slow, "", "aaaa", 0.001) == "aaaa"

    assert m.timeouts == 6, f"timeouts contados: {m.timeouts}"
