"""
Categorización por reglas.

Las reglas del banco y las aprendidas del usuario se evalúan juntas, por
prioridad ascendente; gana la primera que matchea. El almacenamiento de
reglas es externo (RuleProvider).
"""

from __future__ import annotations

import enum
import logging
from typing import Dict, Iterable, List, Optional, Protocol

import regex
from pydantic import BaseModel

from .matching import DEFAULT_TIMEOUT, Matcher
from .models import ParseResult, Transaction
from .normalize import strip_accents

logger = logging.getLogger(__name__)


class PatternType(str, enum.Enum):
    CONTAINS = "Contains"
    STARTS_WITH = "StartsWith"
    ENDS_WITH = "EndsWith"
    EQUALS = "Equals"
    REGEX = "Regex"


class RuleSource(str, enum.Enum):
    BANK = "BankRule"
    USER = "UserLearned"


class CategoryRule(BaseModel):
    rule_id: str
    pattern: str
    pattern_type: PatternType = PatternType.CONTAINS
    category: str
    subcategory: Optional[str] = None
    priority: int = 100
    source: RuleSource = RuleSource.BANK
    enabled: bool = True


class RuleProvider(Protocol):
    def rules_for(self, bank: str, user_id: str) -> Iterable[CategoryRule]:
        ...


class StaticRuleProvider:
    """Reglas fijas en memoria: {bank: [...]} + {user_id: [...]}."""

    def __init__(
        self,
        bank_rules: Optional[Dict[str, List[CategoryRule]]] = None,
        user_rules: Optional[Dict[str, List[CategoryRule]]] = None,
    ):
        self.bank_rules = {k.lower(): v for k, v in (bank_rules or {}).items()}
        self.user_rules = user_rules or {}

    def rules_for(self, bank: str, user_id: str) -> List[CategoryRule]:
        return list(self.bank_rules.get(bank.lower(), [])) + list(self.user_rules.get(user_id, []))


def normalize_for_match(text: str) -> str:
    return strip_accents(text or "").upper().strip()


class RuleCategorizer:
    def __init__(self, provider: RuleProvider, timeout: float = DEFAULT_TIMEOUT):
        self.provider = provider
        self.timeout = timeout

    def _ordered(self, bank: str, user_id: str) -> List[CategoryRule]:
        rules = [r for r in self.provider.rules_for(bank, user_id) if r.enabled]
        # sort estable: a igual prioridad se respeta el orden del proveedor
        return sorted(rules, key=lambda r: r.priority)

    def matches(self, rule: CategoryRule, text: str, matcher: Matcher) -> bool:
        pattern = normalize_for_match(rule.pattern)
        kind = rule.pattern_type
        if kind is PatternType.CONTAINS:
            return pattern in text
        if kind is PatternType.STARTS_WITH:
            return text.startswith(pattern)
        if kind is PatternType.ENDS_WITH:
            return text.endswith(pattern)
        if kind is PatternType.EQUALS:
            return text == pattern
        try:
            compiled = regex.compile(rule.pattern, regex.IGNORECASE)
        except regex.error:
            logger.warning("regla %s: regex inválida %r", rule.rule_id, rule.pattern)
            return False
        return matcher.test(compiled, text)

    def categorize(self, tx: Transaction, rules: List[CategoryRule], matcher: Matcher) -> Optional[CategoryRule]:
        text = normalize_for_match(tx.description or tx.original_description or "")
        if not text:
            return None
        for rule in rules:
            if self.matches(rule, text, matcher):
                tx.category = rule.category
                tx.subcategory = rule.subcategory
                tx.category_source = rule.source.value
                tx.category_rule_id = rule.rule_id
                return rule
        return None

    def apply(self, result: ParseResult, bank: str, user_id: str) -> int:
        """Categoriza todas las transacciones del resultado. Devuelve cuántas matchearon."""
        rules = self._ordered(bank, user_id)
        if not rules:
            return 0
        matcher = Matcher(self.timeout)
        hits = sum(
            1 for tx in result.statement.all_transactions() if self.categorize(tx, rules, matcher) is not None
        )
        logger.debug("categorización %s/%s: %s de %s", bank, user_id, hits, result.transaction_count())
        return hits
