"""Rule-based pre-triage that resolves obvious emails without the LLM."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache

from inbox_triage.core.models import Email, EmailCategory, TriageResult

TriagePredicate = Callable[["_Haystack"], bool]

NO_MATCH = TriageResult(category=None, confidence=0.0)


@dataclass(frozen=True, slots=True)
class _Haystack:
    content: str
    sender_email: str
    sender_name: str


@dataclass(frozen=True)
class TriageRule:
    """One heuristic: any listed keyword (or the predicate) selects ``category``.

    ``content_keywords``, ``sender_keywords`` and ``name_keywords`` are
    substring matches against the lower-cased subject/body, sender address
    and sender display name. ``content_words`` and ``name_words`` must match
    whole words.
    """

    key: str
    category: EmailCategory
    confidence: float
    content_keywords: tuple[str, ...] = ()
    content_words: tuple[str, ...] = ()
    sender_keywords: tuple[str, ...] = ()
    name_keywords: tuple[str, ...] = ()
    name_words: tuple[str, ...] = ()
    predicate: TriagePredicate | None = None


_SUSPICIOUS_SENDER_TOKENS = ("wealth", "lottery", "prize", "fortune", "inherit")
_FINANCIAL_LURES = ("bank details", "account number", "routing number", "funds")


def _suspicious_sender_asking_for_money(haystack: _Haystack) -> bool:
    return _contains_keyword(
        _SUSPICIOUS_SENDER_TOKENS, haystack.sender_email
    ) and _contains_keyword(_FINANCIAL_LURES, haystack.content)


# Ordered by precedence; the first matching rule wins.
DEFAULT_TRIAGE_RULES: tuple[TriageRule, ...] = (
    TriageRule(
        key="spam_phrases",
        category=EmailCategory.SPAM,
        confidence=0.99,
        content_keywords=(
            "wire transfer",
            "inheritance",
            "urgent business proposal",
            "verify your account",
            "lottery",
            "you have won",
            "claim your prize",
            "nigerian prince",
        ),
    ),
    TriageRule(
        key="spam_sender",
        category=EmailCategory.SPAM,
        confidence=0.95,
        predicate=_suspicious_sender_asking_for_money,
    ),
    TriageRule(
        key="newsletter_footer",
        category=EmailCategory.NEWSLETTER,
        confidence=0.95,
        content_keywords=(
            "unsubscribe",
            "view in browser",
            "view this email in your browser",
            "manage your email preferences",
        ),
    ),
    TriageRule(
        key="newsletter_sender",
        category=EmailCategory.NEWSLETTER,
        confidence=0.9,
        sender_keywords=("newsletter", "no-reply", "noreply", "info@", "digest@"),
        name_keywords=("weekly", "digest", "newsletter"),
    ),
    TriageRule(
        key="operational",
        category=EmailCategory.IMPORTANT,
        confidence=0.95,
        content_keywords=(
            "server down",
            "outage",
            "incident",
            "cpu usage",
            "downtime",
            "invoice",
            "roadmap",
            "standup",
            "stand-up",
            "hr announcement",
            "payroll",
            "benefits enrollment",
        ),
        sender_keywords=(
            "alerts@",
            "alert@",
            "monitoring",
            "devops",
            "pagerduty",
            "hr@",
            "pm@",
        ),
        name_keywords=("devops", "monitoring", "project manager"),
    ),
    TriageRule(
        key="personal_promotional",
        category=EmailCategory.OTHERS,
        confidence=0.99,
        content_keywords=(
            "reward points",
            "loyalty points",
            "bonus points",
            "earn points",
            "points balance",
            "free drink",
            "coupon",
        ),
        content_words=("rewards",),
        name_words=("mom", "dad", "grandma", "grandpa"),
    ),
    TriageRule(
        key="legal_fallback",
        category=EmailCategory.IMPORTANT,
        confidence=0.7,
        content_keywords=("contract", "agreement"),
    ),
)


def triage_email(
    email: Email, rules: Sequence[TriageRule] = DEFAULT_TRIAGE_RULES
) -> TriageResult:
    """Return the first matching rule's category, or no category at all."""
    haystack = _build_haystack(email)
    for rule in rules:
        if _matches_rule(rule, haystack):
            return TriageResult(category=rule.category, confidence=rule.confidence)
    return NO_MATCH


def _build_haystack(email: Email) -> _Haystack:
    return _Haystack(
        content=f"{email.subject} {email.body}".lower(),
        sender_email=email.sender_email.lower(),
        sender_name=email.sender.lower(),
    )


def _matches_rule(rule: TriageRule, haystack: _Haystack) -> bool:
    if rule.content_keywords and _contains_keyword(
        rule.content_keywords, haystack.content
    ):
        return True
    if rule.content_words and _contains_word(rule.content_words, haystack.content):
        return True
    if rule.sender_keywords and _contains_keyword(
        rule.sender_keywords, haystack.sender_email
    ):
        return True
    if rule.name_keywords and _contains_keyword(
        rule.name_keywords, haystack.sender_name
    ):
        return True
    if rule.name_words and _contains_word(rule.name_words, haystack.sender_name):
        return True
    if rule.predicate is not None:
        return rule.predicate(haystack)
    return False


def _contains_keyword(keywords: Iterable[str], haystack: str) -> bool:
    for keyword in keywords:
        if keyword in haystack:
            return True
    return False


def _contains_word(words: Iterable[str], haystack: str) -> bool:
    return any(_word_pattern(word).search(haystack) for word in words)


@lru_cache(maxsize=256)
def _word_pattern(word: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(word)}\b")


__all__ = ["DEFAULT_TRIAGE_RULES", "NO_MATCH", "TriageRule", "triage_email"]
