"""Fuzzy ranking of stored credentials against a (label, user) query.

Score = label_similarity * 0.60 + user_similarity * 0.20
      + recency * 0.12 + frequency * 0.05

String similarity is normalized Levenshtein distance with boosts for
prefix and substring matches. Recency decays with a ~12 hour half-life and
frequency grows logarithmically with the access count.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .models import CredentialRecord

# Feature weights
LABEL_WEIGHT = 0.60
USER_WEIGHT = 0.20
RECENCY_WEIGHT = 0.12
FREQUENCY_WEIGHT = 0.05

# String scoring
PREFIX_BOOST = 1.0
SUBSTRING_BOOST = 0.5
MAX_STRING_SCORE = 5.0

RECENCY_HALF_LIFE_HOURS = 12.0
MIN_SCORE_THRESHOLD = 0.2


@dataclass
class SearchResult:
    """A credential together with its ranking score."""

    credential: CredentialRecord
    score: float


def levenshtein(a: Sequence, b: Sequence) -> int:
    """Edit distance between two sequences (str or bytes) using two rolling rows.

    Rows are sized by the shorter string, so memory is O(min(len(a), len(b))).
    """
    if not a:
        return len(b)
    if not b:
        return len(a)

    if len(a) > len(b):
        a, b = b, a

    prev = list(range(len(a) + 1))
    curr = [0] * (len(a) + 1)

    for j, bj in enumerate(b, start=1):
        curr[0] = j
        for i, ai in enumerate(a, start=1):
            cost = 0 if ai == bj else 1
            curr[i] = min(
                prev[i] + 1,          # deletion
                curr[i - 1] + 1,      # insertion
                prev[i - 1] + cost    # substitution
            )
        prev, curr = curr, prev

    return prev[len(a)]


def similarity_score(query: str, target: str) -> float:
    """1 - distance / longest length, in [0, 1], measured over UTF-8 bytes."""
    query_bytes = query.encode("utf-8")
    target_bytes = target.encode("utf-8")
    longest = max(len(query_bytes), len(target_bytes))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(query_bytes, target_bytes) / longest


def string_score(query: str, target: str) -> float:
    """Similarity with prefix/substring boosts, capped at MAX_STRING_SCORE."""
    if query == target:
        return MAX_STRING_SCORE

    score = similarity_score(query, target)

    if target.startswith(query):
        score += PREFIX_BOOST
    elif query in target:
        score += SUBSTRING_BOOST

    return min(score, MAX_STRING_SCORE)


def recency_score(last_access: Optional[datetime], now: datetime) -> float:
    if last_access is None:
        return 0.0
    # Future timestamps count as "just now"
    if now < last_access:
        now = last_access
    hours = (now - last_access).total_seconds() / 3600.0
    return 1.0 / (1.0 + hours / RECENCY_HALF_LIFE_HOURS)


def frequency_score(access_count: int) -> float:
    if access_count <= 0:
        return 0.0
    return math.log(access_count + 1.0) / 5.0


def score_query(
    query_label: str,
    query_user: str,
    label: str,
    user: str,
    access_count: int,
    last_access: Optional[datetime],
    now: datetime
) -> float:
    """Total score of one credential for a query.

    Empty query fields contribute nothing. String comparison is
    case-insensitive.
    """
    label_score = 0.0
    user_score = 0.0

    if query_label:
        label_score = string_score(query_label.lower(), label.lower()) * LABEL_WEIGHT
    if query_user:
        user_score = string_score(query_user.lower(), user.lower()) * USER_WEIGHT

    recent = recency_score(last_access, now) * RECENCY_WEIGHT
    frequent = frequency_score(access_count) * FREQUENCY_WEIGHT

    return label_score + user_score + recent + frequent


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def rank(
    query_label: str,
    query_user: str,
    credentials: Iterable[CredentialRecord],
    now: Optional[datetime] = None,
    threshold: float = MIN_SCORE_THRESHOLD
) -> List[SearchResult]:
    """Score every credential and return those at or above the threshold.

    Ordered by score descending, then access count descending, then label
    ascending.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    results = []

    for credential in credentials:
        last_access = _as_utc(credential.accessed_at) if credential.accessed_at else None
        score = score_query(
            query_label,
            query_user,
            credential.label,
            credential.user,
            credential.access_count,
            last_access,
            now
        )
        if score >= threshold:
            results.append(SearchResult(credential, score))

    results.sort(key=lambda r: (-r.score, -r.credential.access_count, r.credential.label))
    return results


def best_match(
    query_label: str,
    query_user: str,
    credentials: Iterable[CredentialRecord],
    now: Optional[datetime] = None,
    threshold: float = MIN_SCORE_THRESHOLD
) -> Optional[SearchResult]:
    results = rank(query_label, query_user, credentials, now, threshold)
    return results[0] if results else None
