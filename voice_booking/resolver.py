"""Fuzzy resolution of spoken names to catalog entities."""

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, TypeVar

import structlog
from rapidfuzz.distance import Levenshtein

from voice_booking.schema import Location, MatchResult, Service, StaffMember

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")

NameExtractor = Callable[[T], Iterable[Optional[str]]]

DEFAULT_THRESHOLD = 50.0
DEFAULT_AMBIGUITY_WINDOW = 10.0

MIN_SIMILARITY = 0.6
WORD_OVERLAP_MIN = 0.5


@dataclass(frozen=True)
class MatchScore(Generic[T]):
    """Best score of one candidate across all of its searchable names."""

    item: T
    score: float
    match_type: str  # "exact", "contains" or "fuzzy"


def normalize(text: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return " ".join(text.lower().split())


def _word_overlap(query: str, target: str) -> float:
    """Share of the larger word set with a containment match in the other."""
    query_words = query.split(" ")
    target_words = target.split(" ")
    matched = [qw for qw in query_words if any(tw in qw or qw in tw for tw in target_words)]
    return len(matched) / max(len(query_words), len(target_words))


def calculate_match_score(query: str, target: str) -> tuple[float, str]:
    """
    Score how well ``target`` matches ``query`` (higher is better).

    exact 100; target contains query 70-90; query contains target 65-85;
    word overlap 60-80; Levenshtein similarity 0-60 (only above 0.6).
    """
    q = normalize(query)
    t = normalize(target)

    if q == t:
        return 100.0, "exact"

    if q in t:
        return 70.0 + (len(q) / len(t)) * 20.0, "contains"

    # e.g. "60 min swedish massage" contains "swedish massage"
    if t in q:
        return 65.0 + (len(t) / len(q)) * 20.0, "contains"

    overlap = _word_overlap(q, t)
    if overlap >= WORD_OVERLAP_MIN:
        return 60.0 + overlap * 20.0, "contains"

    similarity = 1.0 - Levenshtein.distance(q, t) / max(len(q), len(t))
    if similarity >= MIN_SIMILARITY:
        return similarity * 60.0, "fuzzy"

    return 0.0, "fuzzy"


def _searchable_names(item: T, get_names: NameExtractor) -> list[str]:
    names = [n for n in get_names(item) if n and n.strip()]
    if not names:
        raise ValueError(f"Name extractor returned no searchable names for {item!r}")
    return names


def find_best_matches(
    query: str,
    items: list[T],
    get_names: NameExtractor,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[MatchScore[T]]:
    """
    Score every item and keep those at or above ``threshold``.
    Returned best-first; equal scores keep their input order.
    """
    scores: list[MatchScore[T]] = []
    for item in items:
        best_score = 0.0
        best_type = "fuzzy"
        for name in _searchable_names(item, get_names):
            score, match_type = calculate_match_score(query, name)
            if score > best_score:
                best_score = score
                best_type = match_type
        if best_score >= threshold:
            scores.append(MatchScore(item=item, score=best_score, match_type=best_type))

    return sorted(scores, key=lambda s: s.score, reverse=True)


def determine_result(
    scores: list[MatchScore[T]],
    ambiguity_window: float = DEFAULT_AMBIGUITY_WINDOW,
) -> MatchResult[T]:
    """Turn sorted match scores into a confidence tier."""
    if not scores:
        return MatchResult.none()

    top = scores[0]
    if top.match_type == "exact":
        return MatchResult.exact(top.item)

    close = [s for s in scores if top.score - s.score <= ambiguity_window]
    if len(close) > 1:
        return MatchResult.ambiguous([s.item for s in close])

    return MatchResult.fuzzy(top.item)


def resolve(
    query: str,
    candidates: list[T],
    get_names: NameExtractor,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    ambiguity_window: float = DEFAULT_AMBIGUITY_WINDOW,
) -> MatchResult[T]:
    """Resolve a spoken phrase against ``candidates``."""
    if not normalize(query):
        raise ValueError("query must not be blank")

    scores = find_best_matches(query, candidates, get_names, threshold=threshold)
    result = determine_result(scores, ambiguity_window=ambiguity_window)
    LOGGER.debug(
        "resolver.result",
        query=query,
        candidates=len(candidates),
        scored=len(scores),
        top_score=round(scores[0].score, 1) if scores else None,
        confidence=result.confidence.value,
    )
    return result


# --- Per-kind name extractors ---


def service_names(service: Service) -> list[str]:
    """Searchable names so '60 minute massage' and 'Swedish massage' both land."""
    names = [service.service_name]
    if service.variation_name:
        names.append(f"{service.service_name} {service.variation_name}")
        names.append(service.variation_name)
    if service.duration:
        names.append(f"{service.service_name} {service.duration}")
        if service.variation_name:
            names.append(f"{service.variation_name} {service.duration}")
    return names


def staff_names(member: StaffMember) -> list[str]:
    """Full name plus first name."""
    names = [member.name]
    first = member.name.split(" ")[0]
    if first and first != member.name:
        names.append(first)
    return names


def location_names(location: Location) -> list[str]:
    """Name, full address and each address component."""
    names = [location.name]
    if location.address:
        names.append(location.address)
        names.extend(part.strip() for part in location.address.split(","))
    return names


def resolve_service(query: str, services: list[Service], **kwargs) -> MatchResult[Service]:
    return resolve(query, services, service_names, **kwargs)


def resolve_staff(query: str, staff: list[StaffMember], **kwargs) -> MatchResult[StaffMember]:
    return resolve(query, staff, staff_names, **kwargs)


def resolve_location(query: str, locations: list[Location], **kwargs) -> MatchResult[Location]:
    return resolve(query, locations, location_names, **kwargs)
