"""Fingerprint-based review deduplication."""

from typing import Iterable, List, Set, Tuple

from voc_pipeline.scrapers.models import ScrapedReview


class Deduplicator:
    """
    Filter reviews against the fingerprints already known for a company.

    The known set is loaded once per job and grows as reviews are accepted,
    so duplicates inside one batch are dropped too.
    """

    def __init__(self, existing: Iterable[str] = ()):
        self.seen: Set[str] = set(existing)

    def filter(self, reviews: Iterable[ScrapedReview]) -> List[ScrapedReview]:
        """Reviews not seen before, in input order. Marks them as seen."""
        fresh = []
        for review in reviews:
            if review.fingerprint in self.seen:
                continue
            self.seen.add(review.fingerprint)
            fresh.append(review)
        return fresh

    def forget(self, reviews: Iterable[ScrapedReview]) -> None:
        """Drop fingerprints whose storage write failed so a later source may store them."""
        for review in reviews:
            self.seen.discard(review.fingerprint)


def deduplicate(
    reviews: Iterable[ScrapedReview], existing: Set[str]
) -> Tuple[List[ScrapedReview], Set[str]]:
    """Functional form: returns (unseen reviews, updated fingerprint set)."""
    dedup = Deduplicator(existing)
    fresh = dedup.filter(reviews)
    return fresh, dedup.seen
