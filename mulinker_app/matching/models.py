"""
================================================================================
mulinker - Matching Models
================================================================================
Data models shared by the resolver, the cache and the enrichment driver.

  - CandidateRecord: one MangaUpdates series returned by a search
  - MatchResult:     outcome of resolving one title (exact / fuzzy / none)
  - Subscription:    one user title plus the match merged into it
================================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class MatchKind(str, Enum):
    """How a title was resolved against the catalog."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


# =============================================================================
# DATA MODELS
# =============================================================================

@dataclass(frozen=True)
class CandidateRecord:
    """
    A catalog entry returned by a search.

    `hit_title` is the alias the catalog matched the query against (often an
    associated name rather than the canonical title).
    """
    series_id: int
    title: str
    hit_title: Optional[str] = None
    year: Optional[int] = None
    category: Optional[str] = None  # "Manga", "Doujinshi", "Novel", "Anthology"...
    image_url: Optional[str] = None
    url: Optional[str] = None

    @property
    def scoring_title(self) -> str:
        """Alias title when present, canonical title otherwise."""
        return self.hit_title or self.title


@dataclass(frozen=True)
class MatchResult:
    """
    Result of resolving a single title.

    Invariant: kind == NONE implies series_id, url and year are None and
    score is 0 (or the sub-threshold best score for a fresh miss).
    """
    title: str                       # Resolved title (original title on no match)
    kind: MatchKind = MatchKind.NONE
    score: float = 0.0
    series_id: Optional[int] = None
    url: Optional[str] = None
    year: Optional[int] = None
    category: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def unmatched(cls, original_title: str, score: float = 0.0) -> "MatchResult":
        """Build a no-match result that keeps the original title for display."""
        return cls(title=original_title, kind=MatchKind.NONE, score=score)

    @classmethod
    def from_candidate(
        cls,
        candidate: CandidateRecord,
        kind: MatchKind,
        score: float
    ) -> "MatchResult":
        return cls(
            title=candidate.title,
            kind=kind,
            score=score,
            series_id=candidate.series_id,
            url=candidate.url,
            year=candidate.year,
            category=candidate.category,
            image_url=candidate.image_url,
        )

    @property
    def is_matched(self) -> bool:
        return self.kind != MatchKind.NONE and self.series_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary (cache payload)."""
        return {
            'title': self.title,
            'kind': self.kind.value,
            'score': self.score,
            'series_id': self.series_id,
            'url': self.url,
            'year': self.year,
            'category': self.category,
            'image_url': self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchResult":
        return cls(
            title=data['title'],
            kind=MatchKind(data.get('kind', MatchKind.NONE.value)),
            score=float(data.get('score', 0.0)),
            series_id=data.get('series_id'),
            url=data.get('url'),
            year=data.get('year'),
            category=data.get('category'),
            image_url=data.get('image_url'),
        )


@dataclass(frozen=True)
class Subscription:
    """
    A title harvested from the user's reading list.

    `match` is the resolved-match marker: any attached MatchResult (even a
    NONE one) means the record was already enriched and is skipped on re-runs.
    """
    title: str
    url: Optional[str] = None
    match: Optional[MatchResult] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_enriched(self) -> bool:
        return self.match is not None

    def with_match(self, match: MatchResult) -> "Subscription":
        return replace(self, match=match)

    def reject_match(self) -> "Subscription":
        """Reset to the unmatched state, reverting the display title."""
        return replace(self, match=MatchResult.unmatched(self.title))

    def to_dict(self) -> Dict[str, Any]:
        """Flatten the record and its match fields for API responses."""
        data: Dict[str, Any] = dict(self.extra)
        data['title'] = self.title
        data['url'] = self.url
        if self.match is not None:
            data.update({
                'mu_id': self.match.series_id,
                'mu_title': self.match.title,
                'mu_url': self.match.url,
                'mu_year': self.match.year,
                'mu_score': self.match.score,
                'mu_match_type': self.match.kind.value,
                'mu_category': self.match.category,
                'mu_image': self.match.image_url,
            })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subscription":
        """Build a record from caller input; unknown keys are carried through."""
        known = {'title', 'url'}
        extra = {k: v for k, v in data.items() if k not in known and not k.startswith('mu_')}
        return cls(title=str(data['title']), url=data.get('url'), extra=extra)
