"""
Plain-text exports of an enriched reading list.

  - MangaUpdates links: one series URL per matched record
  - Plain list: one title per record (resolved title when matched)
"""

from typing import Iterable

from .matching.models import MatchKind, Subscription
from .providers.mangaupdates import series_url


def export_mu_links(records: Iterable[Subscription]) -> str:
    """
    Export as MangaUpdates links.

    Format: https://www.mangaupdates.com/series/{base36id}/{slug}
    """
    lines = []
    for record in records:
        match = record.match
        if match is None or match.kind == MatchKind.NONE or match.series_id is None:
            continue
        lines.append(series_url(match.series_id, match.title or record.title))
    return '\n'.join(lines)


def export_plain_list(records: Iterable[Subscription]) -> str:
    """Export as a plain title list."""
    return '\n'.join(
        record.match.title if record.match is not None and record.match.title else record.title
        for record in records
    )


EXPORT_FORMATS = {
    'muTxt': (export_mu_links, 'mu_links.txt'),
    'plainTxt': (export_plain_list, 'list.txt'),
}
