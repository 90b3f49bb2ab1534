from mulinker_app.exporters import EXPORT_FORMATS, export_mu_links, export_plain_list
from mulinker_app.matching.models import MatchKind, MatchResult, Subscription


RECORDS = [
    Subscription("One Piece").with_match(
        MatchResult(title="One Piece", kind=MatchKind.EXACT, score=1.0, series_id=36)
    ),
    Subscription("Blue Box").with_match(
        MatchResult(title="Ao no Hako", kind=MatchKind.FUZZY, score=0.8, series_id=35)
    ),
    Subscription("Unknown").with_match(MatchResult.unmatched("Unknown")),
    Subscription("Not Yet Enriched"),
]


def test_mu_links_only_matched_records():
    assert export_mu_links(RECORDS).splitlines() == [
        "https://www.mangaupdates.com/series/10/one-piece",
        "https://www.mangaupdates.com/series/z/ao-no-hako",
    ]


def test_plain_list_uses_resolved_titles():
    assert export_plain_list(RECORDS).splitlines() == [
        "One Piece",
        "Ao no Hako",
        "Unknown",
        "Not Yet Enriched",
    ]


def test_empty_export():
    assert export_mu_links([]) == ""
    assert export_plain_list([]) == ""


def test_export_formats():
    assert set(EXPORT_FORMATS) == {"muTxt", "plainTxt"}
    assert EXPORT_FORMATS["muTxt"][1] == "mu_links.txt"
