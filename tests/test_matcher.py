import pytest

from mulinker_app.matching.matcher import TitleScorer, cache_key, normalize_title


@pytest.fixture
def scorer():
    return TitleScorer()


def test_normalize_strips_punctuation_and_case():
    assert normalize_title("One Piece!") == "one piece"
    assert normalize_title("Attack on Titan: Colossal Edition") == "attack on titan colossal edition"


def test_normalize_collapses_whitespace():
    assert normalize_title("  Blue\tBox \n") == "blue box"
    assert normalize_title("Kaguya-sama  -  Love is War") == "kaguyasama love is war"


def test_normalize_empty_and_non_latin():
    assert normalize_title(None) == ""
    assert normalize_title("") == ""
    assert normalize_title("ワンピース") == ""


def test_cache_key_drops_spaces():
    assert cache_key("One Piece") == "onepiece"
    assert cache_key("ONE  PIECE!!") == "onepiece"


def test_exact_after_normalization(scorer):
    assert scorer.score("One Piece", "ONE PIECE") == 1.0
    assert scorer.score("one-piece", "One Piece") < 1.0


def test_exact_ignores_category_penalty(scorer):
    assert scorer.score("One Piece", "One Piece", "Novel") == 1.0


def test_empty_inputs_score_zero(scorer):
    assert scorer.score("", "One Piece") == 0.0
    assert scorer.score("One Piece", None) == 0.0
    assert scorer.score("!!!", "One Piece") == 0.0


def test_score_is_symmetric_without_category(scorer):
    assert scorer.score("Blue Box", "Blue Lock") == scorer.score("Blue Lock", "Blue Box")


def test_edit_ratio_used_for_similar_lengths(scorer):
    # jaccard 1/3, levenshtein 3 over 9 chars
    assert scorer.score("Blue Box", "Blue Lock") == pytest.approx(1 - 3 / 9)


def test_jaccard_used_when_lengths_differ(scorer):
    assert scorer.score("Attack on Titan", "Attack on Titan: Colossal Edition") == pytest.approx(0.6)


def test_short_titles_use_edit_ratio_only(scorer):
    # "bleh" is shorter than 5 chars: two insertions over 6 chars
    assert scorer.score("Bleh", "Bleach") == pytest.approx(1 - 2 / 6)


def test_edit_ratio_skipped_for_large_length_gap(scorer):
    assert scorer.edit_ratio("abc", "abcdefgh") == 0.0
    assert scorer.edit_ratio("abcd", "abcdefgh") == pytest.approx(0.5)


def test_jaccard():
    assert TitleScorer.jaccard("a b c", "b c d") == pytest.approx(0.5)
    assert TitleScorer.jaccard("", "a") == 0.0


def test_category_penalty(scorer):
    score = scorer.score("Attack on Titan", "Attack on Titan: Colossal Edition", "Anthology")
    assert score == pytest.approx(0.1)


def test_category_penalty_waived_when_query_hints(scorer):
    assert scorer.category_penalty_for("attack on titan anthology", "Anthology") == 0.0
    assert scorer.category_penalty_for("some doujin", "Doujinshi") == 0.0
    assert scorer.category_penalty_for("overlord", "Novel") == 0.5
    assert scorer.category_penalty_for("overlord", "Doujinshi") == 0.5
    assert scorer.category_penalty_for("overlord", "Manga") == 0.0
    assert scorer.category_penalty_for("overlord", None) == 0.0


def test_penalty_can_push_score_below_zero(scorer):
    assert scorer.score("Berserk", "Gatsu", "Novel") < 0


def test_custom_penalty():
    scorer = TitleScorer(category_penalty=0.2)
    score = scorer.score("Attack on Titan", "Attack on Titan: Colossal Edition", "Anthology")
    assert score == pytest.approx(0.4)


def test_disjoint_tokens_fall_back_to_edit_ratio(scorer):
    assert TitleScorer.jaccard("berserk", "claymore") == 0.0
    assert scorer.score("Berserk", "Claymore") == scorer.edit_ratio("berserk", "claymore")
    assert scorer.score("Berserk", "Vagabond Volume One") == 0.0
