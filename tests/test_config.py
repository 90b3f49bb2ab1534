from mulinker_app.cli import parse_args, read_titles
from mulinker_app.config import Settings
from mulinker_app.routes.validators import parse_subscriptions, validate_session_id


def test_settings_defaults():
    settings = Settings()
    assert settings.concurrency == 2
    assert settings.search_page_size == 10
    assert settings.rate_limit.max_attempts == 4
    assert settings.cache_backend == "json"
    assert settings.cache_file.endswith("cache_mangaupdates.json")


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("MU_API_URL", "https://mu.test/v1/")
    monkeypatch.setenv("ENRICH_CONCURRENCY", "4")
    monkeypatch.setenv("RATE_MIN_DELAY", "0.5")
    monkeypatch.setenv("CACHE_BACKEND", "Memory")
    monkeypatch.setenv("CACHE_TTL", "not-a-number")

    settings = Settings.from_env()

    assert settings.mu_api_url == "https://mu.test/v1"
    assert settings.concurrency == 4
    assert settings.rate_limit.min_delay == 0.5
    assert settings.cache_backend == "memory"
    assert settings.cache_ttl == 0


def test_concurrency_from_env_has_floor(monkeypatch):
    monkeypatch.setenv("ENRICH_CONCURRENCY", "0")
    assert Settings.from_env().concurrency == 1


def test_with_overrides():
    settings = Settings().with_overrides(concurrency=5)
    assert settings.concurrency == 5
    assert Settings().concurrency == 2


def test_validate_session_id():
    assert validate_session_id("session-0123456789abcdef") is None
    assert validate_session_id(None) == "Missing sessionId"
    assert validate_session_id("session-XYZ") == "Invalid sessionId format"
    assert validate_session_id(12) == "Invalid sessionId format"


def test_parse_subscriptions_variants():
    records, error = parse_subscriptions({"titles": ["One Piece"]})
    assert error is None
    assert records == [{"title": "One Piece"}]

    records, error = parse_subscriptions(
        {"subscriptions": [{"title": "Blue Box", "url": "https://example.com/bb", "source": "mal"}]}
    )
    assert error is None
    assert records[0]["source"] == "mal"


def test_parse_subscriptions_errors():
    assert parse_subscriptions({})[1] == "Missing required field: titles"
    assert parse_subscriptions({"titles": [1]})[1] == "Entry 0: Field 'title' must be str"
    assert parse_subscriptions({"titles": ["x" * 501]})[1] == "Entry 0: Field 'title' exceeds max length 500"
    assert parse_subscriptions({"subscriptions": [{"title": "a", "url": 5}]})[1] == "Entry 0: url must be str"
    assert "Too many titles" in parse_subscriptions({"titles": ["a"] * 1001})[1]


def test_cli_reads_titles(tmp_path):
    path = tmp_path / "titles.txt"
    path.write_text("One Piece\n\n# comment\n  Blue Box  \n", encoding="utf-8")
    assert read_titles(str(path)) == ["One Piece", "Blue Box"]


def test_cli_args():
    args = parse_args(["titles.txt", "--format", "muTxt", "--concurrency", "3"])
    assert args.titles == "titles.txt"
    assert args.format == "muTxt"
    assert args.concurrency == 3
    assert args.output == "-"


def test_cache_flush_and_purge_settings(monkeypatch):
    settings = Settings()
    assert settings.cache_flush_every == 20
    assert settings.session_purge_interval == 600.0

    monkeypatch.setenv("CACHE_FLUSH_EVERY", "0")
    monkeypatch.setenv("SESSION_PURGE_INTERVAL", "30")
    settings = Settings.from_env()
    assert settings.cache_flush_every == 1
    assert settings.session_purge_interval == 30.0
