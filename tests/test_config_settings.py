from lzbridge.config import Settings


def test_status_api_base_browser_alias(monkeypatch):
    """Aggregator base should load from the NEXT_PUBLIC_ alias when the plain name is unset."""

    monkeypatch.setenv("STATUS_API_BASE", "")
    monkeypatch.setenv("NEXT_PUBLIC_STATUS_API_BASE", "https://alias.example/v1")

    settings = Settings(_env_file=None)

    assert settings.status_api_base == "https://alias.example/v1"
    assert settings.has_aggregator


def test_status_api_base_direct_env(monkeypatch):
    """Environment-provided STATUS_API_BASE remains the primary source."""

    monkeypatch.setenv("STATUS_API_BASE", "https://primary.example/v1")
    monkeypatch.setenv("NEXT_PUBLIC_STATUS_API_BASE", "https://alias.example/v1")

    settings = Settings(_env_file=None)

    assert settings.status_api_base == "https://primary.example/v1"


def test_supported_pairs_alias(monkeypatch):
    monkeypatch.delenv("SUPPORTED_PAIRS", raising=False)
    monkeypatch.setenv("NEXT_PUBLIC_SUPPORTED_PAIRS", "hii:sepolia,sepolia:hii")

    assert Settings(_env_file=None).supported_pairs == "hii:sepolia,sepolia:hii"


def test_poll_interval_in_seconds(monkeypatch):
    monkeypatch.setenv("STATUS_POLL_MS", "2500")

    settings = Settings(_env_file=None)

    assert settings.status_poll_seconds == 2.5


def test_credentials_need_both_parts(monkeypatch):
    monkeypatch.setenv("STATUS_API_USERNAME", "alice")
    monkeypatch.delenv("STATUS_API_PASSWORD", raising=False)

    assert Settings(_env_file=None).has_aggregator_credentials is False
