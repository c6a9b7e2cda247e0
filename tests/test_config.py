from config import Settings, get_settings


def test_defaults() -> None:
    settings = Settings()
    assert settings.default_capacity == 5
    assert settings.max_capacity == 50
    assert settings.max_delay_minutes == 480


def test_reads_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPD_MAX_CAPACITY", "12")
    monkeypatch.setenv("OPD_APP_NAME", "Test OPD")
    settings = Settings()
    assert settings.max_capacity == 12
    assert settings.app_name == "Test OPD"


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
