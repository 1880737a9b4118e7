from stageflow.config import Settings


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("STAGEFLOW_SERVICE_BASE_URL", "http://practice-svc:8001")
    monkeypatch.setenv("STAGEFLOW_MAX_CONCURRENT_UPLOADS", "2")

    settings = Settings()

    assert settings.service_base_url == "http://practice-svc:8001"
    assert settings.max_concurrent_uploads == 2
    assert settings.upload_timeout_seconds == 120.0
    assert settings.max_tracked_transitions == 1000
