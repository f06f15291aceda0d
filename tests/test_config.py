import pytest

from upload_scheduler.config import SchedulerSettings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CONCURRENCY_LIMIT", "BACKOFF_BASE_DELAY", "BACKOFF_MAX_DELAY", "FINALIZE_MAX_ATTEMPTS", "OPERATION_TIMEOUT"):
        monkeypatch.delenv(f"UPLOAD_SCHEDULER_{name}", raising=False)
    settings = SchedulerSettings(_env_file=None)
    assert settings.concurrency_limit == 5
    assert settings.backoff_base_delay == 1.0
    assert settings.backoff_max_delay == 10.0
    assert settings.finalize_max_attempts == 3
    assert settings.operation_timeout is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UPLOAD_SCHEDULER_CONCURRENCY_LIMIT", "2")
    monkeypatch.setenv("UPLOAD_SCHEDULER_OPERATION_TIMEOUT", "30")
    settings = SchedulerSettings(_env_file=None)
    assert settings.concurrency_limit == 2
    assert settings.operation_timeout == 30.0


def test_backoff_policy_from_settings() -> None:
    settings = SchedulerSettings(_env_file=None, backoff_base_delay=0.5, backoff_max_delay=2.0)
    assert settings.backoff.delay(1) == 0.5
    assert settings.backoff.delay(4) == 2.0


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        SchedulerSettings(_env_file=None, concurrency_limit=0)
    with pytest.raises(ValueError, match="backoff_max_delay"):
        SchedulerSettings(_env_file=None, backoff_base_delay=5.0, backoff_max_delay=1.0)
