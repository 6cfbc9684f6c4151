"""
Unit tests for configuration loading.

Environment variables are set with monkeypatch; `_env_file=None` keeps a
developer's local .env out of the picture.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from evisa_lifecycle.config import AppSettings, DatabaseSettings, NumberingSettings, SchedulerSettings


class TestDefaults:
    def test_memory_backend_needs_nothing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("STORAGE_BACKEND", raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.storage_backend == "memory"
        assert settings.database is None
        assert settings.numbering.prefix == "EVISA"
        assert settings.scheduler.cron == "0 * * * *"
        assert settings.documents.url is None


class TestEnvironment:
    def test_nested_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "postgres")
        monkeypatch.setenv("DATABASE__HOST", "db")
        monkeypatch.setenv("DATABASE__NAME", "evisa")
        monkeypatch.setenv("DATABASE__USERNAME", "app")
        monkeypatch.setenv("DATABASE__PASSWORD", "secret")
        monkeypatch.setenv("NUMBERING__PREFIX", "UAE")
        monkeypatch.setenv("NOTIFICATIONS__URL", "https://notify.example.com/hook")

        settings = AppSettings(_env_file=None)

        assert settings.database is not None
        assert settings.database.get_dsn() == "postgresql://app:secret@db:5432/evisa"
        assert settings.numbering.prefix == "UAE"
        assert settings.notifications.url == "https://notify.example.com/hook"

    def test_postgres_without_database_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "postgres")
        with pytest.raises(ValidationError, match="DATABASE"):
            AppSettings(_env_file=None)

    def test_unknown_backend_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "mongo")
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None)


class TestDatabaseSettings:
    def test_full_dsn_wins(self) -> None:
        settings = DatabaseSettings(dsn="postgresql://u:p@h/d", host="ignored")
        assert settings.get_dsn() == "postgresql://u:p@h/d"

    def test_missing_components_listed(self) -> None:
        with pytest.raises(ValidationError, match="DATABASE__PASSWORD"):
            DatabaseSettings(host="db", name="evisa", username="app")

    def test_password_not_in_repr(self) -> None:
        settings = DatabaseSettings(host="db", name="evisa", username="app", password="secret")
        assert "secret" not in repr(settings)


class TestSubSettings:
    @pytest.mark.parametrize("prefix", ["evisa", "E1", "TOOLONGPREFIX"])
    def test_prefix_must_be_upper_letters(self, prefix: str) -> None:
        with pytest.raises(ValidationError):
            NumberingSettings(prefix=prefix)

    def test_cron_needs_five_fields(self) -> None:
        with pytest.raises(ValidationError, match="5 fields"):
            SchedulerSettings(cron="0 * * *")

    def test_cron_is_trimmed(self) -> None:
        assert SchedulerSettings(cron="  */15 * * * * ").cron == "*/15 * * * *"
