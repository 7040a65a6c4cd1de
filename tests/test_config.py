"""Tests for settings, logging setup and service wiring."""

import os
from pathlib import Path

import pytest

from discrecovery.config import Settings, configure_logging, create_service

from conftest import CONFIG_DIR, FINDER

ENV_VARS = (
    "RECOVERY_DATABASE_URL",
    "RECOVERY_CONFIG_DIR",
    "RECOVERY_AUDIT_LOG",
    "RECOVERY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self, tmp_path: Path) -> None:
        settings = Settings.from_env(tmp_path / "missing.env")
        assert settings.database_url == "sqlite:///recovery.db"
        assert settings.config_dir == Path("config")
        assert settings.audit_log_path is None
        assert settings.log_level == "INFO"

    def test_environment_values(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv("RECOVERY_DATABASE_URL", "sqlite:///elsewhere.db")
        monkeypatch.setenv("RECOVERY_AUDIT_LOG", str(tmp_path / "audit.jsonl"))
        monkeypatch.setenv("RECOVERY_LOG_LEVEL", "debug")
        settings = Settings.from_env(tmp_path / "missing.env")
        assert settings.database_url == "sqlite:///elsewhere.db"
        assert settings.audit_log_path == tmp_path / "audit.jsonl"
        assert settings.log_level == "DEBUG"

    def test_dotenv_file(self, monkeypatch, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "RECOVERY_CONFIG_DIR=/srv/recovery/config\nRECOVERY_LOG_LEVEL=WARNING\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("RECOVERY_LOG_LEVEL", "ERROR")
        settings = Settings.from_env(env_file)
        os.environ.pop("RECOVERY_CONFIG_DIR", None)
        assert settings.config_dir == Path("/srv/recovery/config")
        assert settings.log_level == "ERROR"


class TestLogging:
    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("LOUD")

    def test_known_level(self) -> None:
        configure_logging("warning")


class TestCreateService:
    def test_wired_service_runs(self, tmp_path: Path) -> None:
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'recovery.db'}",
            config_dir=CONFIG_DIR,
            audit_log_path=tmp_path / "audit" / "audit.jsonl",
        )
        service = create_service(settings)
        result = service.issue_qr_codes(2, FINDER)
        assert result.success
        assert service.status()["audit"]["records"] == 1
        assert settings.audit_log_path.exists()

    def test_missing_policy_fails_loud(self, tmp_path: Path) -> None:
        settings = Settings(database_url="sqlite://", config_dir=tmp_path)
        with pytest.raises(FileNotFoundError):
            create_service(settings)
