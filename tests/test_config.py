"""Tests for YAML configuration loading.

Run with: pytest tests/test_config.py -v
"""

from __future__ import annotations

from pathlib import Path

import pytest

from upstream_notify.config import NotifierConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for var in (
        "UPSTREAM_NOTIFY_CONFIG",
        "UPSTREAM_NOTIFY_DEBUG",
        "JENKINS_URL",
        "JENKINS_USER",
        "JENKINS_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "absent.yaml")
        assert config == NotifierConfig()

    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "upstream-notify.yaml"
        path.write_text(
            "debug_mode: true\n"
            "resolver:\n"
            "  default_suffix: '@corp.example'\n"
            "  excluded_users: [jenkins]\n"
            "  addresses:\n"
            "    alice: [alice@corp.example, 'cc:lead@corp.example']\n"
            "jenkins:\n"
            "  url: https://ci.example.com\n"
            "  timeout: 10\n"
        )

        config = load_config(path)

        assert config.debug_mode is True
        assert config.resolver.default_suffix == "@corp.example"
        assert config.resolver.addresses["alice"][1] == "cc:lead@corp.example"
        assert config.jenkins.url == "https://ci.example.com"
        assert config.jenkins.timeout == 10

    def test_default_path_in_working_directory(self, tmp_path: Path) -> None:
        (tmp_path / "upstream-notify.yaml").write_text("debug_mode: true\n")
        assert load_config().debug_mode is True

    def test_path_from_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("resolver:\n  allow_unregistered: false\n")
        monkeypatch.setenv("UPSTREAM_NOTIFY_CONFIG", str(path))

        assert load_config().resolver.allow_unregistered is False

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("resolver: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(path)

    def test_invalid_schema(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("jenkins:\n  timeout: -5\n")
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(path)

    def test_environment_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("jenkins:\n  url: https://file.example\n  user: file-user\n")
        monkeypatch.setenv("JENKINS_URL", "https://env.example")
        monkeypatch.setenv("JENKINS_TOKEN", "t0ken")
        monkeypatch.setenv("UPSTREAM_NOTIFY_DEBUG", "true")

        config = load_config(path)

        assert config.jenkins.url == "https://env.example"
        assert config.jenkins.user == "file-user"
        assert config.jenkins.token == "t0ken"
        assert config.debug_mode is True
