"""Tests for aumai_ocibuild.settings."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from aumai_ocibuild.errors import ConfigurationError
from aumai_ocibuild.settings import load_config, render_reference
from aumai_ocibuild.transport import Credentials


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "build.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_full_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        path = _write(
            tmp_path,
            {
                "from": "base.tar",
                "from_pull": "docker://alpine:3.19",
                "from_user": "reader",
                "from_password": "s3cret",
                "dest": "docker://registry.local/app:{short_hash}",
                "output": "out",
                "files": [{"source": "bin/app", "mode": "755"}],
                "dirs": [{"name": "etc", "files": [{"source": "conf/app.ini"}]}],
                "add_env": {"MODE": "prod"},
                "clear_env": True,
                "cmd": ["/app"],
                "ports": [{"port": 8080}, {"port": 53, "transport": "udp"}],
                "labels": {"team": "infra"},
                "stop_signal": "SIGTERM",
            },
        )
        config = load_config(path)
        assert config.from_path == tmp_path / "base.tar"
        assert config.output == tmp_path / "out"
        assert config.from_credentials() == Credentials("reader", "s3cret")
        assert config.dest_credentials() is None

        spec = config.to_build_spec(config.output)
        assert spec.base == tmp_path / "base.tar"
        assert spec.files[0].source == tmp_path / "bin" / "app"
        assert spec.dirs[0].files[0].source == tmp_path / "conf" / "app.ini"
        assert spec.clear_env is True
        assert spec.add_env == {"MODE": "prod"}
        assert [p.port for p in spec.ports] == [8080, 53]

    def test_requires_dest_or_output(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"files": []})
        with pytest.raises(ConfigurationError, match="neither dest nor output"):
            load_config(path)

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "build.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="error parsing config json"):
            load_config(path)

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"output": "out", "bogus": 1})
        with pytest.raises(ConfigurationError, match="invalid config"):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="error reading config"):
            load_config(tmp_path / "nope.json")


class TestRenderReference:
    def test_placeholders(self) -> None:
        build_hash = "0123456789abcdef" * 4
        assert render_reference("repo:{short_hash}", build_hash) == "repo:01234567"
        assert render_reference("repo@{hash}", build_hash) == f"repo@{build_hash}"

    def test_no_placeholders(self) -> None:
        assert render_reference("repo:latest", "ab" * 32) == "repo:latest"
