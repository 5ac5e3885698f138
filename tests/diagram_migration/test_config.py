"""Tests for configuration models and file < env < CLI loading precedence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from DiagramMigration.config import (
    MigrationConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)
from DiagramMigration.errors import ConfigurationError


class TestDefaults:
    def test_defaults_match_reference_behaviour(self):
        cfg = MigrationConfig()

        assert cfg.limits.convert_workers == 5
        assert cfg.limits.upload_workers == 5
        assert cfg.upload_form.upload_path == "/Agency"
        assert cfg.upload_form.group == "Templates"
        assert cfg.upload_form.filename == "template.sce"
        assert cfg.records.table == "DEPICTION_TB"
        assert cfg.progress.convert_advance_on == "completion"

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            MigrationConfig.model_validate({"unknown": 1})

    def test_base_url_trailing_slash_stripped(self):
        cfg = MigrationConfig.model_validate({"vendor": {"base_url": "https://v.test/"}})
        assert cfg.vendor.base_url == "https://v.test"

    def test_upload_path_gets_leading_slash(self):
        cfg = MigrationConfig.model_validate({"upload_form": {"upload_path": "Agency"}})
        assert cfg.upload_form.upload_path == "/Agency"

    @pytest.mark.parametrize(
        "section",
        [
            {"limits": {"convert_workers": 0}},
            {"limits": {"run_deadline_s": 0}},
            {"limits": {"max_records": 0}},
            {"retry": {"max_attempts": 0}},
            {"logging": {"level": "LOUD"}},
            {"progress": {"convert_advance_on": "sometimes"}},
        ],
    )
    def test_invalid_values_rejected(self, section):
        with pytest.raises(ValidationError):
            MigrationConfig.model_validate(section)


class TestCredentials:
    def test_credentials_resolved(self):
        cfg = MigrationConfig.model_validate(
            {"vendor": {"username": "v", "password": "secret"}, "target": {"username": "u", "password": 1234}}
        )

        assert cfg.vendor_credentials().password == "secret"
        assert cfg.target_credentials().password == "1234"

    def test_missing_credentials_raise(self):
        with pytest.raises(ConfigurationError):
            MigrationConfig().vendor_credentials()

    def test_require_remote_names_missing_settings(self):
        with pytest.raises(ConfigurationError, match="target.base_url"):
            MigrationConfig.model_validate({"vendor": {"base_url": "https://v"}}).require_remote()

    def test_secrets_not_in_dump_or_hash_input(self):
        cfg = MigrationConfig.model_validate({"vendor": {"password": "hunter2"}})

        dumped = json.dumps(cfg.model_dump(mode="json"))

        assert "hunter2" not in dumped
        other = MigrationConfig.model_validate({"vendor": {"password": "different"}})
        assert cfg.config_hash() == other.config_hash()


class TestLoader:
    def test_yaml_file(self, tmp_path: Path):
        path = tmp_path / "migration.yaml"
        path.write_text(yaml.safe_dump({"limits": {"convert_workers": 3}}))

        cfg = load_config(path)

        assert cfg.limits.convert_workers == 3

    def test_json_file(self, tmp_path: Path):
        path = tmp_path / "migration.json"
        path.write_text(json.dumps({"paths": {"output_dir": "elsewhere"}}))

        assert load_config(path).paths.output_dir == "elsewhere"

    def test_precedence_file_env_cli(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "migration.yaml"
        path.write_text(
            yaml.safe_dump({"limits": {"convert_workers": 2, "upload_workers": 2, "max_records": 7}})
        )
        monkeypatch.setenv("DMIG_LIMITS__CONVERT_WORKERS", "3")
        monkeypatch.setenv("DMIG_LIMITS__UPLOAD_WORKERS", "4")

        cfg = load_config(path, cli_overrides={"limits": {"upload_workers": 1, "max_records": None}})

        assert cfg.limits.convert_workers == 3
        assert cfg.limits.upload_workers == 1
        assert cfg.limits.max_records == 7

    def test_env_password_stays_text(self, monkeypatch):
        monkeypatch.setenv("DMIG_TARGET__PASSWORD", "123456")
        monkeypatch.setenv("DMIG_TARGET__USERNAME", "user")

        assert load_config().target_credentials().password == "123456"

    def test_non_mapping_file_rejected(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError):
            load_config(path)

    @pytest.mark.parametrize(
        "name, text, match",
        [
            ("missing.yaml", None, "not found"),
            ("migration.toml", "x = 1", "Unsupported config format"),
            ("broken.json", "{not json", "Cannot parse"),
        ],
    )
    def test_unreadable_files_are_value_errors(self, tmp_path: Path, name, text, match):
        path = tmp_path / name
        if text is not None:
            path.write_text(text)

        with pytest.raises(ValueError, match=match):
            load_config(path)

    def test_empty_files_load_defaults(self, tmp_path: Path):
        for name in ("empty.yaml", "empty.json"):
            (tmp_path / name).write_text("")

            assert load_config(tmp_path / name) == MigrationConfig()

    def test_validate_config_file(self, tmp_path: Path):
        good = tmp_path / "good.yaml"
        good.write_text(yaml.safe_dump({"retry": {"max_attempts": 5}}))
        bad = tmp_path / "bad.yaml"
        bad.write_text(yaml.safe_dump({"retry": {"max_attempts": -1}}))

        assert validate_config_file(good) is True
        with pytest.raises(ValueError):
            validate_config_file(bad)

    def test_export_schema(self):
        schema = export_config_schema()

        assert schema["title"] == "MigrationConfig"
        assert "vendor" in schema["properties"]
