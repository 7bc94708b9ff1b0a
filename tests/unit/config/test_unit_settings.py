# tests/unit/config/test_unit_settings.py — v1
"""Tests for config/settings.py and config/steps.py."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from adacta.config.settings import ConfigurationError, Settings, load_settings
from adacta.config.steps import DEFAULT_STEPS, load_step_definitions


class TestSettingsDefaults:
    def test_default_backends(self):
        s = Settings(_env_file=None)
        assert s.registry_backend == "json"
        assert s.search_backend == "memory"
        assert s.container_runtime == "docker"

    def test_default_executor_pool(self):
        s = Settings(_env_file=None)
        assert s.executor_pool_size == 4
        assert s.executor_queue_limit == 0

    def test_text_artifacts_list(self):
        s = Settings(_env_file=None, search_text_artifacts="text, ocr ,")
        assert s.search_text_artifacts_list == ["text", "ocr"]

    def test_disabled_steps_list(self):
        s = Settings(_env_file=None, pipeline_disabled_steps="thumbnail")
        assert s.disabled_steps_list == ["thumbnail"]


class TestSettingsValidation:
    def test_elasticsearch_requires_url(self):
        with pytest.raises(ConfigurationError, match="SEARCH_URL"):
            Settings(_env_file=None, search_backend="elasticsearch")

    def test_work_root_must_differ(self, tmp_path):
        with pytest.raises(ConfigurationError, match="WORK_ROOT"):
            Settings(_env_file=None, archive_root=tmp_path, work_root=tmp_path)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ConfigurationError, match="TIMEOUT"):
            Settings(_env_file=None, default_step_timeout_s=0)

    def test_pool_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, executor_pool_size=0)

    def test_negative_queue_limit(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, executor_queue_limit=-1)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("EXECUTOR_POOL_SIZE", "7")
        assert Settings(_env_file=None).executor_pool_size == 7

    def test_load_settings_overrides(self):
        s = load_settings(_env_file=None, registry_backend="sqlite")
        assert s.registry_backend == "sqlite"


class TestStepDefinitions:
    def test_default_steps(self):
        names = [s.name for s in DEFAULT_STEPS]
        assert names == ["extract_text", "thumbnail"]
        assert {o for s in DEFAULT_STEPS for o in s.outputs} == {"text", "thumbnail"}

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "steps.json"
        path.write_text(json.dumps([
            {"name": "ocr", "image": "ocr:1", "outputs": ["text"], "timeout_s": 30},
            {"name": "lang", "image": "lang:1", "inputs": ["text"], "outputs": ["language"]},
        ]))
        steps = load_step_definitions(path)
        assert [s.name for s in steps] == ["ocr", "lang"]
        assert steps[0].timeout_s == 30
        assert steps[1].inputs == ["text"]

    def test_load_rejects_non_array(self, tmp_path: Path):
        path = tmp_path / "steps.json"
        path.write_text(json.dumps({"name": "ocr"}))
        with pytest.raises(ValueError, match="JSON array"):
            load_step_definitions(path)

    def test_load_rejects_invalid_step(self, tmp_path: Path):
        path = tmp_path / "steps.json"
        path.write_text(json.dumps([{"name": "ocr", "image": "ocr:1", "outputs": []}]))
        with pytest.raises(ValidationError):
            load_step_definitions(path)

    def test_load_applies_settings_defaults(self, tmp_path: Path):
        path = tmp_path / "steps.json"
        path.write_text(json.dumps([
            {"name": "ocr", "image": "ocr:1", "outputs": ["text"]},
            {
                "name": "lang", "image": "lang:1", "inputs": ["text"],
                "outputs": ["language"], "timeout_s": 5,
                "retry": {"max_attempts": 1},
            },
        ]))
        s = Settings(
            _env_file=None,
            default_step_timeout_s=42.0,
            default_max_attempts=7,
            default_backoff_base_s=0.5,
            default_memory_limit="1g",
            default_cpu_limit=2.0,
        )
        ocr, lang = load_step_definitions(path, s)
        assert ocr.timeout_s == 42.0
        assert ocr.retry.max_attempts == 7
        assert ocr.retry.base_delay_s == 0.5
        assert ocr.limits.memory == "1g"
        assert ocr.limits.cpus == 2.0
        assert lang.timeout_s == 5
        assert lang.retry.max_attempts == 1
        assert lang.retry.base_delay_s == 0.5
