import argparse
import json
import os

import pytest

from fanout_bench.cli import parse_args
from fanout_bench.config import HarnessConfig, load_json_config, resolve_config, validate_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("FANOUT_"):
            monkeypatch.delenv(name)


def test_defaults_match_reference_workload():
    config, applied, ignored = resolve_config(parse_args([]), {})
    assert (config.instances, config.write_rows, config.readers) == (10, 10_000, 10)
    assert (config.batch_size, config.min_len, config.max_len) == (100, 10, 1000)
    assert config.page_cache_bytes is None
    assert config.plot
    assert applied == [] and ignored == []


def test_cli_beats_file_beats_default(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"instances": 4, "readers": 7}), encoding="utf-8")
    args = parse_args(["--config", str(path), "--instances", "2", "--no-plot"])
    config, _, _ = resolve_config(args, load_json_config(args.config))
    assert config.instances == 2
    assert config.readers == 7
    assert config.write_rows == 10_000
    assert not config.plot


def test_env_ignored_unless_allowed(monkeypatch):
    monkeypatch.setenv("FANOUT_INSTANCES", "3")
    config, applied, ignored = resolve_config(parse_args([]), {})
    assert config.instances == 10
    assert ignored == ["FANOUT_INSTANCES"]

    config, applied, ignored = resolve_config(parse_args(["--allow-env-overrides"]), {})
    assert config.instances == 3
    assert applied == ["FANOUT_INSTANCES"]


def test_env_does_not_beat_cli(monkeypatch):
    monkeypatch.setenv("FANOUT_READERS", "9")
    config, applied, _ = resolve_config(parse_args(["--allow-env-overrides", "--readers", "1"]), {})
    assert config.readers == 1
    assert applied == []


def test_bad_env_value_exits(monkeypatch):
    monkeypatch.setenv("FANOUT_BATCH_SIZE", "lots")
    with pytest.raises(SystemExit, match="FANOUT_BATCH_SIZE"):
        resolve_config(parse_args(["--allow-env-overrides"]), {})


def test_missing_and_invalid_config_files(tmp_path):
    with pytest.raises(SystemExit, match="not found"):
        load_json_config(str(tmp_path / "nope.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(SystemExit, match="Invalid JSON"):
        load_json_config(str(bad))
    unknown = tmp_path / "unknown.json"
    unknown.write_text(json.dumps({"threads": 4}), encoding="utf-8")
    with pytest.raises(SystemExit, match="threads"):
        load_json_config(str(unknown))
    assert load_json_config(None) == {}


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"instances": -1}, "instances"),
        ({"readers": -2}, "readers"),
        ({"batch_size": 0}, "batch_size"),
        ({"min_len": -1}, "min_len"),
        ({"min_len": 10, "max_len": 10}, "max_len"),
        ({"page_cache_bytes": 0}, "page_cache_bytes"),
        ({"storage_root": "/definitely/not/here"}, "storage_root"),
    ],
)
def test_validation_rejects(overrides, message):
    with pytest.raises(SystemExit, match=message):
        validate_config(HarnessConfig(**overrides))


def test_zero_counts_are_valid():
    validate_config(HarnessConfig(instances=0, write_rows=0, readers=0))


def test_workload_settings_view():
    config = HarnessConfig(batch_size=7, min_len=1, max_len=3)
    assert config.workload.batch_size == 7
    assert (config.workload.min_len, config.workload.max_len) == (1, 3)


def test_namespace_without_new_flags_is_tolerated():
    config, _, _ = resolve_config(argparse.Namespace(), {"write_rows": 5})
    assert config.write_rows == 5
