# Copyright (c) 2025, Lanegrid Authors
import logging

import pytest

from lanegrid.grid.config import DEFAULT_BLOCK_SIZE, LaunchConfig, is_power_of_two


def test_defaults(clean_env):
    config = LaunchConfig.from_env()
    assert config.block_size == DEFAULT_BLOCK_SIZE == 128
    assert config.schedule == "sequential"
    assert config.seed == 0
    assert config.validate is True
    assert config.workers >= 1


@pytest.mark.parametrize("n,expected", [(1, True), (2, True), (128, True), (512, True), (0, False), (96, False), (-4, False)])
def test_is_power_of_two(n, expected):
    assert is_power_of_two(n) is expected


@pytest.mark.parametrize(
    "kwargs",
    [
        {"block_size": 96},
        {"block_size": 0},
        {"schedule": "random"},
        {"num_workers": 0},
    ],
)
def test_invalid_explicit_values_raise(kwargs):
    with pytest.raises(ValueError):
        LaunchConfig(**kwargs)


def test_env_overrides(clean_env):
    clean_env.setenv("LANEGRID_SCHEDULE", "threaded")
    clean_env.setenv("LANEGRID_BLOCK_SIZE", "512")
    clean_env.setenv("LANEGRID_NUM_WORKERS", "3")
    clean_env.setenv("LANEGRID_SEED", "7")
    config = LaunchConfig.from_env()
    assert config.schedule == "threaded"
    assert config.block_size == 512
    assert config.workers == 3
    assert config.seed == 7


def test_keyword_overrides_beat_env(clean_env):
    clean_env.setenv("LANEGRID_SCHEDULE", "threaded")
    config = LaunchConfig.from_env(schedule="reversed", block_size=64)
    assert config.schedule == "reversed"
    assert config.block_size == 64


def test_invalid_env_values_are_ignored_with_warning(clean_env, caplog):
    clean_env.setenv("LANEGRID_SCHEDULE", "backwards")
    clean_env.setenv("LANEGRID_BLOCK_SIZE", "100")
    clean_env.setenv("LANEGRID_SEED", "abc")
    with caplog.at_level(logging.WARNING, logger="lanegrid.grid.config"):
        config = LaunchConfig.from_env()
    assert config == LaunchConfig()
    messages = " ".join(r.getMessage() for r in caplog.records)
    assert "LANEGRID_SCHEDULE" in messages
    assert "LANEGRID_BLOCK_SIZE" in messages
    assert "LANEGRID_SEED" in messages


def test_unknown_override_raises(clean_env):
    with pytest.raises(TypeError):
        LaunchConfig.from_env(lanes=64)
