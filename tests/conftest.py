# Copyright (c) 2025, Lanegrid Authors
"""
Pytest fixtures for lanegrid tests.

The functional kernels read their default launch config from the
environment, so ``--schedule`` (or LANEGRID_SCHEDULE) reruns the whole
suite under another block schedule:

    pytest tests --schedule shuffled
"""

import os

import pytest
import torch

HAS_CUDA = torch.cuda.is_available()


@pytest.fixture
def cuda_device():
    """Fixture providing a CUDA device for tests."""
    if not HAS_CUDA:
        pytest.skip("CUDA not available")
    return torch.device("cuda:0")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every LANEGRID_* variable for the duration of a test."""
    for name in list(os.environ):
        if name.startswith("LANEGRID_"):
            monkeypatch.delenv(name)
    return monkeypatch


def pytest_addoption(parser):
    parser.addoption(
        "--schedule",
        action="store",
        default=None,
        help="Default block schedule for kernel tests (sets LANEGRID_SCHEDULE)",
    )


def pytest_configure(config):
    schedule = config.getoption("--schedule")
    if schedule:
        os.environ["LANEGRID_SCHEDULE"] = schedule
