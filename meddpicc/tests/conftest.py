from __future__ import annotations

import pytest

from meddpicc.config import DEFAULT_CONFIG_PATH, get_config, get_settings, load_config, load_yaml
from meddpicc.models import ValidationIssue
from meddpicc.services import MeddpiccService
from meddpicc.store import AnswerStore


@pytest.fixture(scope="session")
def config():
    """The bundled canonical configuration."""
    return load_config(DEFAULT_CONFIG_PATH)


@pytest.fixture()
def raw_config():
    """A fresh, mutable copy of the canonical YAML mapping."""
    return load_yaml(DEFAULT_CONFIG_PATH)


@pytest.fixture()
def store(config):
    return AnswerStore.create("opp-1", config)


@pytest.fixture()
def fill(config):
    """Answer every question of the given pillars (all pillars by default)."""

    def _fill(store, pillars=None, value="yes", confidence="medium"):
        for p in config.pillars:
            if pillars is not None and p.id not in pillars:
                continue
            for q in p.questions:
                result = store.upsert(p.id, q.id, value, confidence)
                assert not isinstance(result, ValidationIssue), result
        return store

    return _fill


@pytest.fixture()
def service(config):
    return MeddpiccService(config)


@pytest.fixture()
def canonical_env(monkeypatch):
    """Point the process-wide settings at the bundled config."""
    monkeypatch.setenv("MEDDPICC_CONFIG", str(DEFAULT_CONFIG_PATH))
    get_settings.cache_clear()
    get_config.cache_clear()
    yield
    get_settings.cache_clear()
    get_config.cache_clear()
