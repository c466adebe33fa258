from __future__ import annotations

import pytest

from IHE_Manifest_QA.config.settings import get_settings
from IHE_Manifest_QA.validation.catalog import get_rule_catalog
from IHE_Manifest_QA.validation.orchestrator import ManifestValidator
from tests.validation._manifest_builders import build_kos, build_mado


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    for name in ("MQA_DEFAULT_PROFILE", "MQA_VERBOSE", "MQA_CATALOG_PATH", "MQA_MAX_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def catalog():
    return get_rule_catalog()


@pytest.fixture
def validator(catalog):
    return ManifestValidator(catalog)


@pytest.fixture
def kos_dataset():
    return build_kos()


@pytest.fixture
def mado_dataset():
    return build_mado()
