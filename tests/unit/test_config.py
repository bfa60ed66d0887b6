"""
Unit tests for OdmConfig.
"""

import pytest

from mdb_odm.config import OdmConfig
from mdb_odm.constants import (
    DEFAULT_BCRYPT_ROUNDS,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from mdb_odm.exceptions import ConfigurationError

ENV_VARS = (
    "MONGO_URI",
    "DB_NAME",
    "MONGO_MAX_POOL_SIZE",
    "MONGO_MIN_POOL_SIZE",
    "MONGO_SERVER_SELECTION_TIMEOUT_MS",
    "ODM_BCRYPT_ROUNDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Make sure the process environment does not leak into the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def valid_config():
    return OdmConfig(mongo_uri="mongodb://localhost:27017", db_name="test_db")


class TestOdmConfigDefaults:
    """Test values resolution."""

    def test_defaults(self, valid_config):
        assert valid_config.max_pool_size == DEFAULT_MAX_POOL_SIZE
        assert valid_config.min_pool_size == DEFAULT_MIN_POOL_SIZE
        assert valid_config.server_selection_timeout_ms == DEFAULT_SERVER_SELECTION_TIMEOUT_MS
        assert valid_config.bcrypt_rounds == DEFAULT_BCRYPT_ROUNDS
        valid_config.validate()

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("MONGO_URI", "mongodb://db:27017")
        monkeypatch.setenv("DB_NAME", "env_db")
        monkeypatch.setenv("MONGO_MAX_POOL_SIZE", "20")
        monkeypatch.setenv("MONGO_MIN_POOL_SIZE", "5")
        monkeypatch.setenv("ODM_BCRYPT_ROUNDS", "12")

        config = OdmConfig()

        assert config.mongo_uri == "mongodb://db:27017"
        assert config.db_name == "env_db"
        assert config.max_pool_size == 20
        assert config.min_pool_size == 5
        assert config.bcrypt_rounds == 12

    def test_parameters_override_environment(self, monkeypatch):
        monkeypatch.setenv("DB_NAME", "env_db")
        config = OdmConfig(mongo_uri="mongodb://localhost:27017", db_name="param_db")
        assert config.db_name == "param_db"


class TestOdmConfigValidation:
    """Test validate()."""

    @pytest.mark.parametrize(
        "overrides,config_key",
        [
            ({"mongo_uri": None}, "mongo_uri"),
            ({"db_name": None}, "db_name"),
            ({"max_pool_size": -1}, "max_pool_size"),
            ({"min_pool_size": -1}, "min_pool_size"),
            ({"max_pool_size": 5, "min_pool_size": 10}, "min_pool_size"),
            ({"server_selection_timeout_ms": 500}, "server_selection_timeout_ms"),
            ({"bcrypt_rounds": 3}, "bcrypt_rounds"),
            ({"bcrypt_rounds": 32}, "bcrypt_rounds"),
        ],
    )
    def test_invalid_values(self, overrides, config_key):
        params = {"mongo_uri": "mongodb://localhost:27017", "db_name": "test_db", **overrides}
        config = OdmConfig(**params)

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.config_key == config_key
