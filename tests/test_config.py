import json

import pytest

from gush import Configuration


def test_defaults():
    config = Configuration()
    assert config.concurrency == 5
    assert config.redis_url == "redis://localhost:6379"
    assert config.namespace == "gush"
    assert config.gushfile == "Gushfile.py"


def test_from_dict_ignores_unknown_keys_and_nulls():
    config = Configuration.from_dict({"concurrency": 3, "namespace": None, "colour": "blue"})
    assert config.concurrency == 3
    assert config.namespace == "gush"


def test_json_round_trip():
    config = Configuration(concurrency=2, namespace="ci")
    assert Configuration.from_json(config.to_json()) == config
    assert json.loads(config.to_json())["namespace"] == "ci"


def test_from_env_coerces_types():
    config = Configuration.from_env({
        "GUSH_CONCURRENCY": "8",
        "GUSH_LOCK_WAIT": "0.5",
        "GUSH_REDIS_URL": "redis://cache:6380/1",
        "OTHER": "x",
    })
    assert config.concurrency == 8
    assert config.lock_wait == 0.5
    assert config.redis_url == "redis://cache:6380/1"


@pytest.mark.parametrize("kwargs", [{"concurrency": 0}, {"namespace": ""}])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        Configuration(**kwargs)
