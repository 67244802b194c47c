"""Configuration loading and validation."""

import pytest
import yaml

from guardian.common.config import (
    AgentConfig,
    find_and_load_config,
    is_valid_api_key,
    load_agent_config,
    load_config_file,
)
from guardian.common.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("CLOUD_GUARDIAN_API_URL", raising=False)
    monkeypatch.delenv("CLOUD_GUARDIAN_API_KEY", raising=False)


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


def test_load_file(tmp_path):
    path = write_yaml(tmp_path / "cloud-guardian.yaml", {
        "api_url": "https://api.example.test/v1",
        "api_key": "abcdef0123456789",
        "host_security_keys": ["02aa", " 03bb "],
        "command_timeout_s": 120,
    })

    config = load_config_file(path)

    assert config.api_url == "https://api.example.test/v1/"
    assert config.host_security_keys == ["02aa", "03bb"]
    assert config.command_timeout_s == 120
    assert config.source == str(path)


def test_legacy_single_key():
    config = load_agent_config({"host_security_key": "02aa"})
    assert config.host_security_keys == ["02aa"]


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        find_and_load_config(str(tmp_path / "missing.yaml"))


def test_non_mapping_file(tmp_path):
    path = tmp_path / "cloud-guardian.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config_file(path)


def test_search_paths_first_found_wins(tmp_path):
    first = write_yaml(tmp_path / "a.yaml", {"api_key": "aaaaaaaaaaaaaaaa"})
    second = write_yaml(tmp_path / "b.yaml", {"api_key": "bbbbbbbbbbbbbbbb"})

    config = find_and_load_config(search_paths=[tmp_path / "none.yaml", first, second])

    assert config.api_key == "aaaaaaaaaaaaaaaa"


def test_defaults_without_any_file(tmp_path):
    config = find_and_load_config(search_paths=[tmp_path / "none.yaml"])
    assert config.api_key == ""
    assert config.host_security_keys == []


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write_yaml(tmp_path / "c.yaml", {"api_key": "aaaaaaaaaaaaaaaa"})
    monkeypatch.setenv("CLOUD_GUARDIAN_API_KEY", "cccccccccccccccc")
    monkeypatch.setenv("CLOUD_GUARDIAN_API_URL", "http://localhost:8080/api")

    config = find_and_load_config(str(path))

    assert config.api_key == "cccccccccccccccc"
    assert config.api_url == "http://localhost:8080/api/"


@pytest.mark.parametrize("api_key", ["short", "ABCDEF0123456789", "abcdef0123456789x", "abcdef-123456789"])
def test_invalid_api_keys(api_key):
    assert not is_valid_api_key(api_key)
    with pytest.raises(ConfigError):
        AgentConfig(api_key=api_key).validate()


def test_invalid_url():
    with pytest.raises(ConfigError):
        AgentConfig(api_url="ftp://example.test/").validate()


def test_invalid_timeout():
    with pytest.raises(ConfigError):
        load_agent_config({"command_timeout_s": "soon"})
