import argparse
import json

import pytest

from beacon import config as config_mod
from beacon.config import SidecarConfig, load_config, merge_cli_args, populate, validate
from beacon.errors import ConfigError, ResolutionError


def test_load_config_ignores_unknown_keys(tmp_path):
    path = tmp_path / "beacon.yaml"
    path.write_text("etcd: http://etcd:2379\nkey: web/%H\nttl: 15\nunknown: 1\n")
    config = load_config(path)
    assert config.etcd == "http://etcd:2379"
    assert config.key == "web/%H"
    assert config.ttl == 15
    assert config.interval == 10


def test_load_empty_config(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == SidecarConfig()


def test_cli_args_override_config():
    config = SidecarConfig(key="a", ttl=15)
    args = argparse.Namespace(key="b", ttl=None, port=80, command=["x"])
    merge_cli_args(config, args)
    assert config.key == "b"
    assert config.ttl == 15
    assert config.port == 80


def test_populate_with_explicit_host():
    config = SidecarConfig(key="svc/%H-%P", host="10.0.0.1", port=8080, start_time="t0")
    populated = populate(config)
    assert populated.key_path == "/v2/keys/svc/10.0.0.1-8080"
    assert json.loads(populated.value) == {"host": "10.0.0.1", "port": 8080, "start_time": "t0"}
    # the input is left untouched
    assert config.key_path == ""


def test_populate_defaults_start_time():
    populated = populate(SidecarConfig(key="svc", host="h", value="%S"))
    assert populated.start_time
    assert populated.value == populated.start_time


def test_populate_uses_interface(monkeypatch):
    monkeypatch.setattr(config_mod, "resolve_interface_address", lambda name: "192.168.0.9")
    populated = populate(SidecarConfig(key="svc/%H", interface="eth0"))
    assert populated.host == "192.168.0.9"
    assert populated.key_path == "/v2/keys/svc/192.168.0.9"


def test_populate_infers_from_remote(monkeypatch):
    seen = []

    def fake_resolve(remote):
        seen.append(remote)
        return "10.1.1.1"

    monkeypatch.setattr(config_mod, "resolve_local_address", fake_resolve)
    populate(SidecarConfig(key="svc", etcd="http://etcd:4001"))
    populate(SidecarConfig(key="svc", etcd="http://etcd:4001", remote="8.8.8.8:53"))
    assert seen == ["http://etcd:4001", "8.8.8.8:53"]


def test_populate_propagates_resolution_error(monkeypatch):
    def fail(name):
        raise ResolutionError("no address")

    monkeypatch.setattr(config_mod, "resolve_interface_address", fail)
    with pytest.raises(ResolutionError):
        populate(SidecarConfig(key="svc", interface="eth9"))


def test_validate_accepts_defaults():
    validate(populate(SidecarConfig(key="svc", host="h")))


@pytest.mark.parametrize("overrides", [
    {"etcd": "127.0.0.1:4001"},
    {"etcd": ""},
    {"interval": 0},
    {"interval": -5},
    {"ttl": -1},
])
def test_validate_rejects(overrides):
    with pytest.raises(ConfigError):
        validate(populate(SidecarConfig(key="svc", host="h", **overrides)))
