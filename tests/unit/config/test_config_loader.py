# tests/unit/config/test_config_loader.py
from pathlib import Path

import yaml

from config.config_loader import DEFAULT_RANGE_CONFIG, ConfigLoader


def test_create_default_topology(tmp_path):
    loader = ConfigLoader(config_dir=tmp_path)
    defaults = loader._create_default_topology()
    assert isinstance(defaults, list)
    assert len(defaults) == 6
    ids = [n["id"] for n in defaults]
    assert ids[0] == "firewall"
    assert "web-server" in ids
    assert "dc-01" in ids
    assert len(set(ids)) == len(ids)


def test_save_and_load_topology(tmp_path):
    loader = ConfigLoader(config_dir=tmp_path)
    nodes = loader._create_default_topology()
    loader._save_topology(nodes)

    topology_path = tmp_path / "topology.yml"
    assert topology_path.exists()

    with open(topology_path) as f:
        data = yaml.safe_load(f)
    assert "nodes" in data
    assert data["nodes"] == nodes


def test_load_all_creates_missing_topology(tmp_path):
    config = ConfigLoader(config_dir=tmp_path).load_all()

    assert (tmp_path / "topology.yml").exists()
    assert len(config["topology"]) == 6
    assert config["range"] == DEFAULT_RANGE_CONFIG


def test_range_overrides_merge_with_defaults(temp_config_dir, write_config_file):
    write_config_file(
        {"range": {"timing": {"scan_duration": 1.5}, "server": {"port": 4000}}}
    )

    config = ConfigLoader(config_dir=temp_config_dir).load_all()

    assert config["range"]["timing"] == {
        "scan_duration": 1.5,
        "attack_delay": 2.0,
        "scenario_duration": 5.0,
    }
    assert config["range"]["server"] == {
        "host": "127.0.0.1",
        "port": 4000,
        "max_pending_notifications": 1000,
    }
    assert config["range"]["scoring"] == DEFAULT_RANGE_CONFIG["scoring"]


def test_defaults_not_mutated_by_overrides(temp_config_dir, write_config_file):
    write_config_file({"range": {"scoring": {"attack_penalty": 50}}})

    ConfigLoader(config_dir=temp_config_dir).load_all()

    assert DEFAULT_RANGE_CONFIG["scoring"]["attack_penalty"] == 15


def test_empty_files_fall_back_to_defaults(temp_config_dir):
    (temp_config_dir / "range.yml").write_text("")
    (temp_config_dir / "topology.yml").write_text("")

    config = ConfigLoader(config_dir=temp_config_dir).load_all()

    assert config["range"] == DEFAULT_RANGE_CONFIG
    assert config["topology"] == []


def test_existing_topology_is_used(temp_config_dir, write_config_file):
    write_config_file(
        {"nodes": [{"id": "edge", "type": "firewall", "ip": "10.0.0.1"}]},
        filename="topology.yml",
    )

    config = ConfigLoader(config_dir=temp_config_dir).load_all()

    assert config["topology"] == [{"id": "edge", "type": "firewall", "ip": "10.0.0.1"}]


def test_shipped_config_files_match_defaults():
    loader = ConfigLoader(config_dir=Path(__file__).parents[3] / "config")
    config = loader.load_all()

    assert config["range"] == DEFAULT_RANGE_CONFIG
    assert config["topology"] == loader._create_default_topology()
