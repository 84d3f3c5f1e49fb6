# config/config_loader.py
"""
Config loader module for modular YAML configuration.
"""

import copy
from pathlib import Path

import yaml

DEFAULT_RANGE_CONFIG = {
    "server": {
        "host": "127.0.0.1",
        "port": 3000,
        "max_pending_notifications": 1000,
    },
    "timing": {
        "scan_duration": 3.0,
        "attack_delay": 2.0,
        "scenario_duration": 5.0,
    },
    "scoring": {
        "initial": 100,
        "patch_bonus": 5,
        "attack_penalty": 15,
        "max": 100,
        "min": 0,
    },
    "clock": {
        "realtime": True,
        "time_acceleration": 1.0,
    },
    "scenario": {
        "seed": None,
    },
    "logging": {
        "log_dir": "logs",
        "max_audit_entries": 1000,
    },
}


class ConfigLoader:
    """Loads and merges modular configuration files."""

    def __init__(self, config_dir="config"):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_all(self):
        """Load all configuration files and merge them."""
        config = {}

        # Load range runtime config
        range_path = self.config_dir / "range.yml"
        if range_path.exists():
            with open(range_path) as f:
                range_data = yaml.safe_load(f) or {}
                config["range"] = self._merge(
                    DEFAULT_RANGE_CONFIG, range_data.get("range", {})
                )
        else:
            config["range"] = copy.deepcopy(DEFAULT_RANGE_CONFIG)

        # Load topology template
        topology_path = self.config_dir / "topology.yml"
        if topology_path.exists():
            with open(topology_path) as f:
                topology_data = yaml.safe_load(f) or {}
                config["topology"] = topology_data.get("nodes", [])
        else:
            config["topology"] = self._create_default_topology()
            self._save_topology(config["topology"])

        return config

    def _merge(self, defaults, overrides):
        """Overlay user values onto defaults, one section deep at a time."""
        merged = copy.deepcopy(defaults)
        for key, value in (overrides or {}).items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = self._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _create_default_topology(self):
        """Create default topology configuration."""
        return [
            {
                "id": "firewall",
                "type": "firewall",
                "label": "Perimeter FW",
                "ip": "192.168.1.1",
                "x": 50,
                "y": 10,
            },
            {
                "id": "web-server",
                "type": "server",
                "label": "IIS Web Srv",
                "ip": "192.168.1.10",
                "x": 30,
                "y": 40,
            },
            {
                "id": "db-server",
                "type": "database",
                "label": "SQL DB",
                "ip": "192.168.1.20",
                "x": 70,
                "y": 40,
            },
            {
                "id": "workstation-1",
                "type": "workstation",
                "label": "HR PC",
                "ip": "192.168.1.101",
                "x": 20,
                "y": 80,
            },
            {
                "id": "workstation-2",
                "type": "workstation",
                "label": "Dev PC",
                "ip": "192.168.1.102",
                "x": 50,
                "y": 80,
            },
            {
                "id": "dc-01",
                "type": "server",
                "label": "Domain Controller",
                "ip": "192.168.1.5",
                "x": 80,
                "y": 80,
            },
        ]

    def _save_topology(self, nodes):
        """Save topology configuration to file."""
        topology_path = self.config_dir / "topology.yml"
        with open(topology_path, "w") as f:
            yaml.dump({"nodes": nodes}, f, default_flow_style=False, sort_keys=False)
        print(f"[INFO] Created default topology config at {topology_path}")
