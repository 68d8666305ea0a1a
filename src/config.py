"""
BGP Sync Agent - Configuration
"""
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class AgentConfig:
    """Agent configuration."""
    # Control Plane
    control_plane_url: str
    control_plane_token: str
    node_name: str

    # Sync settings
    poll_interval: int = 5
    pool_interval: int = 5

    # Key layout of the flattened config
    global_root: str = "global"
    nodes_root: str = "allnodes"

    # Overrides the block fetched from the control plane
    local_address_block: str = ""

    # BIRD
    bird_config_dir: str = "/etc/bird/peers.d"
    bird_ctl: str = "/var/run/bird/bird.ctl"

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 54321
    api_token: str = ""

    log_level: str = "INFO"

    # Agent info
    agent_version: str = "1.0.0"


def load_config(config_path: Optional[str] = None) -> AgentConfig:
    """Load configuration from file or environment."""
    # Try config file first
    if config_path is None:
        config_path = os.environ.get("AGENT_CONFIG", "config.json")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file) as f:
            data = json.load(f)

        return AgentConfig(
            control_plane_url=data.get("control_plane_url", ""),
            control_plane_token=data.get("control_plane_token", ""),
            node_name=data.get("node_name", ""),
            poll_interval=data.get("poll_interval", 5),
            pool_interval=data.get("pool_interval", 5),
            global_root=data.get("global_root", "global"),
            nodes_root=data.get("nodes_root", "allnodes"),
            local_address_block=data.get("local_address_block", ""),
            bird_config_dir=data.get("bird_config_dir", "/etc/bird/peers.d"),
            bird_ctl=data.get("bird_ctl", "/var/run/bird/bird.ctl"),
            api_host=data.get("api_host", "127.0.0.1"),
            api_port=data.get("api_port", 54321),
            api_token=data.get("api_token", ""),
            log_level=data.get("log_level", "INFO"),
        )

    # Fall back to environment variables
    return AgentConfig(
        control_plane_url=os.environ.get("CONTROL_PLANE_URL", ""),
        control_plane_token=os.environ.get("CONTROL_PLANE_TOKEN", ""),
        node_name=os.environ.get("NODE_NAME", ""),
        poll_interval=int(os.environ.get("POLL_INTERVAL", "5")),
        pool_interval=int(os.environ.get("POOL_INTERVAL", "5")),
        global_root=os.environ.get("GLOBAL_ROOT", "global"),
        nodes_root=os.environ.get("NODES_ROOT", "allnodes"),
        local_address_block=os.environ.get("LOCAL_ADDRESS_BLOCK", ""),
        bird_config_dir=os.environ.get("BIRD_CONFIG_DIR", "/etc/bird/peers.d"),
        bird_ctl=os.environ.get("BIRD_CTL", "/var/run/bird/bird.ctl"),
        api_host=os.environ.get("API_HOST", "127.0.0.1"),
        api_port=int(os.environ.get("API_PORT", "54321")),
        api_token=os.environ.get("API_TOKEN", ""),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
