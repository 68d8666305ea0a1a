"""BGP Sync Agent - BIRD Renderer"""

from pathlib import Path
from typing import Iterable

from jinja2 import Environment, FileSystemLoader

TEMPLATE_DIR = Path(__file__).parent.parent.parent / "templates"


class BirdRenderer:
    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)), trim_blocks=True, lstrip_blocks=True
        )

    def render_session(self, descriptor) -> str:
        return self.env.get_template("bird_session.conf.j2").render(session=descriptor)

    def render_local_prefix(self, node_name: str, cidr: str) -> str:
        return self.env.get_template("bird_local_prefix.conf.j2").render(
            node_name=node_name, cidr=cidr
        )

    def render_pools(self, pools: Iterable) -> str:
        pools = list(pools)
        return self.env.get_template("bird_pools.conf.j2").render(
            v4_pools=[p for p in pools if p.network.version == 4],
            v6_pools=[p for p in pools if p.network.version == 6],
        )
