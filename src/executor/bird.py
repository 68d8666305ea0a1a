"""BGP Sync Agent - BIRD Executor

Writes BIRD config snippets and reloads BIRD. Reloads are coalesced: rapid
consecutive 'birdc configure' calls can crash BIRD, and a single delta cycle
may touch many sessions.
"""

import logging
import subprocess
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class BirdExecutor:
    """BIRD configuration executor with delayed coalesce reload.

    Each reload() call resets a timer; only one 'birdc configure' runs after
    the calls settle.
    """

    _reload_timer: threading.Timer = None
    _reload_lock = threading.Lock()
    _coalesce_delay = 2.0  # seconds

    def __init__(
        self, config_dir: str = "/etc/bird/peers.d", bird_ctl: str = "/var/run/bird/bird.ctl"
    ):
        self.config_dir = Path(config_dir)
        self.bird_ctl = bird_ctl

    def write_config(self, name: str, config: str) -> bool:
        """Write a snippet, returning True if its content changed."""
        path = self.config_dir / name
        if path.exists() and path.read_text() == config:
            logger.debug(f"BIRD config {name} unchanged")
            return False
        self.config_dir.mkdir(parents=True, exist_ok=True)
        temp = path.with_suffix(".tmp")
        temp.write_text(config)
        temp.replace(path)
        return True

    def remove_config(self, name: str) -> bool:
        """Remove a snippet, returning True if it existed."""
        path = self.config_dir / name
        if not path.exists():
            return False
        path.unlink()
        return True

    def reload(self) -> bool:
        """Schedule a coalesced BIRD reload."""
        with BirdExecutor._reload_lock:
            if BirdExecutor._reload_timer is not None:
                BirdExecutor._reload_timer.cancel()
                logger.debug("BIRD reload timer reset (coalescing requests)")

            BirdExecutor._reload_timer = threading.Timer(
                BirdExecutor._coalesce_delay, self._execute_reload
            )
            BirdExecutor._reload_timer.daemon = True
            BirdExecutor._reload_timer.start()

            logger.debug(f"BIRD reload scheduled in {BirdExecutor._coalesce_delay}s")

        return True

    def _execute_reload(self) -> bool:
        with BirdExecutor._reload_lock:
            BirdExecutor._reload_timer = None

        logger.info("Executing BIRD configuration reload")
        return self._configure()

    def _configure(self) -> bool:
        result = subprocess.run(
            ["birdc", "-s", self.bird_ctl, "configure"], capture_output=True, text=True
        )
        if result.returncode == 0:
            logger.info("BIRD reload successful")
            return True
        logger.warning(f"BIRD reload failed: {result.stderr}")
        return False

