"""BGP Sync Agent - BIRD Session Manager

Keeps one BIRD protocol snippet per BGP neighbor. The snippet's file name
is derived from the remote address alone, so adding an existing session
rewrites it in place and removing a missing one does nothing.
"""
import logging

from executor.bird import BirdExecutor
from renderer.bird import BirdRenderer
from services.neighbors import SessionDescriptor, underscore

logger = logging.getLogger(__name__)

SESSION_FILE_PREFIX = "bgp_"


class SessionError(RuntimeError):
    """A session could not be configured."""


def session_file(address: str) -> str:
    return f"{SESSION_FILE_PREFIX}{underscore(address)}.conf"


class BirdSessionManager:
    def __init__(self, bird_executor: BirdExecutor, renderer: BirdRenderer = None):
        self.bird = bird_executor
        self.renderer = renderer or BirdRenderer()

    def add_session(self, descriptor: SessionDescriptor) -> None:
        if descriptor.remote_as is None:
            raise SessionError(f"No AS number for session {descriptor.label}")
        config = self.renderer.render_session(descriptor)
        try:
            changed = self.bird.write_config(session_file(descriptor.address), config)
        except OSError as e:
            raise SessionError(f"Failed to write session {descriptor.label}: {e}") from e
        if changed:
            logger.info(
                f"Added BGP session {descriptor.label} -> {descriptor.address} AS{descriptor.remote_as}"
            )
            self.bird.reload()

    def remove_session(self, descriptor: SessionDescriptor) -> None:
        try:
            removed = self.bird.remove_config(session_file(descriptor.address))
        except OSError as e:
            raise SessionError(f"Failed to remove session {descriptor.label}: {e}") from e
        if removed:
            logger.info(f"Removed BGP session -> {descriptor.address}")
            self.bird.reload()
        else:
            logger.debug(f"No BGP session for {descriptor.address}")

