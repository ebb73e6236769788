"""
E2B Sandbox Manager for ephemeral, isolated code execution environments.

A SandboxManager owns at most one sandbox and is used by exactly one
orchestration call: the sandbox is created, used for a single execution or
preview, and destroyed. Managers are never shared between requests.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Union

from e2b_code_interpreter import Sandbox

from .errors import (
    SandboxCommandError,
    SandboxError,
    SandboxFileOperationError,
    SandboxInitializationError,
)

logger = logging.getLogger(__name__)

# (template, timeout_seconds) -> sandbox
SandboxFactory = Callable[[Optional[str], int], Any]


def create_e2b_sandbox(template: Optional[str], timeout_seconds: int) -> Sandbox:
    """Synchronous sandbox creation."""
    if template:
        return Sandbox.create(template=template, timeout=timeout_seconds)
    return Sandbox.create(timeout=timeout_seconds)


def _entry_is_file(entry) -> bool:
    entry_type = getattr(entry, "type", None)
    return getattr(entry_type, "value", entry_type) == "file"


class SandboxManager:
    """
    Manages one E2B sandbox with lazy initialization.

    Note: E2B SDK is synchronous, so we use asyncio.to_thread() to run
    blocking operations without blocking the event loop.
    """

    def __init__(
        self,
        template: Optional[str] = None,
        timeout_seconds: int = 300,
        session_id: Optional[str] = None,
        sandbox_factory: Optional[SandboxFactory] = None,
    ):
        """
        Initialize the SandboxManager.

        Args:
            template: E2B template name, None for the default code interpreter
            timeout_seconds: Sandbox lifetime in seconds on the provider side
            session_id: Unique session identifier for logging context
            sandbox_factory: Creates the sandbox; defaults to ``Sandbox.create``
        """
        self._sandbox = None
        self._template = template
        self._timeout: int = timeout_seconds
        self._is_initialized: bool = False
        self._session_id: str = session_id or "unknown"
        self._sandbox_factory: SandboxFactory = sandbox_factory or create_e2b_sandbox

        logger.info(
            f"[{self._session_id}] SandboxManager initialized with template='{template or 'default'}', "
            f"timeout={timeout_seconds}s"
        )

    def _create_sandbox_sync(self):
        logger.info(f"[{self._session_id}] Calling Sandbox.create(template='{self._template or 'default'}', timeout={self._timeout})")
        sandbox = self._sandbox_factory(self._template, self._timeout)
        logger.info(f"[{self._session_id}] Sandbox created: {sandbox.sandbox_id}")
        return sandbox

    def _kill_quietly(self, sandbox) -> None:
        try:
            sandbox.kill()
            logger.info(f"[{self._session_id}] Orphaned sandbox {sandbox.sandbox_id} killed")
        except Exception as e:
            logger.warning(f"[{self._session_id}] Failed to kill orphaned sandbox: {e}")

    def _kill_orphan(self, task: "asyncio.Future") -> None:
        """Done-callback for a creation that finished after its caller was cancelled."""
        if task.cancelled() or task.exception() is not None:
            return
        asyncio.get_running_loop().run_in_executor(None, self._kill_quietly, task.result())

    async def ensure_sandbox(self):
        """Ensure sandbox is created and return it (lazy initialization)."""
        if self._is_initialized and self._sandbox is not None:
            return self._sandbox

        # Creation runs in a worker thread that cannot be interrupted. If the
        # caller is cancelled meanwhile, the sandbox that eventually appears is
        # killed instead of leaking.
        creation = asyncio.ensure_future(asyncio.to_thread(self._create_sandbox_sync))
        try:
            self._sandbox = await asyncio.shield(creation)
        except asyncio.CancelledError:
            logger.warning(f"[{self._session_id}] Sandbox creation cancelled; will kill it once created")
            creation.add_done_callback(self._kill_orphan)
            raise
        except Exception as e:
            logger.error(
                f"[{self._session_id}] Failed to create sandbox with template "
                f"'{self._template or 'default'}': {e}",
                exc_info=True,
            )
            raise SandboxInitializationError(f"Failed to create sandbox: {e}") from e

        self._is_initialized = True
        logger.info(f"[{self._session_id}] Sandbox created successfully with ID: {self._sandbox.sandbox_id}")
        return self._sandbox

    async def write_file(self, path: str, content: Union[bytes, str]) -> dict:
        """Write content to a file in the sandbox."""
        sandbox = await self.ensure_sandbox()
        try:
            await asyncio.to_thread(sandbox.files.write, path, content)
        except Exception as e:
            logger.error(f"[{self._session_id}] Failed to write file to '{path}': {e}", exc_info=True)
            raise SandboxFileOperationError(f"Failed to write file to '{path}': {e}") from e

        size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
        logger.info(f"[{self._session_id}] Successfully wrote {size} bytes to {path}")
        return {"success": True, "path": path, "size": size}

    async def run_code(self, code: str, timeout: Optional[float] = None):
        """Run Python code in the sandbox's Jupyter kernel and return the E2B ``Execution``."""
        sandbox = await self.ensure_sandbox()
        logger.info(f"[{self._session_id}] Running code ({len(code)} chars, timeout={timeout}s)")
        try:
            execution = await asyncio.to_thread(sandbox.run_code, code, timeout=timeout)
        except Exception as e:
            logger.error(f"[{self._session_id}] Failed to run code: {e}", exc_info=True)
            raise SandboxCommandError(f"Failed to run code: {e}") from e

        if execution.error:
            logger.info(f"[{self._session_id}] Code raised {execution.error.name}")
        return execution

    async def list_files(self, path: str) -> List[str]:
        """List regular, non-hidden files directly under ``path``."""
        sandbox = await self.ensure_sandbox()
        try:
            entries = await asyncio.to_thread(sandbox.files.list, path)
        except Exception as e:
            logger.error(f"[{self._session_id}] Failed to list files in '{path}': {e}", exc_info=True)
            raise SandboxFileOperationError(f"Failed to list files in '{path}': {e}") from e

        names = [e.name for e in entries if _entry_is_file(e) and not e.name.startswith(".")]
        logger.info(f"[{self._session_id}] Found {len(names)} files in {path}")
        return names

    async def destroy(self) -> None:
        """Destroy the sandbox and cleanup resources."""
        if not self._is_initialized or self._sandbox is None:
            logger.debug(f"[{self._session_id}] Sandbox not initialized, nothing to destroy")
            return

        sandbox = self._sandbox
        self._sandbox = None
        self._is_initialized = False
        try:
            logger.info(f"[{self._session_id}] Destroying sandbox with ID: {sandbox.sandbox_id}")
            await asyncio.to_thread(sandbox.kill)
            logger.info(f"[{self._session_id}] Sandbox destroyed successfully")
        except Exception as e:
            logger.error(f"[{self._session_id}] Failed to destroy sandbox: {e}", exc_info=True)
            raise SandboxError(f"Failed to destroy sandbox: {e}") from e

    @property
    def sandbox_id(self) -> Optional[str]:
        """Get the current sandbox ID."""
        return self._sandbox.sandbox_id if self._sandbox else None
