"""
Sandbox execution orchestrator.

Runs approved code (and file previews) in a fresh sandbox per call:

1. provision one sandbox
2. stage the input files under the mount directory
3. run the code once
4. if the code did not raise: discover generated files, read the ones within
   the size ceilings, and attach rich previews to tabular ones
5. tear the sandbox down on every exit path

Each call is independent; nothing from a previous call is available to the
next. Discovery and previews are best-effort and degrade to "absent".
"""

import asyncio
import json
import logging
import time
import traceback
from typing import Callable, List, Optional, Sequence, Set, Tuple, Union

from .config import (
    IMAGE_FINGERPRINT_CHARS,
    MAX_GENERATED_FILE_SIZE,
    MAX_TOTAL_GENERATED_SIZE,
    SANDBOX_MOUNT_DIR,
)
from .errors import SandboxError
from .files import file_extension, is_previewable
from .logging_config import get_session_logger
from .preview import build_preview_code, parse_preview_output
from .sandbox_factory import create_sandbox_manager
from .sandbox_manager import SandboxManager
from .schemas import (
    ExecutionFailure,
    ExecutionOutput,
    ExecutionResult,
    GeneratedFile,
    RichPreview,
)

logger = logging.getLogger(__name__)

GENERATED_FILES_MARKER = "# analyst:collect-generated-files"

_READER_BODY = '''
import base64
import json
import os

_files = []
_total = 0
for _name in _names:
    _fp = os.path.join(_mount, _name)
    if not os.path.isfile(_fp):
        continue
    _size = os.path.getsize(_fp)
    if _size > _max_file or _total + _size > _max_total:
        continue
    with open(_fp, "rb") as _fh:
        _data = base64.b64encode(_fh.read()).decode()
    _files.append({"name": _name, "size": _size, "content": _data})
    _total += _size
print(json.dumps(_files))
'''


def build_reader_code(
    names: Sequence[str],
    mount_dir: str = SANDBOX_MOUNT_DIR,
    max_file_size: int = MAX_GENERATED_FILE_SIZE,
    max_total_size: int = MAX_TOTAL_GENERATED_SIZE,
) -> str:
    """In-sandbox script that base64-encodes the named files within the size ceilings."""
    return (
        f"{GENERATED_FILES_MARKER}\n"
        f"_names = {list(names)!r}\n"
        f"_mount = {mount_dir!r}\n"
        f"_max_file = {int(max_file_size)}\n"
        f"_max_total = {int(max_total_size)}\n"
        + _READER_BODY
    )


def dedupe_image_results(results: Sequence[ExecutionOutput]) -> List[ExecutionOutput]:
    """
    Keep only the first result for each image.

    Two image results are the same figure when the first
    ``IMAGE_FINGERPRINT_CHARS`` characters of their base64 payload match.
    """
    seen: Set[str] = set()
    kept = []
    for result in results:
        if result.png:
            fingerprint = result.png[:IMAGE_FINGERPRINT_CHARS]
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
        kept.append(result)
    return kept


def format_execution_error(error) -> str:
    return f"{error.name}: {error.value}"


def _stdout_text(execution) -> str:
    return "".join(execution.logs.stdout)


def _stderr_text(execution) -> str:
    return "".join(execution.logs.stderr)


ManagerFactory = Callable[[Optional[str]], SandboxManager]


class CodeExecutor:
    """
    Orchestrates sandbox runs for approved code and for upload previews.

    Every ``execute``/``preview`` call provisions its own SandboxManager and
    destroys it before returning; sandboxes are never shared between calls.
    """

    def __init__(
        self,
        manager_factory: ManagerFactory = create_sandbox_manager,
        mount_dir: str = SANDBOX_MOUNT_DIR,
        run_timeout: Optional[float] = None,
    ):
        self._manager_factory = manager_factory
        self.mount_dir = mount_dir
        self.run_timeout = run_timeout

    def _path(self, name: str) -> str:
        return f"{self.mount_dir}/{name}"

    async def _teardown(self, manager: SandboxManager, session_id: str) -> None:
        """Destroy the sandbox; failures are logged, never raised."""
        try:
            await manager.destroy()
        except Exception as e:
            logger.warning(f"[{session_id}] Sandbox teardown failed (ignored): {e}")
            get_session_logger(session_id).log_sandbox("TEARDOWN_FAILED", str(e))

    async def _stage_files(self, manager: SandboxManager, files: Sequence[Tuple[str, bytes]]) -> Set[str]:
        staged = set()
        for name, data in files:
            await manager.write_file(self._path(name), data)
            staged.add(name)
        return staged

    async def execute(
        self,
        code: str,
        files: Sequence[Tuple[str, bytes]] = (),
        session_id: Optional[str] = None,
    ) -> Union[ExecutionResult, ExecutionFailure]:
        """
        Run approved code in a fresh sandbox.

        Args:
            code: The approved Python code
            files: ``(name, content)`` pairs staged under the mount directory
            session_id: Conversation id for logging context

        Returns:
            ExecutionResult (also when the code itself raised), or
            ExecutionFailure when the sandbox could not be provisioned or driven
        """
        session_id = session_id or "unknown"
        slogger = get_session_logger(session_id)
        start_time = time.time()
        manager = self._manager_factory(session_id)

        slogger.log_sandbox("EXECUTE_START", f"code_len={len(code)}, files={len(files)}")
        try:
            try:
                await manager.ensure_sandbox()
                slogger.log_sandbox("CREATED", f"sandbox_id={manager.sandbox_id}")
                staged = await self._stage_files(manager, files)
                execution = await manager.run_code(code, timeout=self.run_timeout)
            except Exception as e:
                logger.error(f"[{session_id}] Execution failed before completion: {e}")
                slogger.log_error("sandbox", f"{type(e).__name__}: {e}", traceback.format_exc())
                message = str(e) if isinstance(e, SandboxError) else f"{type(e).__name__}: {e}"
                return ExecutionFailure(code=code, error=message)

            results = dedupe_image_results([
                ExecutionOutput(text=r.text, png=r.png, html=r.html) for r in execution.results
            ])
            error = format_execution_error(execution.error) if execution.error else None

            generated: List[GeneratedFile] = []
            if error is None:
                generated = await self._collect_generated_files(manager, staged, session_id)
                await self._attach_previews(manager, generated, session_id)

            duration_ms = (time.time() - start_time) * 1000
            slogger.log_sandbox(
                "EXECUTE_DONE",
                f"duration={duration_ms:.0f}ms, results={len(results)}, "
                f"generated={len(generated)}, error={error is not None}",
            )
            return ExecutionResult(
                code=code,
                stdout=_stdout_text(execution),
                stderr=_stderr_text(execution),
                results=results,
                generatedFiles=generated,
                error=error,
            )
        finally:
            await self._teardown(manager, session_id)

    async def _collect_generated_files(
        self, manager: SandboxManager, staged: Set[str], session_id: str
    ) -> List[GeneratedFile]:
        """Read new, non-hidden files from the mount directory (best-effort)."""
        try:
            names = [n for n in await manager.list_files(self.mount_dir) if n not in staged]
            if not names:
                return []

            reader = build_reader_code(names, mount_dir=self.mount_dir)
            execution = await manager.run_code(reader, timeout=self.run_timeout)
            if execution.error:
                logger.warning(
                    f"[{session_id}] Generated file reader raised {format_execution_error(execution.error)}"
                )
                return []

            output = _stdout_text(execution).strip()
            if not output:
                return []
            generated = [GeneratedFile(**item) for item in json.loads(output.splitlines()[-1])]

            skipped = len(names) - len(generated)
            if skipped:
                logger.info(f"[{session_id}] Skipped {skipped} generated file(s) over the size ceilings")
            get_session_logger(session_id).log_sandbox(
                "GENERATED_FILES", ", ".join(f"{f.name} ({f.size}B)" for f in generated)
            )
            return generated
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{session_id}] Generated file discovery failed (ignored): {e}")
            return []

    async def _attach_previews(
        self, manager: SandboxManager, generated: List[GeneratedFile], session_id: str
    ) -> None:
        """Attach rich previews to tabular generated files; failures skip one file only."""
        for gf in generated:
            if not is_previewable(gf.name):
                continue
            try:
                code = build_preview_code(self._path(gf.name), file_extension(gf.name))
                execution = await manager.run_code(code, timeout=self.run_timeout)
                if execution.error:
                    logger.info(
                        f"[{session_id}] Preview of {gf.name} failed: {format_execution_error(execution.error)}"
                    )
                    continue
                gf.richPreview = RichPreview(**parse_preview_output(_stdout_text(execution), gf.name))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[{session_id}] Preview of {gf.name} failed (ignored): {e}")

    async def preview(self, name: str, data: bytes, session_id: Optional[str] = None) -> dict:
        """
        Build a rich preview for an uploaded file in a fresh sandbox.

        Returns ``{"success": True, "preview": {...}}`` or
        ``{"success": False, "error": ..., "stderr": ...}`` when the preview
        script raised.

        Raises:
            SandboxError: if the sandbox could not be provisioned or driven
        """
        session_id = session_id or "unknown"
        slogger = get_session_logger(session_id)
        manager = self._manager_factory(session_id)

        slogger.log_sandbox("PREVIEW_START", f"file={name}, size={len(data)}")
        try:
            await manager.ensure_sandbox()
            await manager.write_file(self._path(name), data)
            execution = await manager.run_code(
                build_preview_code(self._path(name), file_extension(name)),
                timeout=self.run_timeout,
            )

            if execution.error:
                error = format_execution_error(execution.error)
                slogger.log_sandbox("PREVIEW_FAILED", f"file={name}, error={error[:200]}")
                return {"success": False, "error": error, "stderr": _stderr_text(execution).strip()}

            preview = parse_preview_output(_stdout_text(execution), name)
            slogger.log_sandbox("PREVIEW_DONE", f"file={name}, shape={preview.get('shape')}")
            return {"success": True, "preview": preview}
        finally:
            await self._teardown(manager, session_id)
