"""
Factory for creating sandbox managers based on configuration.
"""
import logging
from typing import Optional

from .config import get_execution_timeout, get_sandbox_template
from .sandbox_manager import SandboxManager

logger = logging.getLogger(__name__)

# Seconds added to the execution budget for the provider-side sandbox lifetime
SANDBOX_LIFETIME_MARGIN = 60


def create_sandbox_manager(session_id: Optional[str] = None) -> SandboxManager:
    """
    Create a SandboxManager for one execution or preview.

    Args:
        session_id: Session ID for logging context

    Returns:
        SandboxManager using the ``E2B_TEMPLATE`` template (or the default code interpreter)
    """
    template = get_sandbox_template()
    lifetime = int(get_execution_timeout()) + SANDBOX_LIFETIME_MARGIN
    logger.info(f"[{session_id}] Creating E2B SandboxManager (template={template or 'default'})")
    return SandboxManager(template=template, timeout_seconds=lifetime, session_id=session_id)
