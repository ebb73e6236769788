import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from .config import (
    MAX_PREVIEW_FILE_SIZE,
    PROJECT_ROOT,
    get_agent_timeout,
    get_execution_timeout,
    get_rate_limit_requests,
    get_rate_limit_window,
    is_e2b_configured,
    is_llm_configured,
)
from .agent import AnalystAgent
from .context import build_messages
from .errors import RateLimitExceeded, SandboxError
from .execution import CodeExecutor
from .files import PREVIEWABLE_EXTENSIONS, file_extension
from .llm import AnthropicChatModel, ChatModel
from .logging_config import (
    acquire_session_logger,
    close_all_session_loggers,
    release_session_logger,
    session_logging,
)
from .rate_limit import FixedWindowRateLimiter
from .schemas import (
    ChatRequest,
    ExecuteRequest,
    ExecutionFailure,
    HealthResponse,
    PreviewRequest,
    SessionResponse,
    to_wire,
)
from .streaming import stream_frames, stream_turn
from .tools import ToolName

# Load environment variables from .env in the project root
load_dotenv(PROJECT_ROOT / ".env")


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_chat_model() -> ChatModel:
    return AnthropicChatModel()


@lru_cache(maxsize=1)
def get_rate_limiter() -> FixedWindowRateLimiter:
    """Process-wide limiter shared by the chat and execute endpoints."""
    return FixedWindowRateLimiter(get_rate_limit_requests(), get_rate_limit_window())


def get_code_executor() -> CodeExecutor:
    return CodeExecutor()


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Data Analyst Agent API")
    yield
    logger.info("Shutting down Data Analyst Agent API")
    if get_chat_model.cache_info().currsize:
        model = get_chat_model()
        if isinstance(model, AnthropicChatModel):
            await model.close()
    close_all_session_loggers()


# Create FastAPI application
app = FastAPI(
    title="Data Analyst Agent API",
    description="Streaming data analysis assistant with human-approved sandboxed code execution",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:5173"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    detail = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    logger.info(f"Rejected request to {request.url.path}: {len(detail)} validation error(s)")
    return JSONResponse(status_code=422, content={"error": "validation_error", "detail": detail})


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": "rate_limited", "limit": exc.limit, "window_seconds": exc.window_seconds},
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        HealthResponse with current status and provider configuration flags
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        e2b_configured=is_e2b_configured(),
        llm_configured=is_llm_configured(),
    )


@app.post("/api/session", response_model=SessionResponse)
async def create_session():
    """
    Create a new conversation id.

    Returns:
        SessionResponse with new session ID and creation timestamp
    """
    # Format: YYYYMMDD-HHMMSS-uuid8chars (e.g., 20251128-143052-a1b2c3d4)
    now = datetime.utcnow()
    session_id = f"{now.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"
    logger.info(f"Created new session: {session_id}")
    return SessionResponse(session_id=session_id, created_at=now.isoformat())


@app.post("/api/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    model: ChatModel = Depends(get_chat_model),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """
    Run one conversation turn and stream it back as server-sent events.

    Frames are ``data: {json}\\n\\n`` with event types ``text_delta``,
    ``tool_call``, ``pending_tool_call``, ``error`` and a final ``done``.
    """
    limiter.check(client_key(request))

    session_id = body.sessionId or "anonymous"
    # Released by the background task once the stream has been sent
    slogger = acquire_session_logger(session_id)
    try:
        system, messages = build_messages(body)
        slogger.log_session(
            "TURN_START",
            f"messages={len(messages)}, files={len(body.files or [])}, "
            f"session_files={len(body.sessionFiles or [])}, tool_result={body.toolResult is not None}",
        )
        logger.info(f"[{session_id}] Chat turn with {len(messages)} messages")

        agent = AnalystAgent(model, session_id=session_id)
        events = stream_turn(agent, system, messages, timeout=get_agent_timeout())
    except Exception:
        release_session_logger(session_id)
        raise

    return StreamingResponse(
        stream_frames(events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        background=BackgroundTask(release_session_logger, session_id),
    )


@app.post("/api/chat/execute")
async def execute(
    body: ExecuteRequest,
    request: Request,
    executor: CodeExecutor = Depends(get_code_executor),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """Execute approved Python code in a fresh sandbox."""
    limiter.check(client_key(request))

    if body.tool != ToolName.EXECUTE_PYTHON.value:
        return JSONResponse(status_code=400, content={"error": f"Unsupported tool: {body.tool}"})
    code = body.args.code
    if not code.strip():
        return JSONResponse(status_code=400, content={"error": "No code provided"})

    session_id = body.sessionId or "anonymous"
    files = [(f.name, f.decode()) for f in body.files]
    timeout = get_execution_timeout()
    logger.info(f"[{session_id}] Executing approved code ({len(code)} chars, {len(files)} files)")

    try:
        with session_logging(session_id):
            async with asyncio.timeout(timeout):
                result = await executor.execute(code, files, session_id=session_id)
    except TimeoutError:
        logger.warning(f"[{session_id}] Execution timed out after {timeout}s")
        result = ExecutionFailure(code=code, error=f"Execution timed out after {timeout:g} seconds")

    return to_wire(result)


@app.post("/api/chat/preview")
async def preview(
    body: PreviewRequest,
    executor: CodeExecutor = Depends(get_code_executor),
):
    """Build a rich structural preview of an uploaded tabular file."""
    name = body.file.name
    ext = file_extension(name)
    if ext not in PREVIEWABLE_EXTENSIONS:
        allowed = ", ".join(sorted(PREVIEWABLE_EXTENSIONS))
        return JSONResponse(
            status_code=400,
            content={"error": f"Unsupported file format '.{ext}'. Supported formats: {allowed}"},
        )

    data = body.file.decode()
    if len(data) > MAX_PREVIEW_FILE_SIZE:
        limit_mb = MAX_PREVIEW_FILE_SIZE // (1024 * 1024)
        return JSONResponse(
            status_code=400,
            content={"error": f"File too large for preview (max {limit_mb}MB)"},
        )

    session_id = body.sessionId or "anonymous"
    timeout = get_execution_timeout()
    try:
        with session_logging(session_id):
            async with asyncio.timeout(timeout):
                return await executor.preview(name, data, session_id=session_id)
    except TimeoutError:
        logger.warning(f"[{session_id}] Preview of {name} timed out after {timeout}s")
        return {"success": False, "error": f"Preview timed out after {timeout:g} seconds"}
    except SandboxError as e:
        logger.error(f"[{session_id}] Preview of {name} failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Data Analyst Agent API",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "create_session": "POST /api/session",
            "chat": "POST /api/chat",
            "execute": "POST /api/chat/execute",
            "preview": "POST /api/chat/preview",
        },
        "docs": "/docs",
        "timestamp": datetime.utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "analyst.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
