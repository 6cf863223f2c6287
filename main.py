# main.py

import os
import uuid
import asyncio
import logging
from queue import Queue, Empty
from contextlib import asynccontextmanager
from fastapi import FastAPI, File, UploadFile, HTTPException, BackgroundTasks, status, Request
from fastapi.responses import StreamingResponse, HTMLResponse
from fastapi.middleware.cors import CORSMiddleware

from utils import log, setup_logger, get_mime_type, session_context, save_upload
from processing import ExtractionSession
from api_client import APIClient
from config import (
    API_MODEL, COPY_FEEDBACK_DELAY, TEMP_DIR, SESSION_MAX_COUNT, LOG_STREAM_POLL_SECONDS, get_api_key
)
from errors import UserInputError, AnalysisInProgressError
from schemas import SlotRole, SessionStatus, UploadedDocument, CopyResponse
from ui import render_index_page

# --- Real-time Logging Setup ---
# A thread-safe queue to hold formatted log lines for /stream-logs
log_queue = Queue()

api_client = APIClient()
sessions: dict[str, ExtractionSession] = {}


class EndpointFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # The page polls GET /sessions/{id} while busy; keep those out of the access log
        message = record.getMessage()
        return "GET /sessions/" not in message

logging.getLogger("uvicorn.access").addFilter(EndpointFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown events."""
    os.makedirs(TEMP_DIR, exist_ok=True)
    setup_logger(log_queue)
    log.info("Application starting up...")
    if not get_api_key():
        log.warning("API_KEY is not set. Every analysis will fail with a configuration error until it is.")
    yield
    log.info(f"Application shutting down: Closing {len(sessions)} session(s)...")
    for session_id in list(sessions):
        close_session(session_id)
    log.info("Application shutting down: Closing API client...")
    await api_client.close()

app = FastAPI(
    title="Trade Document Intelligence",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


async def log_streamer(request: Request):
    """Yields log records from the queue until the client goes away."""
    while not await request.is_disconnected():
        try:
            # Bounded wait so the worker thread is freed soon after a disconnect
            record = await asyncio.to_thread(log_queue.get, timeout=LOG_STREAM_POLL_SECONDS)
        except Empty:
            continue
        yield f"data: {record}\n\n"

@app.get("/stream-logs")
async def stream_logs(request: Request):
    """Streams log data using Server-Sent Events (SSE)."""
    return StreamingResponse(log_streamer(request), media_type="text/event-stream")


def get_session(session_id: str) -> ExtractionSession:
    session = sessions.get(session_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session ID not found.")
    return session


def close_session(session_id: str) -> bool:
    session = sessions.pop(session_id, None)
    if session is None:
        return False
    session.close()
    return True


def evict_sessions(max_count: int):
    """Closes the oldest idle sessions once the registry grows past max_count."""
    for session_id in list(sessions):
        if len(sessions) <= max_count:
            break
        if not sessions[session_id].is_busy:
            log.info(f"[{session_context(session_id, 'Session')}] Evicting session, registry is full.")
            close_session(session_id)


@app.get("/", response_class=HTMLResponse)
async def index():
    return render_index_page(COPY_FEEDBACK_DELAY)

@app.get("/health")
async def health():
    return {
        "service": app.title,
        "version": app.version,
        "model": API_MODEL,
        "api_key_configured": bool(get_api_key()),
    }

@app.post("/sessions", response_model=SessionStatus, status_code=status.HTTP_201_CREATED)
async def create_session():
    """Starts the state for one page load."""
    session_id = str(uuid.uuid4())
    sessions[session_id] = ExtractionSession(session_id, api_client)
    log.info(f"[{session_context(session_id, 'Session')}] Session created.")
    evict_sessions(SESSION_MAX_COUNT)
    return sessions[session_id].to_status()

@app.get("/sessions/{session_id}", response_model=SessionStatus)
async def get_session_status(session_id: str):
    return get_session(session_id).to_status()

@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str):
    """Frees a session and its uploads. The page calls this when it is closed."""
    if not close_session(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session ID not found.")

@app.put("/sessions/{session_id}/slots/{role}", response_model=SessionStatus)
async def select_file(session_id: str, role: SlotRole, file: UploadFile = File(...)):
    """Puts the uploaded file into one slot, replacing whatever was there."""
    session = get_session(session_id)
    filename = file.filename or role.value
    try:
        temp_path, size = save_upload(file.file, filename, TEMP_DIR)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Could not save file: {e}")
    finally:
        await file.close()

    document = UploadedDocument(
        filename=filename,
        mime_type=get_mime_type(filename, file.content_type),
        path=temp_path,
        size=size,
    )
    session.select_file(role, document)
    return session.to_status()

@app.post("/sessions/{session_id}/analyze", response_model=SessionStatus, status_code=status.HTTP_202_ACCEPTED)
async def analyze(session_id: str, background_tasks: BackgroundTasks):
    """Validates the trigger, marks the session busy and runs the attempt in the background."""
    session = get_session(session_id)
    try:
        documents = session.begin_analysis()
    except UserInputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except AnalysisInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    background_tasks.add_task(session.run_analysis, documents)
    return session.to_status()

@app.post("/sessions/{session_id}/copy", response_model=CopyResponse)
async def copy_result(session_id: str):
    session = get_session(session_id)
    text = session.copy_result()
    if text is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no result to copy.")
    return CopyResponse(text=text, copy_label=session.copy_label)
