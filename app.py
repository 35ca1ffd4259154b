import os
import uuid
import logging
import functools
import time
import uvicorn
from collections import OrderedDict
from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from typing import Dict, Optional

import visionary
from visionary import __version__
from visionary.config import Settings
from visionary.errors import (
    FileTooLargeError,
    SessionBusyError,
    SimulationError,
    UnsupportedImageTypeError,
    ValidationError,
)
from visionary.gemini_service import generate_simulation, parse_data_url
from visionary.models import InstructionUpdate, PreferencesPayload, PreferencesView, SessionView
from visionary.preferences import (
    CREDENTIAL_KEY,
    PROMPT_KEY,
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    SessionPreferenceStore,
)
from visionary.session import ImageSlot, SimulationSession

logger = logging.getLogger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(visionary.__file__)), "static")
SESSION_COOKIE = "visionary_session"
RESULT_FILENAME = "ai-simulation-result.png"


# --- 1. Session Registry ---
class SessionRegistry:
    """Holds one SimulationSession per browser, keyed by the session cookie.

    Bounded: sessions idle longer than `session_ttl_seconds` are dropped, and
    the least recently used one is evicted once `max_sessions` is reached.
    """

    def __init__(self, settings: Settings, generate=None, clock=time.monotonic):
        self.settings = settings
        self.generate = generate or functools.partial(generate_simulation, model_name=settings.image_model)
        self.shared_preferences = (
            JsonFilePreferenceStore(settings.preferences_file) if settings.preferences_file else None
        )
        self.clock = clock
        self.sessions: "OrderedDict[str, SimulationSession]" = OrderedDict()
        self._last_seen: Dict[str, float] = {}

    def _preferences_for_new_session(self):
        if self.shared_preferences is None:
            return InMemoryPreferenceStore()
        return SessionPreferenceStore(self.shared_preferences)

    def _drop(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        logger.debug("Dropped session %s", session_id)

    def prune(self) -> None:
        cutoff = self.clock() - self.settings.session_ttl_seconds
        for session_id in [sid for sid, seen in self._last_seen.items() if seen < cutoff]:
            self._drop(session_id)

    def get(self, session_id: Optional[str]) -> Optional[SimulationSession]:
        self.prune()
        if not session_id or session_id not in self.sessions:
            return None
        self.sessions.move_to_end(session_id)
        self._last_seen[session_id] = self.clock()
        return self.sessions[session_id]

    def create(self) -> str:
        self.prune()
        while len(self.sessions) >= max(self.settings.max_sessions, 1):
            oldest = next(iter(self.sessions))
            logger.info("Session limit reached; evicting %s", oldest)
            self._drop(oldest)

        session_id = uuid.uuid4().hex
        self.sessions[session_id] = SimulationSession(
            generate=self.generate,
            preferences=self._preferences_for_new_session(),
            default_credential=self.settings.gemini_api_key,
            max_upload_bytes=self.settings.max_upload_bytes,
        )
        self._last_seen[session_id] = self.clock()
        logger.debug("Created session %s", session_id)
        return session_id


def get_session(request: Request, response: Response) -> SimulationSession:
    registry: SessionRegistry = request.app.state.registry
    session = registry.get(request.cookies.get(SESSION_COOKIE))
    if session is None:
        session_id = registry.create()
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
        session = registry.sessions[session_id]
    return session


def to_http_error(error: SimulationError) -> HTTPException:
    if isinstance(error, FileTooLargeError):
        status_code = 413
    elif isinstance(error, UnsupportedImageTypeError):
        status_code = 415
    elif isinstance(error, SessionBusyError):
        status_code = 409
    elif isinstance(error, ValidationError):
        status_code = 422
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.message)


# --- 2. FastAPI Application Setup ---
def create_app(settings: Optional[Settings] = None, generate=None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Visionary You",
        description="Simulates a look by blending features of a reference photo onto your own, using Gemini.",
        version=__version__,
    )
    app.state.registry = SessionRegistry(settings, generate=generate)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- 3. API Endpoints ---
    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(os.path.join(STATIC_DIR, "index.html"))

    @app.get("/api/session", response_model=SessionView)
    async def read_session(session: SimulationSession = Depends(get_session)):
        return session.snapshot()

    @app.post("/api/session/images/{slot}", response_model=SessionView)
    async def upload_image(
        slot: ImageSlot,
        file: UploadFile = File(...),
        session: SimulationSession = Depends(get_session),
    ):
        # One byte past the limit is enough for select_image to refuse the file.
        content = await file.read(session.max_upload_bytes + 1)
        try:
            session.select_image(slot, content, file.content_type or "", filename=file.filename or "")
        except SimulationError as e:
            logger.info("Rejected %s upload %r: %s", slot.value, file.filename, e.message)
            raise to_http_error(e)
        return session.snapshot()

    @app.put("/api/session/instruction", response_model=SessionView)
    async def update_instruction(payload: InstructionUpdate, session: SimulationSession = Depends(get_session)):
        try:
            session.set_instruction(payload.instruction)
        except SimulationError as e:
            raise to_http_error(e)
        return session.snapshot()

    @app.post("/api/session/simulate", response_model=SessionView)
    async def simulate(
        session: SimulationSession = Depends(get_session),
        x_gemini_api_key: Optional[str] = Header(None),
    ):
        # Failures come back as a `failed` view; only a rejected submission is an HTTP error.
        try:
            await session.submit(credential=x_gemini_api_key)
        except SessionBusyError as e:
            raise to_http_error(e)
        return session.snapshot()

    @app.post("/api/session/reset", response_model=SessionView)
    async def reset_session(session: SimulationSession = Depends(get_session)):
        session.reset()
        return session.snapshot()

    @app.get(
        "/api/session/result",
        response_class=Response,
        responses={
            200: {
                "content": {"image/png": {}},
                "description": "The generated simulation image as a file download.",
            }
        },
    )
    async def download_result(session: SimulationSession = Depends(get_session)):
        result_url = session.snapshot()["result_url"]
        if not result_url:
            raise HTTPException(status_code=404, detail="No simulation result to download.")
        media_type, content = parse_data_url(result_url)
        return Response(
            content=content,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{RESULT_FILENAME}"'},
        )

    @app.get("/api/preferences", response_model=PreferencesView)
    async def read_preferences(session: SimulationSession = Depends(get_session)):
        prefs = session.preferences
        return PreferencesView(has_credential=bool(prefs.get(CREDENTIAL_KEY)), instruction=prefs.get(PROMPT_KEY))

    @app.put("/api/preferences", response_model=PreferencesView)
    async def update_preferences(payload: PreferencesPayload, session: SimulationSession = Depends(get_session)):
        prefs = session.preferences
        if payload.api_key is not None:
            if payload.api_key.strip():
                prefs.set(CREDENTIAL_KEY, payload.api_key.strip())
            else:
                prefs.delete(CREDENTIAL_KEY)
        if payload.instruction is not None:
            try:
                session.set_instruction(payload.instruction)
            except SimulationError as e:
                raise to_http_error(e)
        return PreferencesView(has_credential=bool(prefs.get(CREDENTIAL_KEY)), instruction=prefs.get(PROMPT_KEY))

    return app


app = create_app()


# --- 4. Run the Application ---
if __name__ == "__main__":
    registry_settings = app.state.registry.settings
    uvicorn.run(app, host=registry_settings.host, port=registry_settings.port)
