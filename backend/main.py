# main.py
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import schemas
from config import Settings, get_settings
from errors import (
    Busy, Conflict, ExtractionError, MalformedResponse, NotFound, PersistenceError,
    QuizStateError, StudyPackError, TooShort, Unauthorized, UpstreamError,
)
from extractor import MAX_CHARS, MAX_UPLOAD_BYTES, extract_text
from history import aggregate, grade_band
from llm import AnalysisClient
from pipeline import analyze_text, validate_text
from quiz_engine import QuizEngine
from runs import AnalysisGuard, QuizRun, RunRegistry
from store import AuthContext, make_store

logger = logging.getLogger(__name__)

# Looked up along the exception's MRO, so NotFound/Conflict win over PersistenceError.
STATUS_CODES = {
    TooShort: 422,
    ExtractionError: 422,
    UpstreamError: 502,
    MalformedResponse: 502,
    Unauthorized: 401,
    NotFound: 404,
    Conflict: 409,
    Busy: 409,
    QuizStateError: 409,
    PersistenceError: 503,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _status_for(exc: StudyPackError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 400


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def current_user(request: Request, authorization: Optional[str] = Header(default=None)) -> AuthContext:
    token = (authorization or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return request.app.state.store.resolve(token)


def _stats_out(attempts) -> schemas.AttemptStatsOut:
    stats = aggregate(attempts)
    return schemas.AttemptStatsOut(count=stats.count, mean=stats.mean, best=stats.best)


def _run_out(run: QuizRun) -> schemas.RunOut:
    engine = run.engine
    result = engine.result
    return schemas.RunOut(
        run_id=run.run_id,
        session_id=run.session_id,
        state=engine.state.value,
        current_index=engine.current_index,
        total=engine.total,
        question=engine.current_item,
        answers=engine.answers,
        score=engine.score,
        result=result,
        band=grade_band(result.percentage) if result else None,
        saved=engine.saved,
        save_error=engine.save_error,
    )


def create_app(settings: Settings = None, store=None, client=None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None:
            app.state.store = make_store(settings)
        yield

    # -------------------------------------------------------------------------
    # App & CORS
    # -------------------------------------------------------------------------
    app = FastAPI(title="StudyPack – AI Study Package & Quiz Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.client = client or AnalysisClient.from_settings(settings)
    app.state.runs = RunRegistry()
    app.state.guard = AnalysisGuard()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten in prod
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StudyPackError)
    async def studypack_error(request: Request, exc: StudyPackError):
        status = _status_for(exc)
        if status >= 500:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": exc.message})

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------
    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    # LLM smoke test (quick check that Gemini works)
    @app.get("/api/llm-test")
    def llm_test(request: Request):
        return request.app.state.client.ping()

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------
    @app.post("/api/auth/register", response_model=schemas.UserRecord, status_code=201)
    def register(payload: schemas.RegisterIn, request: Request):
        return request.app.state.store.register(payload.email, payload.password, payload.name)

    @app.post("/api/auth/login", response_model=schemas.AuthSession)
    def login(payload: schemas.LoginIn, request: Request):
        return request.app.state.store.authenticate(payload.email, payload.password)

    @app.post("/api/auth/logout", status_code=204)
    def logout(request: Request, ctx: AuthContext = Depends(current_user)):
        request.app.state.store.logout(ctx)

    @app.get("/api/me", response_model=schemas.UserRecord)
    def me(ctx: AuthContext = Depends(current_user)):
        return ctx.user

    @app.patch("/api/me/theme", response_model=schemas.UserRecord)
    def update_theme(payload: schemas.ThemeIn, request: Request, ctx: AuthContext = Depends(current_user)):
        return request.app.state.store.update_theme(ctx, payload.theme)

    # -------------------------------------------------------------------------
    # Analysis (validate + Gemini + normalize + store)
    # -------------------------------------------------------------------------
    def _analyze_and_store(request: Request, ctx: AuthContext, text: str) -> schemas.StudySession:
        state = request.app.state
        # caller-side floor (the pipeline enforces its own lower one) and the same cap as uploads
        text = validate_text(text, state.settings.min_submit_length)[:MAX_CHARS]
        with state.guard.hold(ctx.user.id):
            package = analyze_text(text, state.client, state.settings)
            return state.store.create_session(ctx, schemas.derive_title(package.summary), text, package)

    @app.post("/api/analyze", response_model=schemas.StudySession, status_code=201)
    def analyze(payload: schemas.AnalyzeIn, request: Request, ctx: AuthContext = Depends(current_user)):
        return _analyze_and_store(request, ctx, payload.text)

    @app.post("/api/analyze/upload", response_model=schemas.StudySession, status_code=201)
    def analyze_upload(request: Request, file: UploadFile = File(...), ctx: AuthContext = Depends(current_user)):
        text = extract_text(file.filename, file.file.read(MAX_UPLOAD_BYTES + 1))
        return _analyze_and_store(request, ctx, text)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------
    @app.get("/api/sessions", response_model=schemas.HistoryOut)
    def list_sessions(request: Request, ctx: AuthContext = Depends(current_user)):
        return {"items": request.app.state.store.list_sessions(ctx)}

    @app.get("/api/sessions/{session_id}", response_model=schemas.StudySession)
    def get_session(session_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        return request.app.state.store.get_session(ctx, session_id)

    @app.patch("/api/sessions/{session_id}", response_model=schemas.StudySession)
    def rename_session(session_id: str, payload: schemas.RenameIn, request: Request,
                       ctx: AuthContext = Depends(current_user)):
        return request.app.state.store.rename_session(ctx, session_id, payload.title)

    @app.delete("/api/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        request.app.state.store.delete_session(ctx, session_id)
        request.app.state.runs.drop_session(session_id)

    # -------------------------------------------------------------------------
    # Quiz runs
    # -------------------------------------------------------------------------
    @app.post("/api/sessions/{session_id}/runs", response_model=schemas.RunOut, status_code=201)
    def start_run(session_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        session = request.app.state.store.get_session(ctx, session_id)
        run = request.app.state.runs.start(ctx.user.id, session.id, QuizEngine(session.quiz))
        return _run_out(run)

    @app.get("/api/runs/{run_id}", response_model=schemas.RunOut)
    def get_run(run_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        return _run_out(request.app.state.runs.get(ctx.user.id, run_id))

    @app.post("/api/runs/{run_id}/answer", response_model=schemas.RunOut)
    def answer(run_id: str, payload: schemas.AnswerIn, request: Request, ctx: AuthContext = Depends(current_user)):
        run = request.app.state.runs.get(ctx.user.id, run_id)
        with run.lock:
            run.engine.answer(payload.option)
            return _run_out(run)

    @app.post("/api/runs/{run_id}/advance", response_model=schemas.RunOut)
    def advance(run_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        store = request.app.state.store
        run = request.app.state.runs.get(ctx.user.id, run_id)
        with run.lock:
            run.engine.on_complete = lambda result: store.create_attempt(ctx, run.session_id, result)
            run.engine.advance()
            return _run_out(run)

    @app.post("/api/runs/{run_id}/reset", response_model=schemas.RunOut)
    def reset(run_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        run = request.app.state.runs.get(ctx.user.id, run_id)
        with run.lock:
            run.engine.reset()
            return _run_out(run)

    # -------------------------------------------------------------------------
    # History & progress
    # -------------------------------------------------------------------------
    @app.get("/api/sessions/{session_id}/attempts", response_model=schemas.AttemptsOut)
    def session_attempts(session_id: str, request: Request, ctx: AuthContext = Depends(current_user)):
        items: List[schemas.QuizAttempt] = request.app.state.store.list_attempts(ctx, session_id)
        stats = _stats_out(items)
        return {"items": items, "stats": stats, "band": grade_band(stats.mean)}

    @app.get("/api/progress", response_model=schemas.AttemptsOut)
    def progress(request: Request, ctx: AuthContext = Depends(current_user)):
        items = request.app.state.store.list_user_attempts(ctx)
        stats = _stats_out(items)
        return {"items": items, "stats": stats, "band": grade_band(stats.mean)}

    return app


app = create_app()
