# store.py
"""Persistence for users, study sessions and quiz attempts.

Two backends share one interface:
  SqlStore           - local database through SQLAlchemy (default)
  RecordServiceStore - remote collection API, see records.py
Every call that touches user data takes an explicit AuthContext.
"""
import hashlib
import hmac
import logging
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import models
from config import Settings
from db import Base, get_session, make_engine, make_session_factory
from errors import Conflict, NotFound, PersistenceError, Unauthorized
from schemas import (
    AttemptResult, AuthSession, QuizAttempt, SessionRow, StudyPackage, StudySession, UserRecord,
    dump_answers, dump_concepts, dump_quiz, load_answers, load_concepts, load_quiz,
)

logger = logging.getLogger(__name__)

PBKDF2_DIGEST = "sha256"
PBKDF2_ROUNDS = 120_000


@dataclass(frozen=True)
class AuthContext:
    token: str
    user: UserRecord


# ---------- Password helpers ----------
def hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac(PBKDF2_DIGEST, password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    return f"pbkdf2_{PBKDF2_DIGEST}${PBKDF2_ROUNDS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, rounds, salt_hex, digest_hex = stored.split("$")
        digest = hashlib.pbkdf2_hmac(
            scheme.split("_", 1)[1], password.encode("utf-8"), bytes.fromhex(salt_hex), int(rounds)
        )
    except (ValueError, IndexError):
        return False
    return hmac.compare_digest(digest.hex(), digest_hex)


# ---------- Row -> schema ----------
def _user_out(row: models.User) -> UserRecord:
    return UserRecord(id=str(row.id), email=row.email, name=row.name or "", theme=row.theme)


def _session_out(row: models.StudySession) -> StudySession:
    return StudySession(
        id=str(row.id),
        owner_id=str(row.owner_id),
        title=row.title,
        created_at=row.created_at.isoformat(),
        summary=row.summary,
        key_concepts=load_concepts(row.key_concepts),
        quiz=load_quiz(row.quiz),
    )


def _attempt_out(row: models.QuizAttempt) -> QuizAttempt:
    return QuizAttempt(
        id=str(row.id),
        session_id=str(row.session_id),
        user_id=str(row.user_id),
        score=row.score,
        total=row.total,
        percentage=row.percentage,
        answers=load_answers(row.answers),
        created_at=row.created_at.isoformat(),
    )


def _int_id(value: str, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise NotFound(f"{what} not found")


class SqlStore:
    def __init__(self, database_url: str, token_ttl_hours: int = 72):
        self.engine = make_engine(database_url)
        self.factory = make_session_factory(self.engine)
        self.token_ttl = timedelta(hours=token_ttl_hours)
        # Create tables at startup
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _db(self):
        with get_session(self.factory) as db:
            try:
                yield db
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Database error: %s", e)
                raise PersistenceError(f"Database error: {e.__class__.__name__}") from e

    def _owned_session(self, db, ctx: AuthContext, session_id: str) -> models.StudySession:
        row = db.get(models.StudySession, _int_id(session_id, "Session"))
        if not row or str(row.owner_id) != ctx.user.id:
            raise NotFound("Session not found")
        return row

    # ---------- users ----------
    def register(self, email: str, password: str, name: str = "") -> UserRecord:
        email = email.strip().lower()
        with self._db() as db:
            if db.query(models.User).filter(models.User.email == email).first():
                raise Conflict("A user with this email already exists")
            row = models.User(email=email, name=name.strip(), password_hash=hash_password(password), theme="dark")
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                # concurrent sign-up won the unique email constraint
                db.rollback()
                raise Conflict("A user with this email already exists") from e
            return _user_out(row)

    def authenticate(self, email: str, password: str) -> AuthSession:
        email = email.strip().lower()
        with self._db() as db:
            row = db.query(models.User).filter(models.User.email == email).first()
            if not row or not verify_password(password, row.password_hash):
                raise Unauthorized("Invalid credentials")
            token = secrets.token_urlsafe(32)
            db.add(models.AuthToken(token=token, user_id=row.id, expires_at=models.utcnow() + self.token_ttl))
            db.commit()
            return AuthSession(token=token, user=_user_out(row))

    def resolve(self, token: str) -> AuthContext:
        if not token:
            raise Unauthorized("Authentication required")
        with self._db() as db:
            row = db.get(models.AuthToken, token)
            if not row:
                raise Unauthorized("Invalid token")
            if row.expires_at <= models.utcnow():
                db.delete(row)
                db.commit()
                raise Unauthorized("Token expired")
            return AuthContext(token=token, user=_user_out(row.user))

    def logout(self, ctx: AuthContext) -> None:
        with self._db() as db:
            row = db.get(models.AuthToken, ctx.token)
            if row:
                db.delete(row)
                db.commit()

    def update_theme(self, ctx: AuthContext, theme: str) -> UserRecord:
        with self._db() as db:
            row = db.get(models.User, int(ctx.user.id))
            if not row:
                raise NotFound("User not found")
            row.theme = theme
            db.commit()
            return _user_out(row)

    # ---------- sessions ----------
    def create_session(self, ctx: AuthContext, title: str, input_text: str, package: StudyPackage) -> StudySession:
        with self._db() as db:
            row = models.StudySession(
                owner_id=int(ctx.user.id),
                title=title,
                input_text=input_text,
                summary=package.summary,
                key_concepts=dump_concepts(package.key_concepts),
                quiz=dump_quiz(package.quiz),
            )
            db.add(row)
            db.commit()
            return _session_out(row)

    def list_sessions(self, ctx: AuthContext) -> List[SessionRow]:
        with self._db() as db:
            rows = (
                db.query(models.StudySession)
                .filter(models.StudySession.owner_id == int(ctx.user.id))
                .order_by(models.StudySession.created_at.desc(), models.StudySession.id.desc())
                .all()
            )
            return [SessionRow(id=str(r.id), title=r.title, created_at=r.created_at.isoformat()) for r in rows]

    def get_session(self, ctx: AuthContext, session_id: str) -> StudySession:
        with self._db() as db:
            return _session_out(self._owned_session(db, ctx, session_id))

    def rename_session(self, ctx: AuthContext, session_id: str, title: str) -> StudySession:
        with self._db() as db:
            row = self._owned_session(db, ctx, session_id)
            row.title = title
            db.commit()
            return _session_out(row)

    def delete_session(self, ctx: AuthContext, session_id: str) -> None:
        with self._db() as db:
            row = self._owned_session(db, ctx, session_id)
            db.delete(row)  # attempts go with it (delete-orphan)
            db.commit()

    # ---------- attempts ----------
    def create_attempt(self, ctx: AuthContext, session_id: str, result: AttemptResult) -> QuizAttempt:
        with self._db() as db:
            session_row = self._owned_session(db, ctx, session_id)
            row = models.QuizAttempt(
                session_id=session_row.id,
                user_id=int(ctx.user.id),
                score=result.score,
                total=result.total,
                percentage=result.percentage,
                answers=dump_answers(result.answers),
            )
            db.add(row)
            db.commit()
            return _attempt_out(row)

    def list_attempts(self, ctx: AuthContext, session_id: str) -> List[QuizAttempt]:
        with self._db() as db:
            session_row = self._owned_session(db, ctx, session_id)
            rows = (
                db.query(models.QuizAttempt)
                .filter(models.QuizAttempt.session_id == session_row.id)
                .order_by(models.QuizAttempt.created_at.desc(), models.QuizAttempt.id.desc())
                .all()
            )
            return [_attempt_out(r) for r in rows]

    def list_user_attempts(self, ctx: AuthContext) -> List[QuizAttempt]:
        with self._db() as db:
            rows = (
                db.query(models.QuizAttempt)
                .filter(models.QuizAttempt.user_id == int(ctx.user.id))
                .order_by(models.QuizAttempt.created_at.desc(), models.QuizAttempt.id.desc())
                .all()
            )
            return [_attempt_out(r) for r in rows]


def make_store(settings: Settings):
    if settings.store_backend == "remote":
        from records import RecordServiceStore
        return RecordServiceStore(settings.record_service_url)
    return SqlStore(settings.database_url, settings.token_ttl_hours)
