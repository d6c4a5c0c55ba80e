# records.py
"""Store backed by a remote record service (PocketBase-style collection API).

Collections: users, chats (study sessions) and quiz_results (attempts).
Deleting a chat removes its quiz_results through the service's cascade rule.
"""
import json
import logging
import re
from typing import List, Optional

import requests

from errors import Conflict, NotFound, PersistenceError, Unauthorized
from schemas import (
    AttemptResult, AuthSession, QuizAttempt, SessionRow, StudyPackage, StudySession, UserRecord,
    dump_answers, dump_concepts, dump_quiz, load_answers, load_concepts, load_quiz,
)
from store import AuthContext

logger = logging.getLogger(__name__)

TIMEOUT = 20
RECORD_ID_RE = re.compile(r"^[A-Za-z0-9_]{1,64}$")


def _message(resp) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if not isinstance(data, dict) or not data.get("message"):
        return f"HTTP {resp.status_code}"
    message = str(data["message"])
    fields = data.get("data")
    if isinstance(fields, dict) and fields:
        # field errors look like {"email": {"code": "validation_not_unique", ...}}
        details = ", ".join(
            f"{name}: {err.get('code', '')}" for name, err in fields.items() if isinstance(err, dict)
        )
        if details:
            message = f"{message} ({details})"
    return message


def _as_json_text(value) -> str:
    # text fields come back as strings, json fields as parsed values
    return value if isinstance(value, str) else json.dumps(value)


def _checked_id(record_id: str, what: str) -> str:
    if not record_id or not RECORD_ID_RE.match(record_id):
        raise NotFound(f"{what} not found")
    return record_id


def _user_out(rec: dict) -> UserRecord:
    return UserRecord(
        id=rec["id"], email=rec.get("email", ""), name=rec.get("name") or "", theme=rec.get("theme") or "dark"
    )


def _session_out(rec: dict) -> StudySession:
    return StudySession(
        id=rec["id"],
        owner_id=rec["user"],
        title=rec.get("title") or "",
        created_at=rec.get("created", ""),
        summary=rec["summary"],
        key_concepts=load_concepts(_as_json_text(rec["key_concepts"])),
        quiz=load_quiz(_as_json_text(rec["quiz"])),
    )


def _attempt_out(rec: dict) -> QuizAttempt:
    return QuizAttempt(
        id=rec["id"],
        session_id=rec["chat"],
        user_id=rec["user"],
        score=rec["score"],
        total=rec["total"],
        percentage=rec["percentage"],
        answers=load_answers(_as_json_text(rec["answers"])),
        created_at=rec.get("created", ""),
    )


class RecordServiceStore:
    def __init__(self, base_url: str, http: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()

    def _call(self, method: str, path: str, token: str = None, bad_request=PersistenceError, **kwargs):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = token
        try:
            resp = self.http.request(method, f"{self.base_url}{path}", headers=headers, timeout=TIMEOUT, **kwargs)
        except requests.RequestException as e:
            logger.warning("Record service unreachable: %s", e)
            raise PersistenceError(f"Record service unreachable: {e}") from e

        if resp.status_code in (401, 403):
            raise Unauthorized(_message(resp))
        if resp.status_code == 404:
            raise NotFound(_message(resp))
        if resp.status_code == 400:
            raise bad_request(_message(resp))
        if not 200 <= resp.status_code < 300:
            raise PersistenceError(f"Record service error: {_message(resp)}")
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise PersistenceError("Record service returned invalid JSON") from e

    def _list(self, collection: str, token: str, filter_: str, per_page: int) -> List[dict]:
        params = {"filter": filter_, "sort": "-created", "perPage": str(per_page)}
        data = self._call("GET", f"/api/collections/{collection}/records", token, params=params)
        return (data or {}).get("items") or []

    def _owned_chat(self, ctx: AuthContext, session_id: str) -> dict:
        sid = _checked_id(session_id, "Session")
        rec = self._call("GET", f"/api/collections/chats/records/{sid}", ctx.token)
        if rec.get("user") != ctx.user.id:
            raise NotFound("Session not found")
        return rec

    # ---------- users ----------
    def register(self, email: str, password: str, name: str = "") -> UserRecord:
        payload = {
            "email": email.strip().lower(),
            "password": password,
            "passwordConfirm": password,
            "name": name.strip(),
            "theme": "dark",
        }
        try:
            rec = self._call("POST", "/api/collections/users/records", json=payload)
        except PersistenceError as e:
            if "not_unique" in e.message or "already" in e.message.lower():
                raise Conflict("A user with this email already exists") from e
            raise
        return _user_out(rec)

    def authenticate(self, email: str, password: str) -> AuthSession:
        data = self._call(
            "POST", "/api/collections/users/auth-with-password",
            json={"identity": email.strip().lower(), "password": password},
            bad_request=Unauthorized,
        )
        return AuthSession(token=data["token"], user=_user_out(data["record"]))

    def resolve(self, token: str) -> AuthContext:
        if not token:
            raise Unauthorized("Authentication required")
        data = self._call("POST", "/api/collections/users/auth-refresh", token, bad_request=Unauthorized)
        # the service may rotate the token on refresh; callers keep using theirs until it expires
        return AuthContext(token=token, user=_user_out(data["record"]))

    def logout(self, ctx: AuthContext) -> None:
        # tokens are stateless on the service side
        return None

    def update_theme(self, ctx: AuthContext, theme: str) -> UserRecord:
        rec = self._call("PATCH", f"/api/collections/users/records/{ctx.user.id}", ctx.token, json={"theme": theme})
        return _user_out(rec)

    # ---------- sessions ----------
    def create_session(self, ctx: AuthContext, title: str, input_text: str, package: StudyPackage) -> StudySession:
        payload = {
            "user": ctx.user.id,
            "title": title,
            "input_text": input_text,
            "summary": package.summary,
            "key_concepts": dump_concepts(package.key_concepts),
            "quiz": dump_quiz(package.quiz),
        }
        return _session_out(self._call("POST", "/api/collections/chats/records", ctx.token, json=payload))

    def list_sessions(self, ctx: AuthContext) -> List[SessionRow]:
        items = self._list("chats", ctx.token, f'user="{ctx.user.id}"', 50)
        return [SessionRow(id=r["id"], title=r.get("title") or "", created_at=r.get("created", "")) for r in items]

    def get_session(self, ctx: AuthContext, session_id: str) -> StudySession:
        return _session_out(self._owned_chat(ctx, session_id))

    def rename_session(self, ctx: AuthContext, session_id: str, title: str) -> StudySession:
        rec = self._owned_chat(ctx, session_id)
        rec = self._call("PATCH", f"/api/collections/chats/records/{rec['id']}", ctx.token, json={"title": title})
        return _session_out(rec)

    def delete_session(self, ctx: AuthContext, session_id: str) -> None:
        rec = self._owned_chat(ctx, session_id)
        self._call("DELETE", f"/api/collections/chats/records/{rec['id']}", ctx.token)

    # ---------- attempts ----------
    def create_attempt(self, ctx: AuthContext, session_id: str, result: AttemptResult) -> QuizAttempt:
        payload = {
            "chat": _checked_id(session_id, "Session"),
            "user": ctx.user.id,
            "score": result.score,
            "total": result.total,
            "percentage": result.percentage,
            "answers": dump_answers(result.answers),
        }
        return _attempt_out(self._call("POST", "/api/collections/quiz_results/records", ctx.token, json=payload))

    def list_attempts(self, ctx: AuthContext, session_id: str) -> List[QuizAttempt]:
        rec = self._owned_chat(ctx, session_id)
        items = self._list("quiz_results", ctx.token, f'chat="{rec["id"]}"', 100)
        return [_attempt_out(r) for r in items]

    def list_user_attempts(self, ctx: AuthContext) -> List[QuizAttempt]:
        items = self._list("quiz_results", ctx.token, f'user="{ctx.user.id}"', 200)
        return [_attempt_out(r) for r in items]
