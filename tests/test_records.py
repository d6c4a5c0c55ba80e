# tests/test_records.py
import json
from unittest.mock import MagicMock

import pytest
import requests

from errors import Conflict, NotFound, PersistenceError, Unauthorized
from records import RecordServiceStore
from schemas import AnswerRecord, AttemptResult, UserRecord, dump_concepts, dump_quiz
from store import AuthContext

BASE = "http://pb.test"
USER = {"id": "u1abc", "email": "ada@example.com", "name": "Ada", "theme": "dark"}


def _resp(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"" if body is None else json.dumps(body).encode()
    resp.text = resp.content.decode()
    if body is None:
        resp.json.side_effect = ValueError("no body")
    else:
        resp.json.return_value = body
    return resp


def _store(*responses):
    http = MagicMock()
    http.request.side_effect = list(responses)
    return RecordServiceStore(BASE + "/", http=http), http


def _ctx():
    return AuthContext(token="tok123", user=UserRecord(**USER))


def _chat(package, chat_id="c1xyz", user="u1abc"):
    return {
        "id": chat_id, "user": user, "title": "Photosynthesis", "created": "2026-10-01 10:00:00.000Z",
        "summary": package.summary,
        "key_concepts": dump_concepts(package.key_concepts),
        "quiz": dump_quiz(package.quiz),
    }


def test_register_sends_default_theme():
    store, http = _store(_resp(200, USER))
    user = store.register("Ada@Example.com", "correct horse", "Ada")
    assert user.id == "u1abc"
    method, url = http.request.call_args.args
    body = http.request.call_args.kwargs["json"]
    assert (method, url) == ("POST", f"{BASE}/api/collections/users/records")
    assert body["theme"] == "dark"
    assert body["passwordConfirm"] == "correct horse"
    assert body["email"] == "ada@example.com"


def test_register_duplicate_email():
    body = {"message": "Failed to create record.", "data": {"email": {"code": "validation_not_unique"}}}
    store, _ = _store(_resp(400, body))
    with pytest.raises(Conflict):
        store.register("ada@example.com", "correct horse")


def test_login_returns_token_and_user():
    store, http = _store(_resp(200, {"token": "tok123", "record": USER}))
    auth = store.authenticate("ada@example.com", "correct horse")
    assert auth.token == "tok123"
    assert auth.user.email == "ada@example.com"
    assert http.request.call_args.kwargs["json"] == {"identity": "ada@example.com", "password": "correct horse"}


def test_login_failure_is_unauthorized():
    store, _ = _store(_resp(400, {"message": "Failed to authenticate."}))
    with pytest.raises(Unauthorized):
        store.authenticate("ada@example.com", "nope")


def test_resolve_uses_auth_refresh():
    store, http = _store(_resp(200, {"token": "tok456", "record": USER}))
    ctx = store.resolve("tok123")
    assert ctx.user.id == "u1abc"
    assert ctx.token == "tok123"
    assert http.request.call_args.kwargs["headers"]["Authorization"] == "tok123"


def test_resolve_without_token_makes_no_call():
    store, http = _store()
    with pytest.raises(Unauthorized):
        store.resolve("")
    http.request.assert_not_called()


def test_expired_token_is_unauthorized():
    store, _ = _store(_resp(401, {"message": "The request requires valid record authorization token."}))
    with pytest.raises(Unauthorized):
        store.resolve("old")


def test_transport_failure_is_persistence_error():
    http = MagicMock()
    http.request.side_effect = requests.ConnectionError("refused")
    store = RecordServiceStore(BASE, http=http)
    with pytest.raises(PersistenceError, match="unreachable"):
        store.list_sessions(_ctx())


def test_server_error_is_persistence_error():
    store, _ = _store(_resp(500, {"message": "boom"}))
    with pytest.raises(PersistenceError, match="boom"):
        store.list_sessions(_ctx())


def test_create_session_serializes_package(package):
    store, http = _store(_resp(200, _chat(package)))
    session = store.create_session(_ctx(), "Photosynthesis", "input text", package)
    body = http.request.call_args.kwargs["json"]
    assert isinstance(body["key_concepts"], str)
    assert isinstance(body["quiz"], str)
    assert body["user"] == "u1abc"
    assert session.package() == package


def test_session_json_fields_may_come_back_parsed(package):
    chat = _chat(package)
    chat["quiz"] = json.loads(chat["quiz"])
    chat["key_concepts"] = json.loads(chat["key_concepts"])
    store, _ = _store(_resp(200, chat))
    assert store.get_session(_ctx(), "c1xyz").package() == package


def test_list_sessions_filters_and_sorts(package):
    store, http = _store(_resp(200, {"items": [_chat(package, "c2"), _chat(package, "c1")]}))
    rows = store.list_sessions(_ctx())
    assert [r.id for r in rows] == ["c2", "c1"]
    params = http.request.call_args.kwargs["params"]
    assert params["filter"] == 'user="u1abc"'
    assert params["sort"] == "-created"


def test_foreign_session_is_not_found(package):
    store, _ = _store(_resp(200, _chat(package, user="someone-else")))
    with pytest.raises(NotFound):
        store.get_session(_ctx(), "c1xyz")


def test_suspicious_id_makes_no_call():
    store, http = _store()
    with pytest.raises(NotFound):
        store.get_session(_ctx(), 'x" || user!="')
    http.request.assert_not_called()


def test_rename_patches_title_only(package):
    renamed = dict(_chat(package), title="Bio")
    store, http = _store(_resp(200, _chat(package)), _resp(200, renamed))
    assert store.rename_session(_ctx(), "c1xyz", "Bio").title == "Bio"
    method, url = http.request.call_args.args
    assert method == "PATCH"
    assert http.request.call_args.kwargs["json"] == {"title": "Bio"}


def test_delete_session(package):
    store, http = _store(_resp(200, _chat(package)), _resp(204))
    store.delete_session(_ctx(), "c1xyz")
    method, url = http.request.call_args.args
    assert (method, url) == ("DELETE", f"{BASE}/api/collections/chats/records/c1xyz")


def test_create_and_list_attempts(package):
    answers = [AnswerRecord(question="Q", selected_index=1, correct_index=1, correct=True)]
    result = AttemptResult(score=1, total=1, percentage=100, answers=answers)
    record = {
        "id": "r1", "chat": "c1xyz", "user": "u1abc", "score": 1, "total": 1, "percentage": 100,
        "answers": json.dumps([a.model_dump(by_alias=True) for a in answers]),
        "created": "2026-10-01 10:05:00.000Z",
    }
    store, http = _store(_resp(200, record), _resp(200, _chat(package)), _resp(200, {"items": [record]}))

    saved = store.create_attempt(_ctx(), "c1xyz", result)
    assert saved.answers == answers
    assert json.loads(http.request.call_args.kwargs["json"]["answers"])[0]["selectedIndex"] == 1

    listed = store.list_attempts(_ctx(), "c1xyz")
    assert [a.id for a in listed] == ["r1"]
    assert http.request.call_args.kwargs["params"]["filter"] == 'chat="c1xyz"'
