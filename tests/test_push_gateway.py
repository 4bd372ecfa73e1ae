import asyncio
from types import SimpleNamespace

import pytest
from firebase_admin import exceptions, messaging

from messaging import push_gateway
from messaging.push_gateway import FcmPushGateway, ensure_firebase_app, normalize_error_code
from models.reminders import (
    ERROR_INVALID_REGISTRATION_TOKEN,
    ERROR_TOKEN_NOT_REGISTERED,
    Notification,
    NotificationBatchEntry,
)


def _entry(token):
    return NotificationBatchEntry(
        notification=Notification(title="Medication Reminder", body="Time to take X!"),
        token=token,
        user_id="u1",
    )


def test_normalize_unregistered():
    exc = messaging.UnregisteredError("Requested entity was not found.")
    assert normalize_error_code(exc) == ERROR_TOKEN_NOT_REGISTERED


def test_normalize_invalid_registration_token():
    exc = exceptions.InvalidArgumentError("The registration token is not a valid FCM registration token")
    assert normalize_error_code(exc) == ERROR_INVALID_REGISTRATION_TOKEN


def test_normalize_other_errors_keep_provider_code():
    assert normalize_error_code(exceptions.UnavailableError("try later")) == "messaging/unavailable"
    assert normalize_error_code(exceptions.InvalidArgumentError("bad payload")) == "messaging/invalid-argument"


def test_send_each_chunks_and_preserves_order(monkeypatch):
    calls = []

    def fake_send_each(msgs, dry_run=False, app=None):
        calls.append([m.token for m in msgs])
        responses = []
        for m in msgs:
            if m.token == "dead":
                responses.append(SimpleNamespace(success=False, message_id=None, exception=messaging.UnregisteredError("gone")))
            else:
                responses.append(SimpleNamespace(success=True, message_id=f"id-{m.token}", exception=None))
        return SimpleNamespace(responses=responses)

    monkeypatch.setattr(push_gateway.messaging, "send_each", fake_send_each)
    gw = FcmPushGateway(app=object(), max_batch_size=2, dry_run=True)

    results = asyncio.run(gw.send_each([_entry("a"), _entry("dead"), _entry("c"), _entry("d"), _entry("e")]))

    assert calls == [["a", "dead"], ["c", "d"], ["e"]]
    assert [r.success for r in results] == [True, False, True, True, True]
    assert results[0].message_id == "id-a"
    assert results[1].error_code == ERROR_TOKEN_NOT_REGISTERED


@pytest.fixture
def firebase_init(monkeypatch):
    calls = []

    def no_app():
        raise ValueError("The default Firebase app does not exist.")

    def fake_init(credential=None, options=None):
        calls.append((credential, options))
        return "app"

    monkeypatch.setattr(push_gateway.firebase_admin, "get_app", no_app)
    monkeypatch.setattr(push_gateway.firebase_admin, "initialize_app", fake_init)
    monkeypatch.setattr(push_gateway.credentials, "Certificate", lambda src: ("cert", src))
    return calls


def test_firebase_app_from_inline_json(firebase_init):
    app = ensure_firebase_app(project_id="proj", credentials_json='{"type": "service_account"}')
    assert app == "app"
    assert firebase_init == [(("cert", {"type": "service_account"}), {"projectId": "proj"})]


def test_firebase_app_from_credentials_file(firebase_init, tmp_path):
    key = tmp_path / "sa.json"
    key.write_text("{}")
    ensure_firebase_app(project_id="", credentials_json=str(key))
    assert firebase_init == [(("cert", str(key)), None)]


def test_firebase_app_falls_back_to_adc(firebase_init, tmp_path):
    ensure_firebase_app(project_id="proj", credentials_json=str(tmp_path / "missing.json"))
    assert firebase_init == [(None, {"projectId": "proj"})]


def test_firebase_app_initialised_once(firebase_init, monkeypatch):
    monkeypatch.setattr(push_gateway.firebase_admin, "get_app", lambda: "existing")
    assert ensure_firebase_app(project_id="proj", credentials_json="") == "existing"
    assert firebase_init == []
