"""Tests for the messaging WebSocket."""
import asyncio
import logging

import pytest
from starlette.websockets import WebSocketDisconnect

from volunteerhub.routers.ws import _stop_sender
from tests.conftest import ALICE, BOB, CAROL


def receive_until(ws, predicate, limit=50):
    """Read frames until one matches ``predicate``."""
    for _ in range(limit):
        frame = ws.receive_json()
        if predicate(frame):
            return frame
    raise AssertionError("expected frame never arrived")


def op(name, **fields):
    def predicate(frame):
        return frame.get("op") == name and all(frame.get(k) == v for k, v in fields.items())
    return predicate


def connect(client, token, **params):
    query = "&".join(f"{k}={v}" for k, v in {"token": token, **params}.items())
    return client.websocket_connect(f"/ws/messages?{query}")


class TestMessagesSocket:
    def test_rejects_missing_token(self, client):
        with client.websocket_connect("/ws/messages") as ws:
            assert ws.receive_json() == {"type": "redirect", "location": "/login.html"}
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()

    def test_ping_and_invalid_frames(self, client, make_token):
        with connect(client, make_token(ALICE)) as ws:
            receive_until(ws, op("sidebar", status="empty"))

            ws.send_json({"type": "ping"})
            assert receive_until(ws, lambda f: f["type"] == "pong") == {"type": "pong"}

            ws.send_json({"type": "shout"})
            frame = receive_until(ws, lambda f: f["type"] == "error")
            assert frame["message"] == "Invalid frame"

    def test_malformed_json_keeps_session_open(self, client, make_token):
        with connect(client, make_token(ALICE)) as ws:
            receive_until(ws, op("sidebar", status="empty"))

            ws.send_text("not json")
            frame = receive_until(ws, lambda f: f["type"] == "error")
            assert frame["message"] == "Invalid frame"

            ws.send_json({"type": "ping"})
            assert receive_until(ws, lambda f: f["type"] == "pong") == {"type": "pong"}

    def test_open_chat_without_partner_redirects(self, client, make_token):
        with connect(client, make_token(ALICE)) as ws:
            receive_until(ws, op("sidebar", status="empty"))
            ws.send_json({"type": "open_chat"})
            frame = receive_until(ws, lambda f: f["type"] == "redirect")
            assert frame["location"] == "/messages"

    def test_live_message_from_open_partner(self, client, make_token, auth_headers):
        with connect(client, make_token(ALICE), recipient_id=BOB, name="Bob") as ws:
            header = receive_until(ws, op("header"))
            assert header["name"] == "Bob"
            receive_until(ws, op("thread", status="empty"))

            response = client.post(
                "/api/messages",
                json={"recipient_id": ALICE, "body": "Truck arrives at 8"},
                headers=auth_headers(BOB),
            )
            message_id = str(response.json()["id"])

            frame = receive_until(ws, op("bubble_append"))
            assert frame["bubble_id"] == message_id
            assert "Truck arrives at 8" in frame["html"]
            assert "msg-received" in frame["html"]

    def test_submit_confirms_bubble(self, client, make_token, auth_headers):
        with connect(client, make_token(ALICE), recipient_id=BOB) as ws:
            receive_until(ws, op("thread", status="empty"))

            ws.send_json({"type": "submit", "body": "  On my way  "})

            pending = receive_until(ws, op("bubble_append"))
            assert pending["bubble_id"] == "temp-1"
            assert "sending" in pending["html"]
            cleared = receive_until(ws, op("input"))
            assert cleared["value"] == ""
            confirmed = receive_until(ws, op("bubble_confirm"))
            assert confirmed["temp_id"] == "temp-1"
            assert "sending" not in confirmed["html"]

        thread = client.get(f"/api/messages/thread/{ALICE}", headers=auth_headers(BOB)).json()
        assert [m["body"] for m in thread["messages"]] == ["On my way"]
        assert str(thread["messages"][0]["id"]) == confirmed["bubble_id"]

    def test_toast_and_click(self, client, make_token, auth_headers):
        with connect(client, make_token(ALICE)) as ws:
            receive_until(ws, op("sidebar", status="empty"))

            client.post(
                "/api/messages",
                json={"recipient_id": ALICE, "body": "Are you coming?"},
                headers=auth_headers(CAROL),
            )

            toast = receive_until(ws, op("toast"))
            assert "New message from carol@example.org" in toast["html"]
            assert "Are you coming?" in toast["html"]

            ws.send_json({"type": "toast_click", "toast_id": toast["toast_id"]})
            receive_until(ws, op("toast_dismiss", toast_id=toast["toast_id"]))
            header = receive_until(ws, op("header"))
            assert header["name"] == "carol@example.org"
            thread = receive_until(ws, op("thread", status="ready"))
            assert "Are you coming?" in thread["html"]


@pytest.mark.asyncio
class TestStopSender:
    async def test_failed_outbox_is_collected_and_logged(self, caplog):
        async def broken_outbox():
            raise RuntimeError("client went away")

        sender = asyncio.create_task(broken_outbox())
        await asyncio.sleep(0)
        assert sender.done()

        with caplog.at_level(logging.WARNING, logger="volunteerhub.routers.ws"):
            await _stop_sender(sender, ALICE)

        assert "client went away" in caplog.text

    async def test_running_outbox_is_cancelled(self):
        sender = asyncio.create_task(asyncio.Queue().get())
        await asyncio.sleep(0)

        await _stop_sender(sender, ALICE)

        assert sender.cancelled()
