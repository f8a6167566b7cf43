"""End-to-end tests for the HTTP routes and the agent WebSocket."""

import pytest
from fastapi.testclient import TestClient

from application.api import api_server
from application.api.api_server import create_app
from application.websocket.schema.events import WORKFLOW_FINISH
from fakes import ScriptedInferenceClient, text, tool


def receive_until_finish(ws):
    """Collect events up to and including the end-of-turn marker"""
    events = []
    while True:
        event = ws.receive_json()
        events.append(event)
        payload = event.get("payload")
        if isinstance(payload, dict) and payload.get("data", {}).get("status") == WORKFLOW_FINISH:
            return events


def expect_ready(ws):
    assert ws.receive_json()["status"] == "connected"
    assert ws.receive_json()["payload"]["data"]["status"] == "Agent ready"


class TestRoutes:
    """Tests for the REST endpoints"""

    def test_health(self, settings):
        with TestClient(create_app(settings, inference_client=ScriptedInferenceClient())) as client:
            body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["active_connections"] == 0

    def test_provider_check(self, settings):
        with TestClient(create_app(settings, inference_client=ScriptedInferenceClient())) as client:
            body = client.get("/check-open-ai-key").json()

        assert body == {"success": True, "provider": settings.model_provider}

    def test_provider_check_without_client(self, settings, monkeypatch):
        def unavailable(_settings):
            raise ValueError("missing api key")

        monkeypatch.setattr(api_server, "create_inference_client", unavailable)

        with TestClient(create_app(settings)) as client:
            assert client.get("/check-open-ai-key").json()["success"] is False

    def test_avatar_state_for_new_session(self, settings):
        with TestClient(create_app(settings, inference_client=ScriptedInferenceClient())) as client:
            body = client.get("/api/avatar-state/fresh-session").json()

        assert body == {"avatar": None, "memories": []}

    def test_avatar_state_reads_do_not_hold_sessions(self, settings):
        """Should answer state reads without keeping an agent per session id."""
        app = create_app(settings, inference_client=ScriptedInferenceClient())

        with TestClient(app) as client:
            for i in range(20):
                assert client.get(f"/api/avatar-state/reader-{i}").status_code == 200

            assert app.state.sessions.sessions == {}

    def test_avatar_state_rejects_bad_session_id(self, settings):
        with TestClient(create_app(settings, inference_client=ScriptedInferenceClient())) as client:
            response = client.get("/api/avatar-state/bad.id")

        assert response.status_code == 400


class TestAgentWebSocket:
    """Tests for /ws/agent/{session_id}"""

    def test_user_message_turn(self, settings):
        app = create_app(settings, inference_client=ScriptedInferenceClient([[text("Hello!")]]))

        with TestClient(app) as client:
            with client.websocket_connect("/ws/agent/s1") as conn:
                expect_ready(conn)
                conn.send_json({"type": "user_message", "content": "hey"})
                events = receive_until_finish(conn)

        assert events[0]["type"] == "markdown"
        assert events[0]["payload"] == "Hello!"
        assert events[-1]["payload"]["data"]["detail"] == "stop"

    def test_tool_turn_updates_rest_state(self, settings):
        """Should show a profile saved over the socket in the state endpoint."""
        script = ScriptedInferenceClient([
            [tool("saveAvatarProfile", {"displayName": "Nova", "tone": "playful"}, call_id="c1")],
            [text("Saved your avatar.")],
        ])

        with TestClient(create_app(settings, inference_client=script)) as client:
            with client.websocket_connect("/ws/agent/s1") as conn:
                expect_ready(conn)
                conn.send_json({"type": "user_message", "content": "call me Nova"})
                events = receive_until_finish(conn)
            state = client.get("/api/avatar-state/s1").json()

        phases = [e["payload"]["data"]["phase"] for e in events
                  if e["type"] == "component" and e["payload"]["component"] == "tool_activity"]
        assert phases == ["call", "result"]
        assert state["avatar"]["displayName"] == "Nova"
        assert state["avatar"]["tone"] == "playful"

    def test_confirmation_form_round_trip(self, settings):
        """Should send a confirmation form and resume once it is approved."""
        script = ScriptedInferenceClient([
            [tool("resetAvatar", call_id="c1")],
            [text("Everything is reset.")],
        ])

        with TestClient(create_app(settings, inference_client=script)) as client:
            with client.websocket_connect("/ws/agent/s1") as conn:
                expect_ready(conn)
                conn.send_json({"type": "user_message", "content": "reset me"})
                first = receive_until_finish(conn)

                conn.send_json({
                    "type": "component",
                    "payload": {
                        "component": "form_submit",
                        "data": {"form_id": "c1", "values": {"action": "approve"}},
                    },
                })
                second = receive_until_finish(conn)

        form = next(e for e in first
                    if e["type"] == "component" and e["payload"]["component"] == "ui_interaction")
        assert form["payload"]["data"]["id"] == "c1"
        assert first[-1]["payload"]["data"]["detail"] == "awaiting_confirmation"

        results = [e["payload"]["data"] for e in second
                   if e["type"] == "component" and e["payload"]["component"] == "tool_activity"]
        assert results[0]["tool_call_id"] == "c1"
        assert results[0]["success"] is True
        assert second[-1]["payload"]["data"]["detail"] == "stop"

    def test_unknown_confirmation_reported(self, settings):
        with TestClient(create_app(settings, inference_client=ScriptedInferenceClient())) as client:
            with client.websocket_connect("/ws/agent/s1") as conn:
                expect_ready(conn)
                conn.send_json({
                    "type": "component",
                    "payload": {
                        "component": "form_submit",
                        "data": {"form_id": "nope", "values": {"action": "reject"}},
                    },
                })
                error = conn.receive_json()

        assert error["type"] == "error"
        assert error["error_code"] == "unknown_tool_call"

    @pytest.mark.parametrize("event, code", [
        ({"type": "markdown", "payload": "hi"}, "unsupported_event"),
        ({"type": "user_message", "content": ""}, "invalid_event"),
        ({"type": "component", "payload": {"component": "form_submit",
                                           "data": {"form_id": "c1", "values": {"action": "maybe"}}}},
         "invalid_form"),
    ])
    def test_bad_events_get_error_codes(self, settings, event, code):
        with TestClient(create_app(settings, inference_client=ScriptedInferenceClient())) as client:
            with client.websocket_connect("/ws/agent/s1") as conn:
                expect_ready(conn)
                conn.send_json(event)
                error = conn.receive_json()

        assert error["error_code"] == code

    def test_missing_provider_reported(self, settings, monkeypatch):
        def unavailable(_settings):
            raise ValueError("missing api key")

        monkeypatch.setattr(api_server, "create_inference_client", unavailable)

        with TestClient(create_app(settings)) as client:
            with client.websocket_connect("/ws/agent/s1") as conn:
                expect_ready(conn)
                conn.send_json({"type": "user_message", "content": "hello?"})
                error = conn.receive_json()

        assert error["error_code"] == "provider_unavailable"
