"""Integration tests for the FastAPI surface (notify_server.main)."""
import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from fakes import FakeConnector
from notify_server.main import create_app
from notify_server.simulation import AlwaysSucceed, WorkSimulator

TERMINAL = ("completed", "failed")


class StuckSimulator(WorkSimulator):
    async def run(self, envelope):
        await asyncio.Event().wait()


def _wait_for_status(client, mensagem_id, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        resp = client.get(f"/api/status/{mensagem_id}")
        if resp.status_code == 200 and resp.json()["status"] in TERMINAL:
            return resp.json()
        time.sleep(0.01)
    raise AssertionError(f"{mensagem_id} did not reach a terminal state")


@pytest.fixture()
def connected(test_settings, connector, pipeline_factory):
    pipeline = pipeline_factory(connector, policy=AlwaysSucceed())
    app = create_app(settings=test_settings, pipeline=pipeline)
    with TestClient(app) as client:
        yield client, connector


@pytest.fixture()
def degraded(test_settings, pipeline_factory):
    pipeline = pipeline_factory(FakeConnector(failures=99))
    app = create_app(settings=test_settings, pipeline=pipeline)
    with TestClient(app) as client:
        yield client


class TestNotificarEndpoint:
    def test_accepts_and_processes(self, connected):
        client, connector = connected

        resp = client.post("/api/notificar", json={"mensagemId": "m1", "conteudoMensagem": "hi"})

        assert resp.status_code == 202
        assert resp.json()["mensagemId"] == "m1"
        assert resp.json()["status"] == "accepted"
        assert _wait_for_status(client, "m1") == {"mensagemId": "m1", "status": "completed"}
        status_messages = connector.connection.channel_obj.published_to("test.status")
        assert len(status_messages) == 1

    def test_generates_id_when_absent(self, connected):
        client, _ = connected

        resp = client.post("/api/notificar", json={"conteudoMensagem": "no id given"})

        assert resp.status_code == 202
        mensagem_id = resp.json()["mensagemId"]
        assert mensagem_id
        assert _wait_for_status(client, mensagem_id)["status"] == "completed"

    def test_duplicate_tracked_id_conflicts(self, connected):
        client, _ = connected
        client.post("/api/notificar", json={"mensagemId": "dup", "conteudoMensagem": "hi"})
        _wait_for_status(client, "dup")

        resp = client.post("/api/notificar", json={"mensagemId": "dup", "conteudoMensagem": "again"})

        assert resp.status_code == 409

    def test_duplicate_before_consumption_conflicts(self, test_settings, connector, pipeline_factory):
        # The single worker is stuck on "blocker", so "early" is never picked up.
        pipeline = pipeline_factory(connector, simulator=StuckSimulator(), work_timeout_s=30.0)
        app = create_app(settings=test_settings, pipeline=pipeline)
        with TestClient(app) as client:
            client.post("/api/notificar", json={"mensagemId": "blocker", "conteudoMensagem": "x"})
            first = client.post("/api/notificar", json={"mensagemId": "early", "conteudoMensagem": "one"})
            second = client.post("/api/notificar", json={"mensagemId": "early", "conteudoMensagem": "two"})
            early_status = client.get("/api/status/early").status_code

        assert first.status_code == 202
        assert second.status_code == 409
        assert early_status == 404
        entrada = connector.connection.channel_obj.published_to("test.entrada")
        assert [b'"early"' in m.body for m in entrada] == [False, True]

    @pytest.mark.parametrize("payload", [
        {},
        {"mensagemId": "m1"},
        {"mensagemId": "m1", "conteudoMensagem": ""},
        {"mensagemId": "m1", "conteudoMensagem": "   "},
    ])
    def test_rejects_invalid_payloads(self, connected, payload):
        client, connector = connected

        resp = client.post("/api/notificar", json=payload)

        assert resp.status_code == 422
        assert connector.connection.channel_obj.published_to("test.entrada") == []


class TestNotificationsEndpoints:
    def test_create_list_and_get(self, connected):
        client, connector = connected

        resp = client.post("/api/notifications", json={
            "recipient": "user@example.com",
            "subject": "Welcome",
            "message": "Hello there",
            "priority": "high",
        })

        assert resp.status_code == 201
        record = resp.json()
        assert record["status"] in ("pending", "processing", "completed")
        _wait_for_status(client, record["id"])

        listed = client.get("/api/notifications").json()
        assert [r["id"] for r in listed] == [record["id"]]

        fetched = client.get(f"/api/notifications/{record['id']}").json()
        assert fetched["status"] == "completed"
        assert fetched["priority"] == "high"

        [published] = connector.connection.channel_obj.published_to("test.entrada")
        assert b'"recipient":"user@example.com"' in published.body

    def test_unknown_notification_404(self, connected):
        client, _ = connected

        assert client.get("/api/notifications/nope").status_code == 404

    def test_invalid_priority_rejected(self, connected):
        client, _ = connected

        resp = client.post("/api/notifications", json={
            "recipient": "user@example.com", "subject": "s", "message": "m", "priority": "whenever",
        })

        assert resp.status_code == 422


class TestStatusEndpoints:
    def test_unknown_status_404(self, connected):
        client, _ = connected

        assert client.get("/api/status/never-published").status_code == 404

    def test_all_statuses_and_stats(self, connected):
        client, _ = connected
        for mensagem_id in ("a", "b"):
            client.post("/api/notificar", json={"mensagemId": mensagem_id, "conteudoMensagem": "x"})
        for mensagem_id in ("a", "b"):
            _wait_for_status(client, mensagem_id)

        statuses = client.get("/api/status").json()
        stats = client.get("/api/queue/stats").json()

        assert sorted(s["mensagemId"] for s in statuses) == ["a", "b"]
        assert stats == {"pending": 0, "processing": 0, "completed": 2, "failed": 0}


class TestDegradedMode:
    def test_health_reports_broker_down(self, degraded):
        resp = degraded.get("/healthz")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "broker_connected": False}

    def test_intake_returns_503(self, degraded):
        direct = degraded.post("/api/notificar", json={"mensagemId": "m1", "conteudoMensagem": "hi"})
        record = degraded.post("/api/notifications", json={
            "recipient": "user@example.com", "subject": "s", "message": "m",
        })

        assert direct.status_code == 503
        assert record.status_code == 503
        assert degraded.get("/api/notifications").json() == []

    def test_reads_still_served(self, degraded):
        assert degraded.get("/api/status").json() == []
        assert degraded.get("/api/queue/stats").status_code == 200
        assert degraded.get("/api/status/m1").status_code == 404


class TestObserverChannel:
    def test_websocket_snapshot_then_live_updates(self, connected):
        client, _ = connected

        with client.websocket_connect("/ws?client_id=test-observer") as ws:
            first = ws.receive_json()
            assert first["type"] == "initial_data"
            assert first["queueStats"] == {"pending": 0, "processing": 0, "completed": 0, "failed": 0}

            client.post("/api/notificar", json={"mensagemId": "live-1", "conteudoMensagem": "hi"})

            seen = []
            for _ in range(10):
                frame = ws.receive_json()
                if frame["type"] == "message-status-update":
                    seen.append(frame["status"])
                if "completed" in seen:
                    break

        assert seen == ["processing", "completed"]

    def test_stats_counts_observers(self, connected):
        client, _ = connected

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            stats = client.get("/stats").json()

        assert stats["active_ws"] == 1
