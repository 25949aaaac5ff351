"""HTTP tests for the FastAPI app, with scripted model backends."""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from Site_Builder.context_store import ContextStore
from Site_Builder.generator import WebsiteGenerator
from Site_Builder.main_fastapi import create_app

from tests.support import (
    BAKERY_CSS, BAKERY_HTML, BAKERY_JS, BAKERY_RESPONSE, BLUE_CSS, BLUE_HEADER_RESPONSE, make_backends,
)


def make_client(generation=(), intents=(), **kwargs):
    backends = make_backends(list(generation), list(intents), **kwargs)
    generator = WebsiteGenerator(ContextStore(), backends=backends, timeout=None)
    return TestClient(create_app(generator)), generator, backends


def parse_sse(body: str):
    return [
        json.loads(block[len("data: "):])
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


@pytest.fixture
def bakery_client():
    client, generator, backends = make_client([BAKERY_RESPONSE, BLUE_HEADER_RESPONSE], ["create", "modify"])
    with client:
        yield client, generator, backends


class TestGenerate:
    def test_streams_status_chunks_and_final_result(self, bakery_client):
        client, generator, _ = bakery_client

        response = client.post("/api/generate", json={
            "prompt": "Build a bakery landing page", "sessionId": "s1", "model": "gemini",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        types = [event["type"] for event in events]
        assert types[0] == "status"
        assert "code_chunk" in types
        assert types[-1] == "final_result"
        assert types.count("final_result") == 1
        result = events[-1]["data"]["result"]
        assert result["success"] is True
        assert result["files"]["html"] == BAKERY_HTML
        assert generator.store.get("s1").current_files.css == BAKERY_CSS

    def test_follow_up_request_modifies(self, bakery_client):
        client, _, _ = bakery_client
        client.post("/api/generate", json={"prompt": "Build a bakery landing page", "sessionId": "s1"})

        response = client.post("/api/generate", json={"prompt": "Make the header blue", "sessionId": "s1"})

        final = parse_sse(response.text)[-1]
        assert final["data"]["result"]["action"] == "modify"
        assert final["data"]["result"]["files"]["css"] == BLUE_CSS
        assert final["data"]["result"]["files"]["js"] == BAKERY_JS
        assert final["data"]["sessionInfo"]["totalHistory"] == 2

    def test_reset_context_starts_over(self, bakery_client):
        client, generator, backends = bakery_client
        client.post("/api/generate", json={"prompt": "Build a bakery landing page", "sessionId": "s1"})
        backends["groq"].responses = ["create"]
        backends["gemini"].responses = [BAKERY_RESPONSE]

        client.post("/api/generate", json={
            "prompt": "Build a bakery landing page", "sessionId": "s1", "resetContext": True,
        })

        assert "Has existing code: No" in backends["groq"].calls[-1][1]
        assert len(generator.store.get("s1").history) == 1

    def test_client_context_seeds_unknown_session(self):
        client, _, backends = make_client([BLUE_HEADER_RESPONSE], ["modify"])
        with client:
            response = client.post("/api/generate", json={
                "prompt": "Make the header blue",
                "sessionId": "fresh",
                "context": {
                    "currentFiles": {"html": BAKERY_HTML, "css": BAKERY_CSS, "js": BAKERY_JS},
                    "history": [],
                },
            })

        final = parse_sse(response.text)[-1]
        assert final["data"]["result"]["files"]["js"] == BAKERY_JS
        assert "Has existing code: Yes" in backends["groq"].calls[0][1]

    def test_unknown_model_is_rejected(self, bakery_client):
        client, _, backends = bakery_client

        response = client.post("/api/generate", json={"prompt": "Build a site", "model": "claude"})

        assert response.status_code == 400
        assert "Unknown model" in response.json()["detail"]
        assert backends["groq"].calls == []

    def test_missing_api_key_is_a_server_error(self):
        client, _, _ = make_client([BAKERY_RESPONSE], ["create"], configured=False)
        with client:
            response = client.post("/api/generate", json={"prompt": "Build a site"})

        assert response.status_code == 500
        assert response.json()["detail"] == "AI service is not configured. Please check your API key."

    @pytest.mark.parametrize("body", [{"prompt": "   "}, {"sessionId": "s1"}])
    def test_prompt_is_required(self, bakery_client, body):
        client, _, _ = bakery_client

        response = client.post("/api/generate", json=body)

        assert response.status_code == 422


class TestSessions:
    def test_unknown_session_is_404(self, bakery_client):
        client, _, _ = bakery_client

        assert client.get("/api/v1/sessions/nobody").status_code == 404
        assert client.get("/api/v1/sessions/nobody/export").status_code == 404
        assert client.get("/api/v1/sessions/nobody/preview").status_code == 404

    def test_session_export_import_and_preview(self, bakery_client):
        client, generator, _ = bakery_client
        client.post("/api/generate", json={"prompt": "Build a bakery landing page", "sessionId": "s1"})

        session = client.get("/api/v1/sessions/s1").json()
        assert session["files"]["html"] == BAKERY_HTML
        assert session["sessionInfo"]["totalHistory"] == 1

        exported = client.get("/api/v1/sessions/s1/export")
        assert "attachment" in exported.headers["content-disposition"]

        imported = client.post("/api/v1/sessions/copy/import", content=exported.content)
        assert imported.status_code == 200
        assert imported.json()["sessionInfo"]["totalHistory"] == 1
        assert generator.store.get("copy").current_files == generator.store.get("s1").current_files

        preview = client.get("/api/v1/sessions/copy/preview")
        assert preview.status_code == 200
        assert preview.headers["content-type"].startswith("text/html")
        assert BAKERY_CSS in preview.text

    def test_invalid_import_keeps_session(self, bakery_client):
        client, generator, _ = bakery_client
        client.post("/api/generate", json={"prompt": "Build a bakery landing page", "sessionId": "s1"})

        response = client.post("/api/v1/sessions/s1/import", content=b"{not json")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid session file format"
        assert generator.store.get("s1").current_files.html == BAKERY_HTML

    def test_reset(self, bakery_client):
        client, generator, _ = bakery_client
        client.post("/api/generate", json={"prompt": "Build a bakery landing page", "sessionId": "s1"})

        response = client.post("/api/v1/sessions/s1/reset")

        assert response.json() == {"status": "success", "sessionId": "s1"}
        assert generator.store.get("s1").history == []


class TestInfoEndpoints:
    def test_root_and_health(self, bakery_client):
        client, _, _ = bakery_client

        assert client.get("/").json()["message"] == "Site Builder API"
        assert client.get("/api/v1/health").json()["status"] == "healthy"

    def test_models(self, bakery_client):
        client, _, _ = bakery_client

        body = client.get("/api/v1/models").json()

        assert {model["id"] for model in body["models"]} == {"gemini", "groq"}
        assert all(model["configured"] for model in body["models"])


class TestConcurrentRequests:
    @pytest.mark.asyncio
    async def test_reset_request_waits_for_the_running_one(self):
        backends = make_backends(
            [BAKERY_RESPONSE, BAKERY_RESPONSE], ["create", "create"], chunk_size=50, delay=0.01
        )
        generator = WebsiteGenerator(ContextStore(), backends=backends, timeout=None)
        transport = httpx.ASGITransport(app=create_app(generator))

        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            first = asyncio.create_task(client.post("/api/generate", json={
                "prompt": "Build a bakery landing page", "sessionId": "s1",
            }))
            while not backends["gemini"].calls and not first.done():
                await asyncio.sleep(0.01)
            second = await client.post("/api/generate", json={
                "prompt": "Start over: a florist shop", "sessionId": "s1", "resetContext": True,
            })
            await first

        assert parse_sse(second.text)[-1]["data"]["sessionInfo"]["totalHistory"] == 1
        assert "Has existing code: No" in backends["groq"].calls[1][1]
        assert [entry.prompt for entry in generator.store.get("s1").history] == ["Start over: a florist shop"]
