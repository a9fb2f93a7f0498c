import json

import pytest
from kink import di

from aura_bot.api.app import create_app
from aura_bot.connectors.aimotive.normalizer import PayloadNormalizer
from aura_bot.domain.models import Decision, PartMatch
from aura_bot.domain.pipeline import InboundPipeline, TurnResult
from aura_bot.domain.services.catalog_service import CatalogCache
from aura_bot.ports.interfaces import TextEvent

from conftest import CONVERSATION, TENANT


class FakePipeline:
    def __init__(self, fail=False):
        self.fail = fail
        self.events = []

    async def process(self, event, *, send=True):
        self.events.append((event, send))
        if self.fail:
            raise RuntimeError("boom")
        decision = Decision(part=PartMatch(id=1, canonical_name="Pastillas de freno", score=0.9))
        return TurnResult(decision=decision, reply="¡Hola!", delivered=True if send else None)


@pytest.fixture
def pipeline():
    return FakePipeline()


@pytest.fixture
def client(pipeline, catalog_entries):
    async def loader():
        return catalog_entries

    di[PayloadNormalizer] = PayloadNormalizer()
    di[InboundPipeline] = pipeline
    di[CatalogCache] = CatalogCache(loader)
    app = create_app(bootstrap=False)
    app.testing = True
    return app.test_client()


def test_healthz(client):
    assert client.get("/healthz").get_json() == {"ok": True}


def test_webhook_json_is_processed(client, pipeline, text_payload):
    resp = client.post("/webhook/aimotive/inbound", json=text_payload)
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "processed": True, "delivered": True}
    event, send = pipeline.events[0]
    assert isinstance(event, TextEvent)
    assert send is True


def test_webhook_form_encoded_json_key(client, pipeline, text_payload):
    resp = client.post(
        "/webhook/aimotive/inbound",
        data=json.dumps(text_payload),
        content_type="application/x-www-form-urlencoded",
    )
    assert resp.status_code == 200
    assert resp.get_json()["processed"] is True
    assert pipeline.events[0][0].text == "pastillas de freno para 1234 BCD"


def test_webhook_plain_text_body(client, pipeline, text_payload):
    resp = client.post("/webhook/aimotive/inbound", data="=" + json.dumps(text_payload), content_type="text/plain")
    assert resp.get_json()["processed"] is True


@pytest.mark.parametrize("body", [{"foo": "bar"}, {"instance": "x", "conversation": "y", "message": {}}])
def test_webhook_malformed_is_ignored_with_200(client, pipeline, body):
    resp = client.post("/webhook/aimotive/inbound", json=body)
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "ignored": True}
    assert pipeline.events == []


def test_webhook_pipeline_failure_still_200(catalog_entries, text_payload):
    di[PayloadNormalizer] = PayloadNormalizer()
    di[InboundPipeline] = FakePipeline(fail=True)
    client = create_app(bootstrap=False).test_client()
    resp = client.post("/webhook/aimotive/inbound", json=text_payload)
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "processed": False}


def test_simulate_returns_preview_without_sending(client, pipeline):
    resp = client.post("/simulate", json={"instance": TENANT, "conversation": CONVERSATION, "text": "pastillas"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["preview"] == "¡Hola!"
    assert body["decision"]["part"]["id"] == 1
    assert pipeline.events[0][1] is False


def test_simulate_rejects_invalid_identifiers(client, pipeline):
    resp = client.post("/simulate", json={"instance": "nope", "conversation": "x", "text": "hola"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid event"
    assert pipeline.events == []


def test_reload_catalog(client):
    resp = client.post("/admin/reload-catalog")
    assert resp.get_json() == {"ok": True, "items_count": 4}


def test_reload_catalog_failure_is_503(pipeline):
    async def broken():
        raise TimeoutError("db slow")

    di[PayloadNormalizer] = PayloadNormalizer()
    di[InboundPipeline] = pipeline
    di[CatalogCache] = CatalogCache(broken)
    resp = create_app(bootstrap=False).test_client().post("/admin/reload-catalog")
    assert resp.status_code == 503
    assert resp.get_json()["ok"] is False
