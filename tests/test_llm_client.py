import json

import httpx
import pytest

from aura_bot.core.errors import CollaboratorError
from aura_bot.core.llm_client import LLMClient
from aura_bot.core.prompting import PromptBuilder
from aura_bot.domain.models import Decision, Message, PartMatch, Product, VehicleSummary


def _chat(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class Gateway:
    """Gateway fake: responde por path e guarda os corpos recebidos."""
    def __init__(self, fail_models=()):
        self.fail_models = set(fail_models)
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"OggS", headers={"content-type": "audio/ogg"})
        if path.endswith("/audio/transcriptions"):
            self.calls.append((path, request.headers["content-type"]))
            return httpx.Response(200, json={"text": "  discos de freno  "})
        body = json.loads(request.content)
        self.calls.append((path, body))
        if path.endswith("/embeddings"):
            n = len(body["input"])
            rows = [{"index": i, "embedding": [float(i), 1.0]} for i in reversed(range(n))]
            return httpx.Response(200, json={"data": rows})
        if body["model"] in self.fail_models:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json=_chat(f"  respuesta de {body['model']}  "))


def _client(settings, gateway):
    return LLMClient(settings, PromptBuilder(), transport=httpx.MockTransport(gateway))


@pytest.mark.asyncio
async def test_embed_many_orders_by_index(settings):
    gw = Gateway()
    vectors = await _client(settings, gw).embed_many(["a", "b", "c"])
    assert vectors == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]
    path, body = gw.calls[0]
    assert path == "/v1/embeddings"
    assert body == {"model": "text-embedding-3-small", "input": ["a", "b", "c"]}


@pytest.mark.asyncio
async def test_embed_count_mismatch_raises(settings):
    def handler(request):
        return httpx.Response(200, json={"data": []})

    llm = LLMClient(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(CollaboratorError):
        await llm.embed("pastillas")


@pytest.mark.asyncio
async def test_generate_uses_decision_prompt_and_history(settings):
    gw = Gateway()
    decision = Decision(
        vehicle=VehicleSummary(plate="1234BCD", brand="RENAULT", model="MEGANE", fuel="Diesel"),
        part=PartMatch(id=100121, canonical_name="Pastillas de freno", score=0.91),
        selected_product=Product(ref="P-008", name="Pastillas TRW", price=8, is_available=True),
    )
    history = [Message(role="user", content="[texto] pastillas 1234 BCD")]

    reply = await _client(settings, gw).generate(history, decision)

    assert reply == "respuesta de gpt-4o"
    _, body = gw.calls[0]
    system = body["messages"][0]
    assert system["role"] == "system"
    assert "matrícula 1234BCD" in system["content"]
    assert "ref P-008" in system["content"]
    assert "disponible sí" in system["content"]
    assert body["messages"][1] == {"role": "user", "content": "[texto] pastillas 1234 BCD"}
    assert body["max_tokens"] == 400


@pytest.mark.asyncio
async def test_complete_falls_back_to_secondary_model(settings):
    gw = Gateway(fail_models={"gpt-4o"})
    reply = await _client(settings, gw).complete([{"role": "user", "content": "hola"}])
    assert reply == "respuesta de gpt-4o-mini"
    assert [b["model"] for _, b in gw.calls] == ["gpt-4o", "gpt-4o-mini"]


@pytest.mark.asyncio
async def test_explicit_model_does_not_fall_back(settings):
    gw = Gateway(fail_models={"gpt-4o-mini"})
    with pytest.raises(httpx.HTTPStatusError):
        await _client(settings, gw).describe("https://cdn.test/x/imageMessage/1.jpeg")


@pytest.mark.asyncio
async def test_transcribe_downloads_and_posts_multipart(settings):
    gw = Gateway()
    text = await _client(settings, gw).transcribe("https://cdn.test/t/s/audioMessage/1.oga?X-Amz-Signature=ab")
    assert text == "discos de freno"
    path, ctype = gw.calls[0]
    assert path == "/v1/audio/transcriptions"
    assert ctype.startswith("multipart/form-data")


def test_clarify_prompt_asks_one_question():
    decision = Decision(part=PartMatch(id=1, canonical_name="Escobillas", score=0.5), ask_one_clarifying_question=True)
    prompt = PromptBuilder().reply_system(decision=decision)
    assert "UNA sola pregunta" in prompt
    assert "Vehículo: desconocido" in prompt
