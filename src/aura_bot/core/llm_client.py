
"""Cliente HTTP assíncrono para o gateway LiteLLM (compatível OpenAI).

Cobre todos os colaboradores de IA do pipeline: embeddings, transcrição de áudio,
descrição de imagem e geração da resposta ancorada na ``Decision``.
"""
from __future__ import annotations
from typing import Any, Dict, List, Sequence
import httpx
from kink import di
from .settings import Settings
from .errors import CollaboratorError
from .prompting import PromptBuilder, history_payload
from ..domain.models import Decision, Message

class LLMClient:
    """Cliente do gateway LiteLLM.
    Suporta: complete(), embed(), embed_many(), transcribe(), describe() e generate().
    """
    def __init__(self, settings: Settings | None = None, builder: PromptBuilder | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or di[Settings]
        self.builder = builder or PromptBuilder()
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.settings.litellm_api_key:
            headers["Authorization"] = f"Bearer {self.settings.litellm_api_key}"
        return httpx.AsyncClient(
            base_url=self.settings.litellm_base_url,
            timeout=self.settings.litellm_timeout_s,
            headers=headers,
            transport=self.transport,
        )

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as cli:
            r = await cli.post(path, json=payload)
            r.raise_for_status()
            return r.json()

    @staticmethod
    def _content(data: Dict[str, Any]) -> str:
        try:
            return (data["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as exc:
            raise CollaboratorError("litellm", f"resposta sem choices: {exc}") from exc

    async def complete(self, messages: List[Dict[str, Any]], model: str | None = None) -> str:
        """Chat completion com fallback de modelo em caso de erro do primário."""
        payload = {
            "model": model or self.settings.litellm_model_primary,
            "messages": messages,
            "temperature": self.settings.litellm_temperature,
            "max_tokens": self.settings.litellm_max_tokens,
        }
        try:
            return self._content(await self._post_json("/chat/completions", payload))
        except (httpx.HTTPStatusError, CollaboratorError):
            if model is not None or self.settings.litellm_model_fallback == payload["model"]:
                raise
            payload["model"] = self.settings.litellm_model_fallback
            return self._content(await self._post_json("/chat/completions", payload))

    # ---------- Embeddings ----------
    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        data = await self._post_json("/embeddings", {"model": self.settings.embeddings_model, "input": list(texts)})
        rows = data.get("data")
        if not isinstance(rows, list) or len(rows) != len(texts):
            raise CollaboratorError("embeddings", "quantidade de vetores diferente da entrada")
        rows = sorted(rows, key=lambda r: r.get("index", 0))
        return [[float(x) for x in r["embedding"]] for r in rows]

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_many([text]))[0]

    # ---------- Mídia ----------
    async def transcribe(self, media_url: str) -> str:
        """Baixa o áudio assinado e envia para /audio/transcriptions."""
        async with httpx.AsyncClient(timeout=self.settings.litellm_timeout_s, transport=self.transport,
                                     follow_redirects=True) as cli:
            media = await cli.get(media_url)
            media.raise_for_status()
        filename = media_url.split("?")[0].rsplit("/", 1)[-1] or "audio.oga"
        ctype = media.headers.get("content-type", "audio/ogg")
        async with self._client() as cli:
            r = await cli.post(
                "/audio/transcriptions",
                files={"file": (filename, media.content, ctype)},
                data={"model": self.settings.transcription_model},
            )
            r.raise_for_status()
            data = r.json()
        text = data.get("text") if isinstance(data, dict) else ""
        return (text or "").strip()

    async def describe(self, media_url: str) -> str:
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": self.builder.image_instructions()},
                {"type": "image_url", "image_url": {"url": media_url}},
            ],
        }]
        return await self.complete(messages, model=self.settings.litellm_model_vision)

    # ---------- Resposta ----------
    async def generate(self, history: Sequence[Message], decision: Decision) -> str:
        system = self.builder.reply_system(decision=decision)
        messages = [{"role": "system", "content": system}, *history_payload(history)]
        return await self.complete(messages)
