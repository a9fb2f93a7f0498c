
"""Normalização do webhook de entrada (Aimotive/Evolution) em InboundEvent tipado.

O mesmo evento chega em formatos bem diferentes:

- objeto direto ``{"instance", "conversation", "message": {...}}`` (às vezes dentro de ``body``);
- JSON inteiro serializado como *chave* de form-encoding com valor vazio;
- string JSON (às vezes duplamente escapada e prefixada por ``=`` de fórmula);
- JSON quebrado: URL assinada cortada pelo form-encoding, com os parâmetros
  ``X-Amz-*`` chegando como chaves irmãs e o resto do JSON colado na assinatura.

Cada estratégia é um extrator independente que devolve um ``Candidate`` ou ``None``;
a cadeia para no primeiro candidato confiável (instance + conversation). Depois vem a
classificação do tipo, a reconstrução da URL assinada e a validação Pydantic.
Nada não tipado passa daqui para o pipeline.
"""
from __future__ import annotations
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from urllib.parse import quote, unquote
from pydantic import ValidationError
from ...core.logging import get_logger
from ...ports.interfaces import InboundEvent, inbound_event_adapter

log = get_logger()

DEFAULT_MEDIA_BASE_URL = "https://cdn.evo.skrit.es/evolution/evolution-api"

SIGNING_KEYS = (
    "X-Amz-Algorithm",
    "X-Amz-Credential",
    "X-Amz-Date",
    "X-Amz-Expires",
    "X-Amz-SignedHeaders",
    "X-Amz-Signature",
)
DEFAULT_SIGNING_ALGORITHM = "AWS4-HMAC-SHA256"

AUDIO_TYPES = {"audio", "ptt", "voice", "audiomessage"}
IMAGE_TYPES = {"image", "imagemessage"}
TEXT_TYPES = {"text", "chat", "conversation", "extendedtextmessage"}

FORMULA_PREFIXES = ("=", "+", "@")
MAX_DECODE_DEPTH = 3

# ---------- Regex de extração heurística ----------
RE_INSTANCE = re.compile(r'"instance"\s*:\s*"([^"]+)"')
RE_CONVERSATION = re.compile(r'"conversation"\s*:\s*"([^"]+)"')
RE_SENDER = re.compile(r'"from"\s*:\s*\{\s*"id"\s*:\s*"([^"]+)"')
RE_MESSAGE_ID = re.compile(r'"message"\s*:\s*\{\s*"id"\s*:\s*"([^"]+)"')
RE_ANY_ID = re.compile(r'"id"\s*:\s*"([^"]+)"')
RE_MIME = re.compile(r'"mime(?:type|Type)?"\s*:\s*"([^"]+?)"')
RE_TYPE = re.compile(r'"type"\s*:\s*"([^"]+)"')
RE_URL = re.compile(r'"(?:url|mediaUrl)"\s*:\s*"(https?://[^"\s]+)', re.I)
RE_BARE_MEDIA_URL = re.compile(r'(https?://[^\s"\']+/(?:audioMessage|imageMessage)/[^\s"\']+)', re.I)
RE_CAPTION = re.compile(r'"caption"\s*:\s*"([^"]*)"')
RE_DURATION = re.compile(r'"duration"\s*:\s*(\d+)', re.I)
RE_BODY = re.compile(r'"(?:body|text)"\s*:\s*"([^"]*)"')
RE_INLINE_SIGNING = re.compile(r"X-Amz-(Algorithm|Credential|Date|Expires|SignedHeaders|Signature)=([^&\"\s]+)")
RE_HEX_SIGNATURE = re.compile(r"[0-9a-fA-F]{32,}")
RE_AUDIO_EXT = re.compile(r"\.(oga|ogg|opus|mp3|wav|m4a)\b", re.I)
RE_IMAGE_EXT = re.compile(r"\.(jpe?g|png|webp)\b", re.I)

@dataclass
class Candidate:
    """Campos recuperados (ainda sem validação) de uma entrega."""
    tenant_id: str = ""
    conversation_id: str = ""
    sender_id: str = ""
    message_id: str = ""
    mime: str = ""
    type_hint: str = ""
    text: Optional[str] = None
    url: str = ""
    caption: Optional[str] = None
    duration: Optional[int] = None
    hint_text: str = ""
    route: str = ""

    def confident(self) -> bool:
        return bool(self.tenant_id and self.conversation_id)

@dataclass
class RawPayload:
    """Entrega crua já desembrulhada, com o corpus textual usado pelas heurísticas."""
    body: Any
    mapping: Mapping[str, Any]
    corpus: str
    signing: Dict[str, str] = field(default_factory=dict)

Extractor = Callable[[RawPayload], Optional[Candidate]]

# ---------- Utils ----------
def unescape(s: str) -> str:
    """Remove escapes de aspas e barras (``\\"`` e ``\\/``) até estabilizar."""
    for _ in range(MAX_DECODE_DEPTH):
        nxt = s.replace('\\"', '"').replace("\\/", "/")
        if nxt == s:
            break
        s = nxt
    return s

def normalize_mime(m: str | None) -> str:
    return (m or "").lower().split(";")[0].strip()

def grab(regex: re.Pattern, s: str) -> str:
    m = regex.search(s or "")
    return m.group(1) if m else ""

def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None

def _first_str(*values: Any) -> str:
    for v in values:
        if isinstance(v, (str, int)) and not isinstance(v, bool) and str(v).strip():
            return str(v)
    return ""

def decode_json_text(text: str) -> Any:
    """Tenta decodificar texto JSON tolerando prefixo de fórmula, dupla codificação e escapes.

    Retorna o objeto decodificado (dict/list) ou ``None`` se nada funcionar.
    """
    s = (text or "").strip()
    while s[:1] in FORMULA_PREFIXES:
        s = s[1:].lstrip()
    for attempt in (s, unescape(s)):
        value: Any = attempt
        for _ in range(MAX_DECODE_DEPTH):
            if not isinstance(value, str):
                break
            try:
                value = json.loads(value)
            except ValueError:
                value = None
                break
        if isinstance(value, (dict, list)):
            return value
    return None

def build_signed_url(base_url: str, params: Mapping[str, str]) -> str:
    """Anexa query de assinatura (somente valores não vazios) à URL base."""
    qp = "&".join(
        f"{quote(k, safe='')}={quote(v, safe='')}" for k, v in params.items() if v
    )
    if not qp:
        return base_url
    return f"{base_url}{'&' if '?' in base_url else '?'}{qp}"

def _corpus_for(body: Any) -> str:
    parts: list[str] = []
    if isinstance(body, str):
        parts.append(body)
    elif isinstance(body, Mapping):
        for k, v in body.items():
            parts.append(str(k))
            if isinstance(v, str):
                parts.append(v)
            elif isinstance(v, (Mapping, list)):
                parts.append(json.dumps(v, ensure_ascii=False))
            elif v is not None:
                parts.append(str(v))
    return " ".join(parts)

def collect_signing_params(mapping: Mapping[str, Any], corpus: str) -> Dict[str, str]:
    """Coleta parâmetros ``X-Amz-*``: primeiro como chaves irmãs, senão inline no texto."""
    raw: Dict[str, str] = {}
    for name in SIGNING_KEYS:
        v = mapping.get(name)
        if isinstance(v, str) and v.strip():
            raw[name] = v
    if not raw:
        for m in RE_INLINE_SIGNING.finditer(corpus):
            raw.setdefault(f"X-Amz-{m.group(1)}", unquote(m.group(2)))
    params: Dict[str, str] = {}
    for name, value in raw.items():
        if name == "X-Amz-Signature":
            hexsig = RE_HEX_SIGNATURE.search(value)
            value = hexsig.group(0) if hexsig else value.split('","')[0]
        params[name] = value.split('"')[0].strip()
    if params.get("X-Amz-Signature") and not params.get("X-Amz-Algorithm"):
        params["X-Amz-Algorithm"] = DEFAULT_SIGNING_ALGORITHM
    return {k: params[k] for k in SIGNING_KEYS if params.get(k)}

def unwrap(raw_body: Any) -> RawPayload:
    """Desembrulha ``body`` externo (n8n/proxies) e monta corpus + parâmetros de assinatura."""
    body = raw_body
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", "replace")
    if isinstance(body, Mapping) and "body" in body and "instance" not in body:
        inner = body["body"]
        if isinstance(inner, (Mapping, str)):
            body = inner
    mapping = body if isinstance(body, Mapping) else {}
    corpus = _corpus_for(body)
    return RawPayload(body=body, mapping=mapping, corpus=corpus, signing=collect_signing_params(mapping, corpus))

# ---------- Extratores ----------
def candidate_from_structure(root: Mapping[str, Any], route: str) -> Optional[Candidate]:
    """Lê os campos de um objeto bem formado (``message`` e ``message.data``)."""
    msg = root.get("message")
    if not isinstance(msg, Mapping):
        msg = {}
    data = msg.get("data") if isinstance(msg.get("data"), Mapping) else {}
    media = data.get("media") if isinstance(data.get("media"), Mapping) else {}
    sender = root.get("from")
    if isinstance(sender, Mapping):
        sender = sender.get("id")
    sources = (data, media, msg, root)

    def pick(*keys: str) -> str:
        return _first_str(*(src.get(k) for src in sources for k in keys))

    text = _first_str(data.get("body"), msg.get("body"), data.get("text"), msg.get("text"))
    caption = pick("caption")
    return Candidate(
        tenant_id=_first_str(root.get("instance")),
        conversation_id=_first_str(root.get("conversation")),
        sender_id=_first_str(sender),
        message_id=_first_str(msg.get("id"), data.get("id")),
        mime=normalize_mime(pick("mime", "mimetype", "mimeType")),
        type_hint=_first_str(msg.get("type"), data.get("type"), root.get("type")),
        text=text or None,
        url=unescape(pick("url", "mediaUrl")),
        caption=caption or None,
        duration=_as_int(pick("duration", "seconds")),
        hint_text=json.dumps(root, ensure_ascii=False, default=str),
        route=route,
    )

def extract_structural(payload: RawPayload) -> Optional[Candidate]:
    """Caminho rápido: instance + conversation + message (objeto) já no topo."""
    m = payload.mapping
    if not all(k in m for k in ("instance", "conversation", "message")):
        return None
    if not isinstance(m["message"], Mapping):
        return None
    return candidate_from_structure(m, "structural")

def extract_json_key(payload: RawPayload) -> Optional[Candidate]:
    """JSON inteiro serializado como chave de form-encoding (valor vazio)."""
    for key in payload.mapping:
        if not isinstance(key, str) or not key.strip().startswith("{"):
            continue
        root = decode_json_text(key)
        if isinstance(root, Mapping):
            return candidate_from_structure(root, "json_key")
    return None

def extract_string_payload(payload: RawPayload) -> Optional[Candidate]:
    """Campo de payload (corpo ou ``message``) chegou como string JSON."""
    m = payload.mapping
    if isinstance(payload.body, str):
        root = decode_json_text(payload.body)
        if isinstance(root, Mapping):
            return candidate_from_structure(root, "string_body")
        return None
    message = m.get("message")
    if isinstance(message, str):
        parsed = decode_json_text(message)
        if isinstance(parsed, Mapping):
            root = parsed if "instance" in parsed else {**m, "message": parsed}
            return candidate_from_structure(root, "string_message")
    return None

def extract_heuristic(payload: RawPayload) -> Optional[Candidate]:
    """Busca por regex no texto cru + todas as chaves/valores (JSON quebrado/escapado)."""
    corpus = unescape(payload.corpus)
    if not corpus.strip():
        return None
    sender = grab(RE_SENDER, corpus)
    message_id = grab(RE_MESSAGE_ID, corpus)
    if not message_id:
        message_id = next((i for i in RE_ANY_ID.findall(corpus) if i != sender), "")
    url = grab(RE_URL, corpus) or grab(RE_BARE_MEDIA_URL, corpus)
    duration = grab(RE_DURATION, corpus)
    caption = grab(RE_CAPTION, corpus)
    return Candidate(
        tenant_id=grab(RE_INSTANCE, corpus),
        conversation_id=grab(RE_CONVERSATION, corpus),
        sender_id=sender,
        message_id=message_id,
        mime=normalize_mime(grab(RE_MIME, corpus)),
        type_hint=grab(RE_TYPE, corpus),
        text=grab(RE_BODY, corpus) or None,
        url=url,
        caption=caption or None,
        duration=int(duration) if duration else None,
        hint_text=corpus,
        route="heuristic",
    )

DEFAULT_CHAIN: Sequence[Extractor] = (
    extract_structural,
    extract_json_key,
    extract_string_payload,
    extract_heuristic,
)

# ---------- Classificação e URL ----------
def classify(c: Candidate) -> str:
    """Decide text/audio/image: discriminador, prefixo MIME, marcador no path, default text."""
    t = c.type_hint.strip().lower()
    if t in AUDIO_TYPES:
        return "audio"
    if t in IMAGE_TYPES:
        return "image"
    if t in TEXT_TYPES:
        return "text"
    if c.mime.startswith("audio/") or "opus" in c.mime:
        return "audio"
    if c.mime.startswith("image/"):
        return "image"
    for marker_src in (c.url, c.hint_text):
        if "audioMessage/" in marker_src:
            return "audio"
        if "imageMessage/" in marker_src:
            return "image"
    return "text"

def reconstruct_media_url(c: Candidate, kind: str, signing: Mapping[str, str], media_base_url: str) -> str:
    """Completa a URL de mídia com a assinatura ou sintetiza a URL canônica do storage."""
    url = unescape(c.url or "")
    if url:
        base, sep, query = url.partition("?")
        if sep and "X-Amz-Signature=" in query:
            return url
        if sep and "X-Amz-" in query:
            url = base
        if signing.get("X-Amz-Signature"):
            return build_signed_url(url, signing)
        return url
    if not (c.tenant_id and c.sender_id and c.message_id):
        return ""
    if kind == "audio":
        ext = (grab(RE_AUDIO_EXT, c.hint_text) or "oga").lower()
        marker = "audioMessage"
    else:
        ext = (grab(RE_IMAGE_EXT, c.hint_text) or "jpeg").lower()
        marker = "imageMessage"
    base = f"{media_base_url.rstrip('/')}/{c.tenant_id}/{c.sender_id}/{marker}/{c.message_id}.{ext}"
    return build_signed_url(base, signing) if signing.get("X-Amz-Signature") else base

class PayloadNormalizer:
    """Converte qualquer formato de entrega em ``InboundEvent`` ou ``None`` (nunca lança)."""
    def __init__(self, media_base_url: str = DEFAULT_MEDIA_BASE_URL, extractors: Sequence[Extractor] | None = None):
        self.media_base_url = media_base_url
        self.extractors = tuple(extractors or DEFAULT_CHAIN)

    def recover(self, payload: RawPayload) -> Optional[Candidate]:
        for extractor in self.extractors:
            cand = extractor(payload)
            if cand is not None and cand.confident():
                return cand
        return None

    def to_event(self, c: Candidate, signing: Mapping[str, str]) -> Optional[InboundEvent]:
        kind = classify(c)
        data: Dict[str, Any] = {"tenant_id": c.tenant_id, "conversation_id": c.conversation_id, "type": kind}
        if kind == "text":
            data["text"] = c.text
        else:
            data["media_url"] = reconstruct_media_url(c, kind, signing, self.media_base_url) or None
            if kind == "audio":
                data["duration"] = c.duration
            else:
                data["caption"] = c.caption
        try:
            return inbound_event_adapter.validate_python(data)
        except ValidationError as exc:
            log.warning("inbound_invalid", route=c.route, errors=exc.errors(include_url=False, include_context=False, include_input=False))
            return None

    def normalize(self, raw_body: Any) -> Optional[InboundEvent]:
        try:
            payload = unwrap(raw_body)
            cand = self.recover(payload)
            if cand is None:
                log.warning("inbound_malformed", raw_type=type(raw_body).__name__, keys=len(payload.mapping))
                return None
            event = self.to_event(cand, payload.signing)
            if event is not None:
                log.info(
                    "inbound_normalized",
                    route=cand.route,
                    type=event.type,
                    conversation_id=event.conversation_id,
                    media_url=(getattr(event, "media_url", None) or "")[:160] or None,
                )
            return event
        except Exception as exc:
            log.error("inbound_normalize_failed", error=str(exc))
            return None
