
"""API Flask: webhook Aimotive, simulate e administração do catálogo.

O webhook SEMPRE responde 200: payload malformado/inválido vira ``ignored`` para
não provocar tempestade de reentregas no provedor.
"""
from __future__ import annotations
from typing import Any
from flask import Flask, request, jsonify
from kink import di
from pydantic import ValidationError
from ..core.di import bootstrap_di
from ..core.logging import set_trace_id, get_logger
from ..connectors.aimotive.normalizer import PayloadNormalizer
from ..domain.pipeline import InboundPipeline
from ..domain.services.catalog_service import CatalogCache
from ..ports.interfaces import TextEvent

log = get_logger()

def _raw_body() -> Any:
    """Corpo cru em qualquer formato: JSON, form-encoded ou texto."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is not None:
            return data
    if request.form:
        return request.form.to_dict(flat=True)
    return request.get_data(as_text=True)

def create_app(bootstrap: bool = True) -> Flask:
    """Cria a app. Com ``bootstrap=False`` usa o que já estiver registrado no container (testes)."""
    app = Flask(__name__)
    if bootstrap:
        bootstrap_di()

    @app.get("/healthz")
    def healthz():
        """Health check básico."""
        return {"ok": True}

    @app.post("/admin/reload-catalog")
    async def reload_catalog():
        """Força o refresh do snapshot do catálogo de famílias."""
        try:
            entries = await di[CatalogCache].get(force=True)
        except Exception as exc:
            log.error("catalog_reload_failed", error=str(exc))
            return {"ok": False, "error": "catalog-unavailable"}, 503
        return {"ok": True, "items_count": len(entries)}

    @app.post("/webhook/aimotive/inbound")
    async def inbound():
        """Recebe a entrega, normaliza e roda o pipeline do turno."""
        set_trace_id(request.headers.get("X-Trace-Id"))
        raw = _raw_body()
        log.info("inbound_raw_received", raw_type=type(raw).__name__, content_type=request.mimetype)
        event = di[PayloadNormalizer].normalize(raw)
        if event is None:
            return jsonify({"ok": True, "ignored": True})
        try:
            result = await di[InboundPipeline].process(event)
        except Exception as exc:
            log.error("inbound_pipeline_failed", conversation_id=event.conversation_id, error=str(exc))
            return jsonify({"ok": True, "processed": False})
        return jsonify({"ok": True, "processed": True, "delivered": result.delivered})

    @app.post("/simulate")
    async def simulate():
        """Simula uma mensagem de texto sem envio outbound. Útil para desenvolvimento e testes.

        Corpo esperado:
        { "instance": "<uuid>", "conversation": "34600111222@s.whatsapp.net", "text": "pastillas freno 1234BCD" }
        """
        set_trace_id(request.headers.get("X-Trace-Id"))
        body = request.get_json(force=True, silent=True) or {}
        try:
            event = TextEvent(tenant_id=body.get("instance"), conversation_id=body.get("conversation") or "", text=body.get("text"))
        except ValidationError as exc:
            return {"error": "invalid event", "detail": exc.errors(include_url=False, include_context=False, include_input=False)}, 400
        log.info("simulate_in", conversation_id=event.conversation_id)
        result = await di[InboundPipeline].process(event, send=False)
        return jsonify({
            "preview": result.reply,
            "decision": result.decision.model_dump(mode="json", exclude_none=True),
        })

    return app
