
"""Pipeline de um turno: sessão → conteúdo → veículo + catálogo → produto → decisão → resposta → save → envio.

Cada estágio degrada sozinho: falha de colaborador é logada e vira o fallback documentado,
nunca derruba o turno. Não há retry; só a reentrega do provedor de mensagens.
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Optional
from ..connectors.aimotive.api_adapter import normalize_conversation_id
from ..core.logging import get_logger
from ..domain.models import Decision, PartMatchCache, Session
from ..domain.services.catalog_service import CatalogMatcher
from ..domain.services.decision_service import DecisionAssembler
from ..domain.services.media_service import MediaContentBuilder
from ..domain.services.product_service import fetch_products, normalize_by_family, select_winner, top_stock
from ..domain.services.vehicle_service import VehicleResolver
from ..ports.interfaces import InboundEvent, OutboundSender, ReplyGenerator, VehicleDirectory
from ..repo.session_store import SessionStore, session_key

log = get_logger()

REPLY_EMPTY_FALLBACK = "🤖 Me quedé en blanco… ¿me lo repites?"
REPLY_ERROR_FALLBACK = "🤖 Tuve un problema pensando eso… intenta otra vez."
TEXT_SAMPLE_CHARS = 200

@dataclass
class TurnResult:
    decision: Decision
    reply: str
    delivered: Optional[bool] = None

class InboundPipeline:
    def __init__(
        self,
        *,
        store: SessionStore,
        media: MediaContentBuilder,
        vehicles: VehicleResolver,
        matcher: CatalogMatcher,
        directory: VehicleDirectory,
        assembler: DecisionAssembler,
        generator: ReplyGenerator,
        sender: OutboundSender,
        top_k: int = 5,
        context_window: int = 10,
    ):
        self.store = store
        self.media = media
        self.vehicles = vehicles
        self.matcher = matcher
        self.directory = directory
        self.assembler = assembler
        self.generator = generator
        self.sender = sender
        self.top_k = top_k
        self.context_window = context_window

    async def process(self, event: InboundEvent, *, send: bool = True) -> TurnResult:
        key = session_key(str(event.tenant_id), event.conversation_id)
        session = await self.store.load(key)
        user_content = await self.media.build(event)

        await asyncio.gather(
            self.vehicles.maybe_resolve(user_content, session),
            self._match_catalog(user_content, session),
        )
        await self._select_products(user_content, session)

        self.store.append(session, "user", user_content)
        decision = self.assembler.assemble(session, session.best_match())
        reply = await self._reply(session, decision, user_content)
        self.store.append(session, "assistant", reply)
        await self.store.save(key, session)

        delivered = await self._send(event, reply) if send else None
        return TurnResult(decision=decision, reply=reply, delivered=delivered)

    async def _match_catalog(self, user_content: str, session: Session) -> None:
        try:
            matches = await self.matcher.match(user_content, self.top_k)
        except Exception as exc:
            log.error("catalog_match_failed", error=str(exc))
            return
        session.part_matches = PartMatchCache(matches=matches, text_sample=user_content[:TEXT_SAMPLE_CHARS])
        top = matches[0] if matches else None
        log.info(
            "catalog_matches_computed",
            count=len(matches),
            top_id=top.id if top else None,
            top_score=round(top.score, 4) if top else None,
        )

    async def _select_products(self, user_content: str, session: Session) -> None:
        best = session.best_match()
        vehicle_id = session.vehicle.vehicle_id if session.vehicle else None
        if vehicle_id is None or best is None:
            session.selected_product = None
            session.product_alternatives = []
            log.info("products_skipped", vehicle_id=vehicle_id, family_id=best.id if best else None)
            return
        try:
            products = await fetch_products(self.directory, int(vehicle_id), best.id)
            split = normalize_by_family(best.id, products, user_content)
            selection = select_winner(split.primary or products)
        except Exception as exc:
            log.error("products_selection_failed", vehicle_id=vehicle_id, family_id=best.id, error=str(exc))
            session.selected_product = None
            session.product_alternatives = []
            return
        session.selected_product = selection.winner
        session.product_alternatives = selection.alternatives
        winner = selection.winner
        log.info(
            "products_selected",
            vehicle_id=vehicle_id,
            family_id=best.id,
            best_score=round(best.score, 4),
            got=len(products),
            primary=len(split.primary),
            winner=winner.ref if winner else None,
            winner_price=winner.price if winner else None,
            winner_available=winner.is_available if winner else None,
            stock_top=top_stock(winner) if winner else None,
            alts=[a.ref for a in selection.alternatives[:3]],
        )

    async def _reply(self, session: Session, decision: Decision, user_content: str) -> str:
        history = session.recent(self.context_window)
        log.info(
            "reply_generating",
            ctx=len(history),
            last_user=user_content[:120],
            has_vehicle=decision.vehicle is not None,
            has_selected=decision.selected_product is not None,
            clarify=decision.ask_one_clarifying_question,
        )
        try:
            text = await self.generator.generate(history, decision)
        except Exception as exc:
            log.error("reply_generation_failed", error=str(exc))
            return REPLY_ERROR_FALLBACK
        return (text or "").strip() or REPLY_EMPTY_FALLBACK

    async def _send(self, event: InboundEvent, reply: str) -> bool:
        outbound_id = normalize_conversation_id(event.conversation_id)
        try:
            res = await self.sender.send(str(event.tenant_id), outbound_id, reply)
        except Exception as exc:
            log.error("outbound_failed", conversation_id=outbound_id, error=str(exc))
            return False
        if not res.ok:
            log.error("outbound_failed", conversation_id=outbound_id, code=res.error_code, detail=res.error_detail)
            return False
        log.info("outbound_sent", conversation_id=outbound_id, provider_message_id=res.provider_message_id)
        return True
