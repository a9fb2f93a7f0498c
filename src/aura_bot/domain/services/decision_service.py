
"""Montagem da Decision entregue ao gerador de resposta."""
from __future__ import annotations
from typing import Optional
from ...domain.models import Decision, PartMatch, Session, VehicleSummary

DEFAULT_THRESHOLD = 0.82

class DecisionAssembler:
    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def should_clarify(self, has_selected: bool, best: Optional[PartMatch]) -> bool:
        """Pergunta de esclarecimento só sem produto e com match abaixo do limiar (estrito)."""
        return (not has_selected) and best is not None and best.score < self.threshold

    def assemble(self, session: Session, best: Optional[PartMatch]) -> Decision:
        vehicle = None
        if session.vehicle is not None:
            v = session.vehicle
            vehicle = VehicleSummary(plate=v.plate, brand=v.brand, model=v.model, fuel=v.fuel, vin=v.vin)
        has_selected = session.selected_product is not None
        return Decision(
            vehicle=vehicle,
            part=best,
            selected_product=session.selected_product,
            alternatives=session.product_alternatives[:4] or None,
            ask_one_clarifying_question=self.should_clarify(has_selected, best),
        )
