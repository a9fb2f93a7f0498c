
"""PromptBuilder com Jinja2 para a resposta do assistente de recambios (ES).

- O prompt é orientado pela ``Decision``: veículo, família, produto vencedor e alternativas.
- Quando ``ask_one_clarifying_question`` está ligado, o modelo deve fazer UMA pergunta fechada.
- Nenhum texto final é produzido aqui; só o prompt de sistema.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict
from jinja2 import Environment, BaseLoader, StrictUndefined
from ..domain.models import Decision

# -------- Personas --------
PERSONAS = {
    "padrão": "dependiente de recambios de confianza: cercano, directo y resolutivo",
    "técnico": "mecánico experto que explica compatibilidades sin tecnicismos innecesarios",
    "objetivo": "breve y al grano; pregunta solo lo imprescindible",
}

# -------- Estilos de escrita --------
ESTILOS = {
    "neutro": "Tono natural, frases cortas, español de España. Formato apto para WhatsApp.",
    "amigavel": "Tono cercano, como mucho 1 emoji por respuesta.",
    "formal": "Tono formal y respetuoso, de usted.",
}

# -------- Políticas globais --------
POLITICAS_PADRAO = (
    "- No inventes referencias, precios ni stock: usa solo los datos de DECISIÓN.\n"
    "- Si hay producto seleccionado, recomiéndalo sin pedir confirmaciones previas.\n"
    "- Si falta la matrícula y hace falta para recomendar, pídela.\n"
    "- Si falta información, pregunta solo una cosa concreta.\n"
)

@dataclass
class PromptBuilder:
    tienda_nombre: str = "Aura"
    persona_chave: str = "padrão"
    estilo_chave: str = "neutro"
    politicas_extra: str = ""
    env: Environment = field(default_factory=lambda: Environment(
        loader=BaseLoader(),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    ))

    # ---------- Utils ----------
    def _persona(self) -> str:
        return PERSONAS.get(self.persona_chave, PERSONAS["padrão"])

    def _estilo(self) -> str:
        return ESTILOS.get(self.estilo_chave, ESTILOS["neutro"])

    # ---------- Reply System ----------
    def reply_system(self, *, decision: Decision) -> str:
        """Prompt de sistema da resposta, ancorado na decisão estruturada."""
        template = self.env.from_string("""
        Eres {{ tienda_nombre }}, asistente de recambios de automóvil por WhatsApp.
        Persona: {{ persona }}
        Políticas:
        {{ politicas_global }}
        {% if politicas_extra %}Reglas adicionales:
        {{ politicas_extra }}
        {% endif %}

        DECISIÓN (fuente de verdad):
        {% if d.vehicle %}
        - Vehículo: {{ d.vehicle.brand or '?' }} {{ d.vehicle.model or '' }} ({{ d.vehicle.fuel or 'combustible ?' }}), matrícula {{ d.vehicle.plate or '?' }}
        {% else %}
        - Vehículo: desconocido
        {% endif %}
        {% if d.part %}
        - Familia detectada: {{ d.part.canonical_name }} (id {{ d.part.id }}, confianza {{ '%.2f' % d.part.score }})
        {% else %}
        - Familia detectada: ninguna
        {% endif %}
        {% if d.selected_product %}
        - Producto recomendado: {{ d.selected_product.name }} · ref {{ d.selected_product.ref }} · marca {{ d.selected_product.brand_name or d.selected_product.brand_code or '?' }} · precio {{ d.selected_product.price if d.selected_product.price is not none else '?' }} · disponible {{ availability(d.selected_product.is_available) }}
        {% endif %}
        {% if d.alternatives %}
        - Alternativas:
        {% for a in d.alternatives %}
          · {{ a.name }} · ref {{ a.ref }} · marca {{ a.brand_name or a.brand_code or '?' }} · precio {{ a.price if a.price is not none else '?' }} · disponible {{ availability(a.is_available) }}
        {% endfor %}
        {% endif %}

        TAREA:
        {% if d.ask_one_clarifying_question %}
        La familia detectada no es fiable. Haz UNA sola pregunta cerrada para confirmar qué pieza necesita el cliente. No recomiendes productos todavía.
        {% elif d.selected_product %}
        Recomienda el producto seleccionado y menciona como mucho 2 alternativas si aportan valor.
        {% else %}
        Responde con lo que sabes y pide solo el dato que falte (matrícula o pieza).
        {% endif %}

        Estilo: {{ estilo }}
        """)
        return template.render(
            tienda_nombre=self.tienda_nombre,
            persona=self._persona(),
            politicas_global=POLITICAS_PADRAO,
            politicas_extra=self.politicas_extra,
            d=decision,
            availability=_availability,
            estilo=self._estilo(),
        )

    def image_instructions(self) -> str:
        return (
            "Describe la imagen pensando en recambios de coche: pieza visible, marcas, referencias, "
            "estado y cualquier texto legible (matrícula incluida). Responde en español, en pocas líneas."
        )

def _availability(value: Any) -> str:
    if value is True:
        return "sí"
    if value is False:
        return "no"
    return "desconocido"

def history_payload(history: Any) -> list[Dict[str, str]]:
    """Converte mensagens da sessão no formato chat (role/content)."""
    return [{"role": m.role, "content": m.content} for m in history]
