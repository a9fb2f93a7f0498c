
"""Conteúdo do usuário a partir do evento: texto direto, transcrição de áudio ou descrição de imagem."""
from __future__ import annotations
from ...core.guardrails import sanitize_text
from ...core.logging import get_logger
from ...ports.interfaces import AudioEvent, ImageEvent, ImageDescriber, InboundEvent, Transcriber

log = get_logger()

class MediaContentBuilder:
    def __init__(self, transcriber: Transcriber, describer: ImageDescriber):
        self.transcriber = transcriber
        self.describer = describer

    async def build(self, event: InboundEvent) -> str:
        if isinstance(event, ImageEvent):
            return await self._image(event)
        if isinstance(event, AudioEvent):
            return await self._audio(event)
        t = sanitize_text(event.text or "")
        return f"[texto] {t}" if t else "[texto] [vacío]"

    async def _image(self, event: ImageEvent) -> str:
        if not event.media_url:
            return "[imagen] [sin URL]"
        try:
            log.info("image_describing", url=event.media_url[:160])
            desc = await self.describer.describe(event.media_url)
        except Exception as exc:
            log.error("image_description_failed", error=str(exc))
            return "[imagen] [falló análisis]"
        if event.caption:
            return f"Imagen analizada:\nCaption: {event.caption}\n{desc}"
        return f"Imagen analizada:\n{desc}"

    async def _audio(self, event: AudioEvent) -> str:
        if not event.media_url:
            return "[audio] [sin URL]"
        try:
            log.info("audio_transcribing", url=event.media_url[:160], duration=event.duration)
            text = await self.transcriber.transcribe(event.media_url)
        except Exception as exc:
            log.error("audio_transcription_failed", error=str(exc))
            return "[audio] [falló transcripción]"
        log.info("audio_transcribed", chars=len(text or ""))
        return f"[audio transcrito] {text}" if text else "[audio] [sin texto transcrito]"
