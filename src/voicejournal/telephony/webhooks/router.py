"""
FastAPI router for telephony webhook endpoints.

Each provider posts to ``/webhooks/{provider}/{voice|status|recording|transcription}``.

Key constraints:
- signature is verified over the raw body before anything else; failure is 401
- after verification the provider always gets HTTP 200, so it never retries
  into a storm: voice callbacks get a spoken closing, JSON callbacks a status
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from voicejournal.calls.models import CallDirection
from voicejournal.calls.repository import CallRecordRepository
from voicejournal.calls.resolver import CallerResolver
from voicejournal.dependencies import get_telephony_config, get_webhook_adapters
from voicejournal.journal.repository import JournalEntryRepository
from voicejournal.shared.database import get_db_session
from voicejournal.shared.exceptions import NotFoundError
from voicejournal.shared.logging import get_logger
from voicejournal.telephony import voice_responses
from voicejournal.telephony.config import ProviderType, TelephonyConfig
from voicejournal.telephony.events import ProgressEvent, WebhookChannel
from voicejournal.telephony.interface import InboundWebhook, WebhookAdapter, WebhookParseError
from voicejournal.telephony.webhooks.handler import Outcome, WebhookHandler
from voicejournal.users.repository import UserPreferencesRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_webhook_handler(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> WebhookHandler:
    return WebhookHandler(
        calls=CallRecordRepository(session),
        journal=JournalEntryRepository(session),
        resolver=CallerResolver(UserPreferencesRepository(session)),
    )


def _xml(document: str) -> Response:
    return Response(content=document, media_type=voice_responses.XML_MEDIA_TYPE)


def _signed_url(request: Request, cfg: TelephonyConfig) -> str:
    """Public URL the provider posted to, as configured for callbacks."""
    url = cfg.get_webhook_url(request.url.path)
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


async def _verified_webhook(
    request: Request,
    adapter: WebhookAdapter,
    cfg: TelephonyConfig,
) -> InboundWebhook:
    webhook = InboundWebhook(
        url=_signed_url(request, cfg),
        body=await request.body(),
        headers={k.lower(): v for k, v in request.headers.items()},
        query=dict(request.query_params),
    )
    adapter.verify(webhook)
    return webhook


def _log_extra(provider: ProviderType, channel: WebhookChannel, **kwargs: Any) -> dict[str, Any]:
    return {"provider": provider.value, "channel": channel.value, **kwargs}


@router.post("/{provider}/voice")
async def voice(
    provider: ProviderType,
    request: Request,
    adapters: Annotated[dict[ProviderType, WebhookAdapter], Depends(get_webhook_adapters)],
    cfg: Annotated[TelephonyConfig, Depends(get_telephony_config)],
    handler: Annotated[WebhookHandler, Depends(get_webhook_handler)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> Response:
    """Call setup: create the call record and answer with the journal prompt."""
    adapter = adapters[provider]
    webhook = await _verified_webhook(request, adapter, cfg)
    channel = WebhookChannel.VOICE

    try:
        event = adapter.normalize(channel, webhook)
        if event is None:
            return JSONResponse({"status": "acknowledged"})
        result = await handler.handle(event)
    except WebhookParseError as e:
        logger.warning("Malformed voice webhook", extra=_log_extra(provider, channel, error=str(e)))
        return _xml(voice_responses.error(adapter.dialect))
    except Exception:
        logger.exception("Voice webhook failed; answering with error response", extra=_log_extra(provider, channel))
        await session.rollback()
        return _xml(voice_responses.error(adapter.dialect))

    if result.outcome == Outcome.UNKNOWN_CALLER:
        return _xml(voice_responses.unknown_caller(adapter.dialect))

    if not isinstance(event, ProgressEvent) or not event.is_setup:
        return JSONResponse({"status": "acknowledged"})

    return _xml(
        voice_responses.journal_prompt(
            adapter.dialect,
            is_outbound=event.direction == CallDirection.OUTBOUND,
            recording_url=cfg.get_webhook_url(f"/webhooks/{provider.value}/recording"),
            transcription_url=cfg.get_webhook_url(f"/webhooks/{provider.value}/transcription"),
        )
    )


@router.post("/{provider}/status")
async def status_callback(
    provider: ProviderType,
    request: Request,
    adapters: Annotated[dict[ProviderType, WebhookAdapter], Depends(get_webhook_adapters)],
    cfg: Annotated[TelephonyConfig, Depends(get_telephony_config)],
    handler: Annotated[WebhookHandler, Depends(get_webhook_handler)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> dict[str, Any]:
    """Call progress updates."""
    adapter = adapters[provider]
    webhook = await _verified_webhook(request, adapter, cfg)
    channel = WebhookChannel.STATUS

    try:
        event = adapter.normalize(channel, webhook)
        if event is None:
            return {"status": "ignored"}
        result = await handler.handle(event)
    except WebhookParseError as e:
        logger.warning("Malformed status webhook", extra=_log_extra(provider, channel, error=str(e)))
        return {"status": "skipped", "reason": "malformed"}
    except Exception:
        logger.exception("Status webhook failed", extra=_log_extra(provider, channel))
        await session.rollback()
        return {"status": "error"}

    if result.outcome == Outcome.APPLIED:
        return {"status": "success", "callStatus": result.call_status.value if result.call_status else None}
    return {"status": "skipped", "reason": result.reason}


@router.post("/{provider}/recording")
async def recording(
    provider: ProviderType,
    request: Request,
    adapters: Annotated[dict[ProviderType, WebhookAdapter], Depends(get_webhook_adapters)],
    cfg: Annotated[TelephonyConfig, Depends(get_telephony_config)],
    handler: Annotated[WebhookHandler, Depends(get_webhook_handler)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> Response:
    """Recording finished: store it and thank the caller."""
    adapter = adapters[provider]
    webhook = await _verified_webhook(request, adapter, cfg)
    channel = WebhookChannel.RECORDING

    try:
        event = adapter.normalize(channel, webhook)
        if event is None:
            return JSONResponse({"status": "ignored"})
        await handler.handle(event)
    except WebhookParseError as e:
        logger.warning("Malformed recording webhook", extra=_log_extra(provider, channel, error=str(e)))
    except Exception:
        logger.exception("Recording webhook failed", extra=_log_extra(provider, channel))
        await session.rollback()

    return _xml(voice_responses.recording_complete(adapter.dialect))


@router.post("/{provider}/transcription")
async def transcription(
    provider: ProviderType,
    request: Request,
    adapters: Annotated[dict[ProviderType, WebhookAdapter], Depends(get_webhook_adapters)],
    cfg: Annotated[TelephonyConfig, Depends(get_telephony_config)],
    handler: Annotated[WebhookHandler, Depends(get_webhook_handler)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> dict[str, Any]:
    """Transcription finished: turn it into a journal entry."""
    adapter = adapters[provider]
    webhook = await _verified_webhook(request, adapter, cfg)
    channel = WebhookChannel.TRANSCRIPTION

    try:
        event = adapter.normalize(channel, webhook)
        if event is None:
            return {"status": "ignored"}
        result = await handler.handle(event)
    except WebhookParseError as e:
        logger.warning("Malformed transcription webhook", extra=_log_extra(provider, channel, error=str(e)))
        return {"status": "skipped", "reason": "malformed"}
    except NotFoundError:
        return {"status": "skipped", "reason": "record_not_found"}
    except Exception:
        logger.exception("Transcription webhook failed", extra=_log_extra(provider, channel))
        await session.rollback()
        return {"status": "error"}

    if result.outcome == Outcome.APPLIED:
        return {"status": "success", "entryId": result.entry_id}
    return {"status": "skipped", "reason": result.reason}
