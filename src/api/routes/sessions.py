"""API endpoints for voice sessions and their transcripts.

The client connects to the speech service directly with the ephemeral
credential returned by /start; these endpoints only handle bookkeeping,
the SDP proxy and transcript uploads.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.api.auth import RequireUser
from src.api.dependencies import get_broker, get_lifecycle, get_synchronizer
from src.core.lifecycle import (
    SessionDetail,
    SessionGrant,
    SessionLifecycleManager,
    SessionRecord,
)
from src.core.transcript_sync import (
    SpeakerDescriptor,
    TranscriptSynchronizer,
    UtteranceInput,
)
from src.db.models import SessionStatus, SessionType, SpeakerRole, isoformat_utc
from src.logging_config import get_logger
from src.services.realtime.broker import VoiceChannelBroker

logger: Any = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# =============================================================================
# Request/Response Schemas
# =============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartSessionRequest(CamelModel):
    coach_id: str = Field(..., description="Coach to talk to")


class SpeakerSchema(CamelModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., max_length=100)
    role: SpeakerRole


class UtteranceSchema(CamelModel):
    entry_id: str = Field(..., min_length=1, max_length=128)
    speaker_id: str = Field(..., min_length=1, max_length=64)
    content: str
    timestamp_ms: int = Field(..., ge=0)
    start_offset_ms: int = Field(0, ge=0)
    end_offset_ms: int = Field(0, ge=0)
    confidence: float | None = Field(None, ge=0.0, le=1.0)


class CoachBrief(CamelModel):
    id: str
    name: str
    avatar: str | None = None


class CoachSummary(CoachBrief):
    specialty: str | None = None
    category: str | None = None


class StartSessionResponse(CamelModel):
    session_id: str
    credential: str
    credential_expiry_epoch_ms: int
    signaling_url: str
    coach: CoachBrief
    speakers: list[SpeakerSchema]


class SdpExchangeRequest(CamelModel):
    sdp: str = Field(..., min_length=1, description="SDP offer from the client")
    token: str = Field(..., min_length=1, description="Ephemeral credential")


class SdpExchangeResponse(CamelModel):
    sdp: str


class SessionResponse(CamelModel):
    id: str
    user_id: str
    coach_id: str
    status: SessionStatus
    session_type: SessionType
    started_at: str
    ended_at: str | None
    duration_ms: int
    title: str | None
    summary: str | None
    created_at: str
    updated_at: str
    coach: CoachSummary | None = None


class UtteranceResponse(CamelModel):
    entry_id: str
    speaker_id: str
    content: str
    start_offset_ms: int
    end_offset_ms: int
    timestamp: str
    confidence: float | None = None


class TranscriptMetadata(CamelModel):
    total_utterances: int
    language: str
    last_synced_at: str | None


class TranscriptResponse(CamelModel):
    speakers: list[SpeakerSchema]
    utterances: list[UtteranceResponse]
    metadata: TranscriptMetadata


class SessionDetailResponse(SessionResponse):
    transcript: TranscriptResponse | None = None


class SessionHistoryResponse(CamelModel):
    data: list[SessionResponse]
    total: int
    limit: int
    offset: int


class ActiveSessionResponse(CamelModel):
    session: SessionResponse | None


class MergeTranscriptRequest(CamelModel):
    speakers: list[SpeakerSchema] = Field(default_factory=list)
    utterances: list[UtteranceSchema] = Field(default_factory=list)


class MergeTranscriptResponse(CamelModel):
    saved: int
    duplicates: int


class EndSessionRequest(CamelModel):
    duration_ms: int | None = Field(None, description="Client-measured session length")
    final_utterances: list[UtteranceSchema] | None = None
    speakers: list[SpeakerSchema] | None = None


# =============================================================================
# Converters
# =============================================================================


def _iso(value: datetime | None) -> str | None:
    return isoformat_utc(value) if value else None


def _session_response(record: SessionRecord) -> dict[str, Any]:
    s = record.session
    return {
        "id": s.id,
        "user_id": s.user_id,
        "coach_id": s.coach_id,
        "status": s.status,
        "session_type": s.session_type,
        "started_at": isoformat_utc(s.started_at),
        "ended_at": _iso(s.ended_at),
        "duration_ms": s.duration_ms,
        "title": s.title,
        "summary": s.summary,
        "created_at": isoformat_utc(s.created_at),
        "updated_at": isoformat_utc(s.updated_at),
        "coach": record.coach,
    }


def _grant_response(grant: SessionGrant) -> StartSessionResponse:
    return StartSessionResponse(
        session_id=grant.session_id,
        credential=grant.credential,
        credential_expiry_epoch_ms=grant.credential_expiry_ms,
        signaling_url=grant.signaling_url,
        coach=CoachBrief(**grant.coach),
        speakers=[SpeakerSchema(id=s.id, name=s.name, role=s.role) for s in grant.speakers],
    )


def _detail_response(detail: SessionDetail) -> SessionDetailResponse:
    data = _session_response(detail)
    transcript = detail.transcript
    if transcript is not None:
        data["transcript"] = TranscriptResponse(
            speakers=[
                SpeakerSchema(id=s.speaker_id, name=s.name, role=s.role) for s in detail.speakers
            ],
            utterances=[
                UtteranceResponse(
                    entry_id=u.entry_id,
                    speaker_id=u.speaker_id,
                    content=u.content,
                    start_offset_ms=u.start_offset_ms,
                    end_offset_ms=u.end_offset_ms,
                    timestamp=isoformat_utc(u.timestamp),
                    confidence=u.confidence,
                )
                for u in detail.utterances
            ],
            metadata=TranscriptMetadata(
                total_utterances=transcript.total_utterances,
                language=transcript.language,
                last_synced_at=_iso(transcript.last_synced_at),
            ),
        )
    return SessionDetailResponse(**data)


def _speakers(items: list[SpeakerSchema] | None) -> list[SpeakerDescriptor]:
    return [SpeakerDescriptor(id=s.id, name=s.name, role=s.role) for s in items or []]


def _utterances(items: list[UtteranceSchema] | None) -> list[UtteranceInput]:
    return [
        UtteranceInput(
            entry_id=u.entry_id,
            speaker_id=u.speaker_id,
            content=u.content,
            timestamp_ms=u.timestamp_ms,
            start_offset_ms=u.start_offset_ms,
            end_offset_ms=u.end_offset_ms,
            confidence=u.confidence,
        )
        for u in items or []
    ]


# =============================================================================
# Session Endpoints
# =============================================================================


@router.post("/start", response_model=StartSessionResponse, status_code=201)
async def start_session(
    body: StartSessionRequest,
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> StartSessionResponse:
    """Start a voice session and return the ephemeral credential."""
    grant = await lifecycle.start(user_id, body.coach_id)
    return _grant_response(grant)


@router.post("/sdp-exchange", response_model=SdpExchangeResponse)
async def sdp_exchange(
    body: SdpExchangeRequest,
    user_id: RequireUser,
    broker: VoiceChannelBroker = Depends(get_broker),
) -> SdpExchangeResponse:
    """Forward the client's SDP offer and return the provider's answer."""
    answer = await broker.exchange_signaling(body.sdp, body.token)
    return SdpExchangeResponse(sdp=answer)


@router.get("/history", response_model=SessionHistoryResponse)
async def session_history(
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
    coach_id: str | None = Query(None, alias="coachId"),
    status: SessionStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> SessionHistoryResponse:
    """List past sessions, newest first (ended and abandoned by default)."""
    page = await lifecycle.history(
        user_id, coach_id=coach_id, status=status, limit=limit, offset=offset
    )
    return SessionHistoryResponse(
        data=[SessionResponse(**_session_response(item)) for item in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/active", response_model=ActiveSessionResponse)
async def active_session(
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> ActiveSessionResponse:
    record = await lifecycle.get_active(user_id)
    return ActiveSessionResponse(
        session=SessionResponse(**_session_response(record)) if record else None
    )


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session_detail(
    session_id: str,
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> SessionDetailResponse:
    """Get a session with its transcript."""
    detail = await lifecycle.get_session(session_id, user_id)
    return _detail_response(detail)


@router.post("/{session_id}/resume", response_model=StartSessionResponse)
async def resume_session(
    session_id: str,
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> StartSessionResponse:
    """Get a fresh credential for an active or paused session."""
    grant = await lifecycle.resume(session_id, user_id)
    return _grant_response(grant)


@router.post("/{session_id}/pause", response_model=SessionResponse)
async def pause_session(
    session_id: str,
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> SessionResponse:
    record = await lifecycle.pause(session_id, user_id)
    return SessionResponse(**_session_response(record))


@router.put("/{session_id}/transcript", response_model=MergeTranscriptResponse)
async def merge_transcript(
    session_id: str,
    body: MergeTranscriptRequest,
    user_id: RequireUser,
    synchronizer: TranscriptSynchronizer = Depends(get_synchronizer),
) -> MergeTranscriptResponse:
    """Upload a batch of utterances. Safe to repeat; duplicates are ignored."""
    result = await synchronizer.merge(
        session_id, user_id, _speakers(body.speakers), _utterances(body.utterances)
    )
    return MergeTranscriptResponse(saved=result.saved, duplicates=result.duplicates)


@router.post("/{session_id}/end", response_model=SessionResponse)
async def end_session(
    session_id: str,
    body: EndSessionRequest,
    user_id: RequireUser,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> SessionResponse:
    """End a session, saving any final utterances first."""
    record = await lifecycle.end(
        session_id,
        user_id,
        body.duration_ms,
        final_utterances=_utterances(body.final_utterances),
        speakers=_speakers(body.speakers),
    )
    return SessionResponse(**_session_response(record))
