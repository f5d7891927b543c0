"""RPC procedures for meetings.

Covers listing and CRUD, cancellation, transcripts, and the video/chat
tokens the client needs to join a call. meetings.create persists the
meeting together with a call intent and only reports success once the
platform call exists; see CallProvisioner.
"""

from __future__ import annotations

import httpx
import structlog

from src.buddy.core.context import RequestContext
from src.buddy.meetings.lifecycle import can_transition, sources_for
from src.buddy.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingsGetManyInput,
    MeetingStatus,
    MeetingUpdate,
    MeetingWithAgent,
    TranscriptLine,
)
from src.buddy.rpc.errors import RpcError, RpcErrorCode, not_found
from src.buddy.rpc.procedures import Router, mutation, query
from src.buddy.schemas.common import IdInput, Page
from src.buddy.services.avatar import AvatarVariant, generate_avatar_uri

logger = structlog.get_logger(__name__)


def _platform_error(exc: httpx.HTTPError, operation: str) -> RpcError:
    logger.warning("meetings.platform_request_failed", operation=operation, error=str(exc))
    return RpcError(RpcErrorCode.BAD_GATEWAY, "Video platform request failed")


def build_meetings_router(
    meetings,
    agents,
    billing,
    provisioner,
    transcripts,
    video,
    chat,
    token_ttl_seconds: int = 3600,
    avatar_base_url: str | None = None,
) -> Router:
    """Build the ``meetings.*`` procedures.

    Args:
        meetings: MeetingRepository.
        agents: AgentRepository (ownership checks on agentId).
        billing: BillingService (free-tier gate on create).
        provisioner: CallProvisioner.
        transcripts: TranscriptService.
        video: StreamVideoClient.
        chat: StreamChatClient.
        token_ttl_seconds: Lifetime of video user tokens.
        avatar_base_url: Base URL for generated avatars.
    """
    avatar_kwargs = {"base_url": avatar_base_url} if avatar_base_url else {}

    async def get_many(ctx: RequestContext, params: MeetingsGetManyInput) -> Page[MeetingWithAgent]:
        items, total = await meetings.list_meetings(ctx.user_id, params)
        return Page[MeetingWithAgent].build(items, total, params.page_size)

    async def get_one(ctx: RequestContext, data: IdInput) -> MeetingWithAgent:
        meeting = await meetings.get_meeting(ctx.user_id, data.id)
        if meeting is None:
            raise not_found("Meeting")
        return meeting

    async def create(ctx: RequestContext, data: MeetingCreate) -> Meeting:
        agent = await agents.get_agent(ctx.user_id, data.agent_id)
        if agent is None:
            raise not_found("Agent")
        await billing.ensure_can_create_meeting(ctx.user_id)

        meeting, intent = await meetings.create_meeting_with_intent(ctx.user_id, data)
        if not await provisioner.run_intent(intent, meeting, agent, source="create"):
            raise RpcError(
                RpcErrorCode.BAD_GATEWAY,
                "Failed to create the video call for this meeting",
            )
        return meeting

    async def update(ctx: RequestContext, data: MeetingUpdate) -> Meeting:
        if await agents.get_agent(ctx.user_id, data.agent_id) is None:
            raise not_found("Agent")
        meeting = await meetings.update_meeting(ctx.user_id, data)
        if meeting is None:
            raise not_found("Meeting")
        return meeting

    async def remove(ctx: RequestContext, data: IdInput) -> Meeting:
        meeting = await meetings.delete_meeting(ctx.user_id, data.id)
        if meeting is None:
            raise not_found("Meeting")
        return meeting

    async def cancel(ctx: RequestContext, data: IdInput) -> Meeting:
        meeting = await meetings.get_meeting(ctx.user_id, data.id)
        if meeting is None:
            raise not_found("Meeting")
        if not can_transition(meeting.status, MeetingStatus.CANCELLED):
            raise RpcError(
                RpcErrorCode.BAD_REQUEST,
                f"Meeting is already {meeting.status.value} and cannot be cancelled",
            )
        cancelled = await meetings.transition_status(
            data.id,
            sources_for(MeetingStatus.CANCELLED),
            MeetingStatus.CANCELLED,
            user_id=ctx.user_id,
        )
        if cancelled is None:
            raise RpcError(RpcErrorCode.BAD_REQUEST, "Meeting can no longer be cancelled")
        return cancelled

    async def get_transcript(ctx: RequestContext, data: IdInput) -> list[TranscriptLine]:
        meeting = await meetings.get_meeting(ctx.user_id, data.id)
        if meeting is None:
            raise not_found("Meeting")
        return await transcripts.get_lines(meeting.transcript_url)

    async def generate_token(ctx: RequestContext, _: None) -> str:
        user = ctx.user
        try:
            await video.upsert_users(
                [
                    {
                        "id": user.id,
                        "name": user.name,
                        "role": "admin",
                        "image": user.image
                        or generate_avatar_uri(user.id, AvatarVariant.INITIALS, **avatar_kwargs),
                    }
                ]
            )
        except httpx.HTTPError as exc:
            raise _platform_error(exc, "generateToken") from exc
        return video.generate_user_token(user.id, token_ttl_seconds)

    async def generate_chat_token(ctx: RequestContext, _: None) -> str:
        user = ctx.user
        try:
            await chat.upsert_user(
                {
                    "id": user.id,
                    "name": user.name,
                    "role": "admin",
                    "image": user.image
                    or generate_avatar_uri(user.id, AvatarVariant.INITIALS, **avatar_kwargs),
                }
            )
        except httpx.HTTPError as exc:
            raise _platform_error(exc, "generateChatToken") from exc
        return chat.create_token(user.id)

    return Router(
        {
            "getMany": query(get_many, MeetingsGetManyInput),
            "getOne": query(get_one, IdInput),
            "create": mutation(create, MeetingCreate),
            "update": mutation(update, MeetingUpdate),
            "remove": mutation(remove, IdInput),
            "cancel": mutation(cancel, IdInput),
            "getTranscript": query(get_transcript, IdInput),
            "generateToken": mutation(generate_token),
            "generateChatToken": mutation(generate_chat_token),
        }
    )
