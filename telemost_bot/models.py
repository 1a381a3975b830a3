# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Data models for the Telemost bot.

This module defines Pydantic models for OAuth state, stored user tokens,
Telemost meeting requests and responses, and slash command input/output.
All models use Pydantic v2 for validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class OAuthState(BaseModel):
    """
    Pending authorization bound to a random state token.

    Stored under `oauth_state_<state>` when a user starts the OAuth flow
    and removed once the flow completes.
    """
    user_id: str = Field(
        ...,
        description="User who started the authorization"
    )
    channel_id: str = Field(
        ...,
        description="Channel that receives the connection notice"
    )
    expires_at: datetime = Field(
        ...,
        description="When the state stops being accepted (10 minutes after start)"
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class UserToken(BaseModel):
    """
    Telemost OAuth token for a single user.

    This is the only token representation; the OAuth manager, the command
    handler and the HTTP API all read and write it.
    """
    access_token: str = Field(
        ...,
        description="Telemost OAuth access token"
    )
    expires_at: datetime = Field(
        ...,
        description="When the token is treated as expired"
    )
    user_id: str = Field(
        ...,
        description="Owner of the token"
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class LiveStreamSettings(BaseModel):
    """Live stream block of a meeting creation request."""
    access_level: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class Cohost(BaseModel):
    """Meeting participant with elevated control, identified by email."""
    email: str


class MeetingRequest(BaseModel):
    """Body of a Telemost `POST /conferences` call."""
    waiting_room_level: Optional[str] = None
    live_stream: Optional[LiveStreamSettings] = None
    cohosts: List[Cohost] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """
        Serialize the request the way Telemost expects it.

        Empty values are left out entirely: no waiting room level when it
        is blank, no live stream block when streaming is off, no cohosts
        key for an empty list.
        """
        payload: Dict[str, Any] = {}

        if self.waiting_room_level:
            payload["waiting_room_level"] = self.waiting_room_level

        if self.live_stream is not None:
            payload["live_stream"] = {
                key: value
                for key, value in self.live_stream.model_dump().items()
                if value
            }

        if self.cohosts:
            payload["cohosts"] = [{"email": cohost.email} for cohost in self.cohosts]

        return payload


class LiveStream(BaseModel):
    """Live stream details of a created meeting."""
    model_config = ConfigDict(extra="ignore")

    watch_url: Optional[str] = None


class Meeting(BaseModel):
    """A meeting as returned by Telemost after creation."""
    model_config = ConfigDict(extra="ignore")

    id: str
    join_url: str
    live_stream: Optional[LiveStream] = None


class ProviderErrorBody(BaseModel):
    """Structured error body returned by the Telemost API."""
    model_config = ConfigDict(extra="ignore")

    error: str = ""
    message: str = ""
    description: str = ""


class OAuthCompleteRequest(BaseModel):
    """Body posted by the OAuth callback page."""
    access_token: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


class CreateMeetingRequest(BaseModel):
    """Body of `POST /api/v1/meetings`."""
    title: str = ""
    description: str = ""
    cohosts: List[str] = Field(default_factory=list)

    @field_validator('cohosts')
    @classmethod
    def validate_cohost_emails(cls, v: List[str]) -> List[str]:
        """Reject entries that cannot be email addresses."""
        for email in v:
            if '@' not in email:
                raise ValueError(f'Invalid cohost email: {email}')
        return v


class CommandArgs(BaseModel):
    """
    A slash command invocation.

    `text` holds everything typed after the trigger, e.g. "start" for
    `/telemost start`.
    """
    command: str = Field(
        default="/telemost",
        description="Command trigger including the leading slash"
    )
    text: str = Field(
        default="",
        description="Command arguments"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="User who invoked the command"
    )
    channel_id: str = Field(
        ...,
        min_length=1,
        description="Channel where the command was invoked"
    )
    team_id: Optional[str] = None
    response_url: Optional[str] = None

    def fields(self) -> List[str]:
        """Whitespace-separated tokens of the command text."""
        return self.text.split()


class CommandResponse(BaseModel):
    """
    Response to a slash command.

    Ephemeral responses are shown only to the invoking user; in-channel
    responses are visible to everyone in the channel.
    """
    response_type: Literal["ephemeral", "in_channel"] = "ephemeral"
    text: str = ""
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    props: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('blocks')
    @classmethod
    def validate_blocks_structure(cls, v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Validate basic block structure."""
        for block in v:
            if 'type' not in block:
                raise ValueError('Each block must have a "type" field')
        return v

    @property
    def is_ephemeral(self) -> bool:
        return self.response_type == "ephemeral"

    def to_slack(self) -> Dict[str, Any]:
        """Payload for a Slack slash command reply."""
        payload: Dict[str, Any] = {
            "response_type": self.response_type,
            "text": self.text,
        }
        if self.blocks:
            payload["blocks"] = self.blocks
        return payload
