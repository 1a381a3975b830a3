# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Unit tests for data models.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from telemost_bot.models import (
    CommandArgs,
    CommandResponse,
    Cohost,
    CreateMeetingRequest,
    LiveStreamSettings,
    MeetingRequest,
    OAuthCompleteRequest,
    OAuthState,
    UserToken,
)


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestExpiry:

    def test_state_expiry_is_strict(self):
        state = OAuthState(user_id="U1", channel_id="C1", expires_at=NOW)

        assert state.is_expired(NOW) is False
        assert state.is_expired(NOW + timedelta(seconds=1)) is True

    def test_token_json_round_trip(self):
        token = UserToken(access_token="y0_abc", expires_at=NOW, user_id="U1")

        restored = UserToken.model_validate_json(token.model_dump_json())

        assert restored == token
        assert restored.is_expired(NOW - timedelta(seconds=1)) is False


class TestMeetingRequest:

    def test_empty_fields_are_omitted(self):
        assert MeetingRequest(waiting_room_level="").to_payload() == {}

    def test_live_stream_empty_values_are_omitted(self):
        request = MeetingRequest(live_stream=LiveStreamSettings(access_level="PUBLIC", title="", description=None))

        assert request.to_payload() == {"live_stream": {"access_level": "PUBLIC"}}

    def test_full_payload(self):
        request = MeetingRequest(
            waiting_room_level="ORGANIZATION",
            live_stream=LiveStreamSettings(access_level="PUBLIC", title="T", description="D"),
            cohosts=[Cohost(email="a@x.ru")]
        )

        assert request.to_payload() == {
            "waiting_room_level": "ORGANIZATION",
            "live_stream": {"access_level": "PUBLIC", "title": "T", "description": "D"},
            "cohosts": [{"email": "a@x.ru"}]
        }


class TestRequestBodies:

    def test_complete_request_requires_both_fields(self):
        with pytest.raises(ValidationError):
            OAuthCompleteRequest(access_token="", state="s")
        with pytest.raises(ValidationError):
            OAuthCompleteRequest.model_validate({"access_token": "t"})

    def test_create_meeting_defaults(self):
        body = CreateMeetingRequest.model_validate({})

        assert body.title == ""
        assert body.cohosts == []

    def test_create_meeting_rejects_bad_cohost(self):
        with pytest.raises(ValidationError):
            CreateMeetingRequest(cohosts=["not-an-email"])


class TestCommandModels:

    def test_fields_split_on_whitespace(self):
        cmd = CommandArgs(text="  start   My  meeting ", user_id="U1", channel_id="C1")

        assert cmd.fields() == ["start", "My", "meeting"]

    def test_command_requires_user_and_channel(self):
        with pytest.raises(ValidationError):
            CommandArgs(text="start", user_id="", channel_id="C1")

    def test_response_rejects_untyped_blocks(self):
        with pytest.raises(ValidationError):
            CommandResponse(blocks=[{"text": "no type"}])

    def test_response_defaults_to_ephemeral(self):
        response = CommandResponse(text="hi")

        assert response.is_ephemeral
        assert response.to_slack() == {"response_type": "ephemeral", "text": "hi"}
