# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Message formatter for /telemost command responses.

Every response the command handler returns is built here: Block Kit blocks
for rich rendering plus a plain fallback text. Everything is ephemeral
except the "meeting created" card, which is posted in the channel.
"""

from typing import Any, Dict, List, Optional

from telemost_bot.models import CommandResponse, Meeting


DEFAULT_MEETING_TITLE = "Telemost Meeting"
MEETING_POST_TYPE = "custom_telemost_meeting"

HELP_TEXT = (
    "*Available commands:*\n"
    "• `/telemost start [title]` - Start a new meeting (requires authentication)\n"
    "• `/telemost connect` - Authenticate with Telemost OAuth\n"
    "• `/telemost disconnect` - Remove Telemost authentication\n"
    "• `/telemost help` - Show this help message"
)


class MessageFormatter:
    """
    Formats Telemost bot output into Slack command responses.

    Block helpers mirror the Block Kit element types; the format_*
    methods produce complete CommandResponse objects.
    """

    ERROR_TEMPLATES = {
        "not_authenticated": {
            "title": ":lock: Telemost not authenticated!",
            "default_suggestion": (
                "Please authenticate with Telemost first:\n"
                "1. Use `/telemost connect` to start OAuth authentication\n"
                "2. Complete the OAuth flow in your browser\n"
                "3. Try `/telemost start` again"
            )
        },
        "auth_error": {
            "title": ":warning: Authentication error!",
            "default_suggestion": "Please reconnect with `/telemost connect`."
        },
        "not_configured": {
            "title": ":gear: Telemost is not configured",
            "default_suggestion": "Ask your administrator to set the Yandex Client ID and Site URL."
        },
        "meeting_failed": {
            "title": ":x: Failed to create meeting!",
            "default_suggestion": "Please try again or contact support."
        },
        "disconnect_failed": {
            "title": ":x: Failed to disconnect!",
            "default_suggestion": "There was an error removing your authentication. Please try again."
        },
        "unknown": {
            "title": ":exclamation: Unexpected Error",
            "default_suggestion": "An unexpected error occurred. Please try again or contact support."
        }
    }

    # Helper methods for common block types

    def create_header_block(self, text: str) -> Dict[str, Any]:
        return {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": text[:150],  # Slack limit
                "emoji": True
            }
        }

    def create_section_block(
        self,
        text: str,
        fields: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Create a mrkdwn section block.

        Args:
            text: Section text
            fields: Optional list of field texts (max 10)

        Returns:
            Block Kit section block
        """
        block: Dict[str, Any] = {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": text[:3000]  # Slack limit
            }
        }

        if fields:
            block["fields"] = [
                {"type": "mrkdwn", "text": field}
                for field in fields[:10]  # Slack limit
            ]

        return block

    def create_context_block(self, elements: List[str]) -> Dict[str, Any]:
        return {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": element}
                for element in elements[:10]  # Slack limit
            ]
        }

    def create_link_button(
        self,
        text: str,
        url: str,
        action_id: str,
        style: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a button that opens a URL.

        Args:
            text: Button text
            url: URL opened on click
            action_id: Action identifier
            style: Optional style ("primary", "danger")
        """
        button: Dict[str, Any] = {
            "type": "button",
            "text": {
                "type": "plain_text",
                "text": text
            },
            "url": url,
            "action_id": action_id
        }

        if style in ("primary", "danger"):
            button["style"] = style

        return button

    def create_actions_block(self, buttons: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "type": "actions",
            "elements": buttons[:5]  # Slack limit
        }

    def _ephemeral(self, text: str, blocks: Optional[List[Dict[str, Any]]] = None) -> CommandResponse:
        if blocks is None:
            blocks = [self.create_section_block(text)]
        return CommandResponse(response_type="ephemeral", text=text, blocks=blocks)

    # Command responses

    def format_error(
        self,
        error_type: str,
        message: Optional[str] = None,
        suggestion: Optional[str] = None
    ) -> CommandResponse:
        """
        Render an ephemeral error response.

        Args:
            error_type: Key of ERROR_TEMPLATES (falls back to "unknown")
            message: Optional detail shown under the title
            suggestion: Optional text replacing the template's suggestion
        """
        template = self.ERROR_TEMPLATES.get(error_type, self.ERROR_TEMPLATES["unknown"])
        suggestion = suggestion or template["default_suggestion"]

        parts = [f"*{template['title']}*"]
        if message:
            parts.append(message)
        parts.append(suggestion)
        text = "\n\n".join(parts)

        return self._ephemeral(text)

    def format_not_authenticated(self) -> CommandResponse:
        return self.format_error("not_authenticated")

    def format_auth_error(self) -> CommandResponse:
        return self.format_error("auth_error")

    def format_not_configured(self) -> CommandResponse:
        return self.format_error("not_configured")

    def format_meeting_failed(self, error_message: str) -> CommandResponse:
        return self.format_error("meeting_failed", message=f"Error: {error_message}")

    def format_meeting_created(self, meeting: Meeting, title: str = DEFAULT_MEETING_TITLE) -> CommandResponse:
        """
        Render the in-channel card for a new meeting.

        The props carry the raw meeting data for clients that render their
        own card; the blocks are the Slack rendering of the same data.
        """
        fields = [f"*Meeting ID:*\n`{meeting.id}`"]
        buttons = [
            self.create_link_button("Join Meeting", meeting.join_url, "telemost_join", style="primary")
        ]

        watch_url = meeting.live_stream.watch_url if meeting.live_stream else None
        if watch_url:
            fields.append(f"*Live stream:*\n<{watch_url}|Watch>")
            buttons.append(self.create_link_button("Watch Stream", watch_url, "telemost_watch"))

        blocks = [
            self.create_header_block(f":video_camera: {title}"),
            self.create_section_block(f"<{meeting.join_url}|{meeting.join_url}>", fields=fields),
            self.create_actions_block(buttons),
            self.create_context_block(["Created with `/telemost start`"])
        ]

        props: Dict[str, Any] = {
            "type": MEETING_POST_TYPE,
            "joinURL": meeting.join_url,
            "meetingID": meeting.id,
            "title": title
        }
        if watch_url:
            props["watchURL"] = watch_url

        return CommandResponse(
            response_type="in_channel",
            text=f"{title}: {meeting.join_url}",
            blocks=blocks,
            props=props
        )

    def format_connect_link(self, authorization_url: str) -> CommandResponse:
        text = (
            "*:link: Telemost Authentication Required*\n\n"
            "To connect to Telemost, please complete the OAuth authentication:\n\n"
            f"<{authorization_url}|Click here to authenticate with Telemost>\n\n"
            "After authentication, you'll be able to create meetings using `/telemost start`."
        )
        blocks = [
            self.create_section_block(text),
            self.create_actions_block([
                self.create_link_button(
                    "Connect Telemost", authorization_url, "telemost_connect", style="primary"
                )
            ])
        ]
        return self._ephemeral(text, blocks)

    def format_already_connected(self) -> CommandResponse:
        return self._ephemeral(
            "*:white_check_mark: Already Connected to Telemost*\n\n"
            "You are already authenticated with Telemost. You can:\n"
            "• Use `/telemost start` to create a meeting\n"
            "• Use `/telemost disconnect` to remove authentication"
        )

    def format_not_connected(self) -> CommandResponse:
        return self._ephemeral(
            "*Not authenticated!* You are not currently authenticated with Telemost. "
            "Use `/telemost connect` to authenticate first."
        )

    def format_disconnect_failed(self) -> CommandResponse:
        return self.format_error("disconnect_failed")

    def format_disconnected(self) -> CommandResponse:
        return self._ephemeral(
            "*:white_check_mark: Disconnected from Telemost*\n\n"
            "Your Telemost authentication has been removed. "
            "Use `/telemost connect` to authenticate again."
        )

    def format_help(self) -> CommandResponse:
        return self._ephemeral(HELP_TEXT)

    def format_unknown_command(self, subcommand: str) -> CommandResponse:
        return self._ephemeral(
            f"Unknown command: `{subcommand}`. Use `/telemost help` to see available commands."
        )
