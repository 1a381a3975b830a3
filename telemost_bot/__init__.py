# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Telemost integration for Slack.

This package bridges the `/telemost` slash command to the Yandex Telemost
API: users authorize through an implicit-grant OAuth flow and then create
meetings straight from a channel.
"""

__version__ = "0.1.0"
