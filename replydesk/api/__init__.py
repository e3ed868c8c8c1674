"""HTTP surface for ReplyDesk."""

from replydesk.api.main import create_app

__all__ = ["create_app"]
