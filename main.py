"""
ReplyDesk - Main Entry Point

Review ingestion and AI reply workflow for Google Business Profile.
"""

import uvicorn

from replydesk.api.main import create_app
from replydesk.config import get_settings
from replydesk.core.logging import configure_logging

configure_logging(get_settings().log_level)

# Create app instance
app = create_app()


def main():
    """Main entry point for running the application."""
    settings = get_settings()

    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
