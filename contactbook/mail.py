"""Outgoing email."""

import logging

from fastapi import Depends
from fastapi_mail import FastMail, MessageSchema, MessageType

from .core import Settings, get_mail_config, get_settings

logger = logging.getLogger("contactbook")


class Mailer:
    """Sends plain-text emails through FastAPI-Mail."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.fm = FastMail(get_mail_config(settings))

    async def send(self, to: str, subject: str, text: str) -> None:
        """
        Send a message to a single recipient.

        Outside production the message is not delivered; it is logged so
        links it contains can be followed during development.

        Args:
            to (str): Recipient email address.
            subject (str): Message subject.
            text (str): Plain-text body.
        """
        message = MessageSchema(
            subject=subject,
            recipients=[to],
            body=text,
            subtype=MessageType.plain,
        )
        await self.fm.send_message(message)
        if self.settings.is_production:
            logger.info("Message sent to %s", to)
        else:
            logger.info("Email to %s (not delivered)\nSubject: %s\n\n%s", to, subject, text)


def get_mailer(settings: Settings = Depends(get_settings)) -> Mailer:
    """Dependency returning a mailer for the current settings."""
    return Mailer(settings)
