import logging
import os
from email.utils import formataddr

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import (
    AWS_ACCESS_KEY,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    AWS_SES_SENDER_EMAIL,
    EMAIL_SENDER_NAME,
    OTP_LIFETIME_MINUTES,
)
from errors import TransportError

logger = logging.getLogger("email_otp_api.email")

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

# Set up Jinja env
env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html", "xml", "html.jinja"]),
)

template = env.get_template("email_verification_code.html.jinja")


def render_verification_email(otp: str, lifetime: int = OTP_LIFETIME_MINUTES) -> tuple[str, str]:
    """Return the HTML and plain text bodies for a verification code email."""
    html_body = template.render(otp=otp, lifetime=lifetime, sender_name=EMAIL_SENDER_NAME)
    text_body = f"Your OTP code is: {otp}. This OTP will expire in {lifetime} minutes."
    return html_body, text_body


def create_ses_client():
    return boto3.client(
        "ses",
        region_name=AWS_REGION,
        aws_access_key_id=str(AWS_ACCESS_KEY),
        aws_secret_access_key=str(AWS_SECRET_ACCESS_KEY),
    )


class SESEmailSender:
    """Delivers mail through Amazon SES."""

    def __init__(self, client=None, sender_email: str = AWS_SES_SENDER_EMAIL, sender_name: str = EMAIL_SENDER_NAME):
        self.client = client if client is not None else create_ses_client()
        self.source = formataddr((sender_name, sender_email))

    def send(self, to: str, subject: str, html_body: str, text_body: str | None = None) -> str:
        """Send one message and return its SES message id.

        Raises:
            TransportError: If SES rejects the message or cannot be reached
        """
        body = {"Html": {"Data": html_body}}
        if text_body is not None:
            body["Text"] = {"Data": text_body}

        try:
            resp = self.client.send_email(
                Source=self.source,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject},
                    "Body": body,
                },
            )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            logger.exception(f"SES ClientError when sending email to {to}: {code}")
            raise TransportError(f"Email send failed: {code}") from e
        except BotoCoreError as e:
            logger.exception(f"SES unreachable when sending email to {to}")
            raise TransportError("Email send failed") from e

        return resp.get("MessageId")
