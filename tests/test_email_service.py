import os

import boto3
import pytest
from botocore.stub import ANY, Stubber

from errors import TransportError
from services.email_service import TEMPLATES_DIR, SESEmailSender, render_verification_email


@pytest.fixture
def ses_client():
    return boto3.client(
        "ses",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_render_verification_email():
    html_body, text_body = render_verification_email("482913", 5)

    assert "482913" in html_body
    assert "expire in 5 minutes" in html_body
    assert text_body == "Your OTP code is: 482913. This OTP will expire in 5 minutes."


def test_render_escapes_html():
    html_body, _ = render_verification_email("<b>1</b>", 5)

    assert "<b>1</b>" not in html_body
    assert "&lt;b&gt;" in html_body


def test_send_returns_message_id(ses_client):
    sender = SESEmailSender(client=ses_client, sender_email="otp@example.com", sender_name="Task Manager App")

    with Stubber(ses_client) as stubber:
        stubber.add_response(
            "send_email",
            {"MessageId": "msg-123"},
            expected_params={
                "Source": "Task Manager App <otp@example.com>",
                "Destination": {"ToAddresses": ["a@b.com"]},
                "Message": {
                    "Subject": {"Data": "Your code"},
                    "Body": {"Html": {"Data": "<p>1</p>"}, "Text": {"Data": "1"}},
                },
            },
        )

        assert sender.send("a@b.com", "Your code", "<p>1</p>", "1") == "msg-123"
        stubber.assert_no_pending_responses()


def test_send_html_only(ses_client):
    sender = SESEmailSender(client=ses_client, sender_email="otp@example.com")

    with Stubber(ses_client) as stubber:
        stubber.add_response(
            "send_email",
            {"MessageId": "msg-456"},
            expected_params={
                "Source": ANY,
                "Destination": {"ToAddresses": ["a@b.com"]},
                "Message": {"Subject": {"Data": "Hi"}, "Body": {"Html": {"Data": "<p>hi</p>"}}},
            },
        )

        assert sender.send("a@b.com", "Hi", "<p>hi</p>") == "msg-456"


def test_rejected_message_raises_transport_error(ses_client):
    sender = SESEmailSender(client=ses_client, sender_email="otp@example.com")

    with Stubber(ses_client) as stubber:
        stubber.add_client_error(
            "send_email",
            service_error_code="MessageRejected",
            service_message="Email address is not verified.",
            http_status_code=400,
        )

        with pytest.raises(TransportError, match="MessageRejected"):
            sender.send("a@b.com", "Hi", "<p>hi</p>")


def test_template_ships_inside_services_package():
    import services.email_service as email_service

    package_dir = os.path.dirname(os.path.abspath(email_service.__file__))
    assert TEMPLATES_DIR == os.path.join(package_dir, "templates")
    assert os.path.isfile(os.path.join(TEMPLATES_DIR, "email_verification_code.html.jinja"))
