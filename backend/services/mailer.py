"""
Order status emails
Sent through the Gmail API from the store's sender account. A failed send is
logged and never undoes the status change that triggered it.
"""
import base64
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from google.oauth2.credentials import Credentials
from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config import (
    GOOGLE_GMAIL_CLIENT_ID, GOOGLE_GMAIL_CLIENT_SECRET, GMAIL_SENDER_REFRESH_TOKEN, MAIL_FROM, FRONTEND_URL
)

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"

STATUS_LINES = {
    "processing": "is being prepared",
    "shipped": "has been shipped",
    "delivered": "has been delivered",
}


class GmailMailer:
    def __init__(self, client_id: str = GOOGLE_GMAIL_CLIENT_ID,
                 client_secret: str = GOOGLE_GMAIL_CLIENT_SECRET,
                 refresh_token: str = GMAIL_SENDER_REFRESH_TOKEN,
                 sender: str = MAIL_FROM):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.sender = sender

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def get_service(self):
        """Gmail API client; the access token is refreshed on first use"""
        creds = Credentials(
            token=None,
            refresh_token=self.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret
        )
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def send(self, to: str, subject: str, body: str, is_html: bool = True) -> Optional[str]:
        """Send one message, returns the Gmail message id or None when it was not sent"""
        if not self.is_configured:
            logger.debug(f"Mail not configured, skipping '{subject}' to {to}")
            return None
        if not to:
            logger.warning(f"No recipient for '{subject}'")
            return None

        if is_html:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(body, "html"))
        else:
            message = MIMEText(body)
        message["to"] = to
        message["from"] = self.sender
        message["subject"] = subject

        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()
        try:
            sent = self.get_service().users().messages().send(
                userId="me",
                body={"raw": raw}
            ).execute()
        except (HttpError, RefreshError) as e:
            logger.error(f"Failed to send '{subject}' to {to}: {e}")
            return None

        logger.info(f"Sent '{subject}' to {to} ({sent.get('id')})")
        return sent.get("id")

    def send_status_update(self, order: dict, status: str, tracking_number: Optional[str] = None) -> Optional[str]:
        customer = order.get("customer", {})
        number = order["order_number"]
        line = STATUS_LINES.get(status, f"is now {status}")

        body = (
            f"<p>Hi {customer.get('name', 'there')},</p>"
            f"<p>Your order <strong>{number}</strong> {line}.</p>"
        )
        if tracking_number:
            body += f"<p>Tracking number: <strong>{tracking_number}</strong></p>"
        body += f'<p><a href="{FRONTEND_URL}/orders/{order["order_id"]}">View your order</a></p>'

        return self.send(customer.get("email"), f"Order {number} Status Update", body)


mailer = GmailMailer()
