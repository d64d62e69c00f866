"""
Order confirmation side channel: customer email and the WhatsApp deep link.

Neither is part of the checkout transaction. Email delivery is best effort
and its failures are logged by the caller, never raised to the shopper.
"""
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional
from urllib.parse import quote

import config

logger = logging.getLogger(__name__)


def format_amount(amount) -> str:
    amount = float(amount)
    if amount.is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def order_summary(order: dict) -> str:
    return (
        "Send to confirm your order!\n"
        f"Order ID: {order['id']}\n"
        f"FirstName: {order.get('firstName') or ''}\n"
        f"LastName: {order.get('lastName') or ''}\n"
        f"PhoneNumber: {order.get('phoneNumber') or ''}\n"
        f"Total Amount: {config.CURRENCY_LABEL} {format_amount(order['totalAmount'])}"
    )


def build_wa_link(order: dict, number: Optional[str] = None) -> str:
    if number is None:
        number = config.WHATSAPP_NUMBER
    text = quote(order_summary(order), safe="!*'()")
    return f"https://wa.me/{number}?text={text}"


def confirmation_html(order: dict) -> str:
    e = html.escape
    name = f"{order.get('firstName') or ''} {order.get('lastName') or ''}".strip()
    items = "".join(
        f"<li>{e(item.get('name') or item['productId'])} - Qty: {item['quantity']} - "
        f"{config.CURRENCY_LABEL} {format_amount(item['price'])}</li>"
        for item in order.get("orderItems", [])
    )
    return f"""
        <h2>Order Confirmation - {e(config.EMAIL_FROM_NAME)}</h2>
        <p>Hi <strong>{e(name)}</strong>, thank you for your order.</p>
        <p><strong>Order ID:</strong> {e(order['id'])}</p>
        <p><strong>Total Amount:</strong> {config.CURRENCY_LABEL} {format_amount(order['totalAmount'])}</p>
        <p><strong>Phone:</strong> {e(order.get('phoneNumber') or '')}</p>
        <p><strong>Address:</strong> {e(order.get('address') or '')}</p>
        <br/>
        <h3>Order Items</h3>
        <ul>{items}</ul>
    """


class EmailNotifier:
    """Sends order confirmations over implicit-TLS SMTP."""

    def __init__(self, host=None, port=None, user=None, password=None, from_name=None, timeout: float = 10):
        self.host = host if host is not None else config.EMAIL_HOST
        self.port = port if port is not None else config.EMAIL_PORT
        self.user = user if user is not None else config.EMAIL_USER
        self.password = password if password is not None else config.EMAIL_PASS
        self.from_name = from_name if from_name is not None else config.EMAIL_FROM_NAME
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user)

    def build_message(self, order: dict) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f'"{self.from_name}" <{self.user}>'
        msg["To"] = order["email"]
        msg["Subject"] = f"Your Order Confirmation - ID {order['id']}"
        msg.set_content(order_summary(order))
        msg.add_alternative(confirmation_html(order), subtype="html")
        return msg

    def send_order_confirmation(self, order: dict) -> bool:
        if not self.configured:
            logger.info("Email not configured, skipping confirmation for order %s", order["id"])
            return False
        with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
            if self.password:
                smtp.login(self.user, self.password)
            smtp.send_message(self.build_message(order))
        logger.info("Confirmation email for order %s sent to %s", order["id"], order["email"])
        return True


def get_notifier() -> EmailNotifier:
    return EmailNotifier()
