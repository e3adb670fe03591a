import logging
import smtplib
from email.message import EmailMessage
from html import escape
from typing import Callable

from app.config import settings
from app.models import Order, Refund
from app.services.elurc import explorer_tx_url, format_elurc

logger = logging.getLogger(__name__)


def _order_link(order: Order) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/orders/{order.id}"


def _send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
        smtp.ehlo()
        if settings.SMTP_USE_TLS:
            smtp.starttls()
            smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)


def notify(sender: Callable[..., None], *args, **kwargs) -> bool:
    """Run an email sender, logging instead of raising on failure."""
    try:
        sender(*args, **kwargs)
    except Exception:
        logger.exception("Failed to send %s", getattr(sender, "__name__", "email"))
        return False
    return True


def send_order_confirmation(order: Order) -> None:
    name = order.shipping_full_name or "there"
    lines = [f"- {item.product.name if item.product else 'Product'} x {item.quantity}" for item in order.items]
    text = (
        f"Hi {name},\n\n"
        f"Your payment for order {order.order_number} has been confirmed.\n\n"
        + "\n".join(lines)
        + f"\n\nTotal: {format_elurc(order.amount_elurc)} ELURC\n"
        f"Transaction: {order.transaction_signature or '-'}\n\n"
        f"Track your order: {_order_link(order)}"
    )
    html = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Your payment for order <strong>{escape(order.order_number)}</strong> has been confirmed.</p>"
        "<ul>" + "".join(f"<li>{escape(line[2:])}</li>" for line in lines) + "</ul>"
        f"<p>Total: <strong>{format_elurc(order.amount_elurc)} ELURC</strong></p>"
        f"<p><a href=\"{_order_link(order)}\">Track your order</a></p>"
    )
    _send_email(
        to_email=order.customer_email,
        subject=f"Order #{order.order_number} Confirmed - ELURC Market",
        text_body=text,
        html_body=html,
    )


def send_shipping_confirmation(order: Order) -> None:
    name = order.shipping_full_name or "Customer"
    tracking = order.tracking_number or "not provided"
    text = (
        f"Hi {name},\n\n"
        f"Your order {order.order_number} has been shipped.\n"
        f"Tracking number: {tracking}\n\n"
        f"Order details: {_order_link(order)}"
    )
    html = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Your order <strong>{escape(order.order_number)}</strong> has been shipped.</p>"
        f"<p>Tracking number: {escape(tracking)}</p>"
    )
    _send_email(
        to_email=order.customer_email,
        subject=f"Order {order.order_number} has been shipped!",
        text_body=text,
        html_body=html,
    )


def send_order_cancelled(order: Order, reason: str | None) -> None:
    text = f"Your order {order.order_number} has been cancelled.\n"
    if reason:
        text += f"Reason: {reason}\n"
    text += "\nIf you have any questions, please contact our support team."
    html = f"<p>Your order <strong>{escape(order.order_number)}</strong> has been cancelled.</p>"
    if reason:
        html += f"<p><strong>Reason:</strong> {escape(reason)}</p>"
    _send_email(
        to_email=order.customer_email,
        subject=f"Order {order.order_number} has been cancelled",
        text_body=text,
        html_body=html,
    )


def send_refund_notification(order: Order, refund: Refund) -> None:
    amount = format_elurc(refund.amount)
    text = (
        f"A refund of {amount} ELURC for order {order.order_number} has been sent to "
        f"{refund.wallet_address}.\n"
        f"Transaction: {explorer_tx_url(refund.transaction_signature or '')}\n"
    )
    if refund.reason:
        text += f"Reason: {refund.reason}\n"
    _send_email(
        to_email=order.customer_email,
        subject=f"Refund Processed - Order {order.order_number}",
        text_body=text,
    )


def send_customer_underpayment(order: Order) -> None:
    shortage = format_elurc(abs(order.discrepancy_difference_amount or 0))
    text = (
        f"We received {format_elurc(order.discrepancy_received_amount or 0)} ELURC for order "
        f"{order.order_number}, which is {shortage} ELURC less than the order total of "
        f"{format_elurc(order.amount_elurc)} ELURC.\n\n"
        "Our team is reviewing the payment and will contact you shortly."
    )
    _send_email(
        to_email=order.customer_email,
        subject=f"Payment review needed - Order {order.order_number}",
        text_body=text,
    )


def send_customer_overpayment(order: Order) -> None:
    excess = format_elurc(order.discrepancy_difference_amount or 0)
    text = (
        f"We received {format_elurc(order.discrepancy_received_amount or 0)} ELURC for order "
        f"{order.order_number}, which is {excess} ELURC more than the order total.\n\n"
        "The excess amount will be refunded to your wallet."
    )
    _send_email(
        to_email=order.customer_email,
        subject=f"Overpayment received - Order {order.order_number}",
        text_body=text,
    )


def send_admin_payment_discrepancy(order: Order) -> None:
    if not settings.ADMIN_NOTIFICATION_EMAIL:
        logger.info("ADMIN_NOTIFICATION_EMAIL is not set, skipping discrepancy alert for %s", order.order_number)
        return
    title = "Overpayment Detected" if order.discrepancy_type == "overpayment" else "Underpayment Detected"
    difference = order.discrepancy_difference_amount or 0
    sign = "+" if difference > 0 else ""
    text = (
        f"{title} for order {order.order_number}\n\n"
        f"Expected: {format_elurc(order.discrepancy_expected_amount or 0)} ELURC\n"
        f"Received: {format_elurc(order.discrepancy_received_amount or 0)} ELURC\n"
        f"Difference: {sign}{format_elurc(difference)} ELURC\n\n"
        f"Customer email: {order.customer_email}\n"
        f"Customer wallet: {order.customer_wallet}\n"
        f"Transaction: {explorer_tx_url(order.transaction_signature or '')}\n"
    )
    _send_email(
        to_email=settings.ADMIN_NOTIFICATION_EMAIL,
        subject=f"[Action required] {title} - Order {order.order_number}",
        text_body=text,
    )
