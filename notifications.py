import logging
import smtplib
from email.message import EmailMessage
from typing import List

from config import settings

logger = logging.getLogger("restaurant.notifications")


def _item_lines(order):
    lines = []
    for item in order.get("items", []):
        text = f"{item['quantity']}x {item.get('menuName') or 'Menu Item'}"
        if item.get("size") and item["size"] != "Medium":
            text += f" ({item['size']})"
        if item.get("addons"):
            text += " + " + ", ".join(a["name"] for a in item["addons"])
        lines.append(f"  {text}  ${item['itemTotal']:.2f}")
    return lines


def _summary(order):
    parts = [
        f"Order Number: #{order['orderNumber']}",
        f"Order Type: {'Delivery' if order['orderType'] == 'delivery' else 'Pickup'}",
        "",
        *_item_lines(order),
        "",
        f"Subtotal: ${order['subtotal']:.2f}",
    ]
    if order.get("deliveryFee"):
        parts.append(f"Delivery: ${order['deliveryFee']:.2f}")
    parts.append(f"Tax: ${order['tax']:.2f}")
    if order.get("discount"):
        parts.append(f"Discount: -${order['discount']:.2f}")
    parts.append(f"Total: ${order['totalPrice']:.2f}")
    if order.get("specialInstructions"):
        parts += ["", f"Special Instructions: {order['specialInstructions']}"]
    return "\n".join(parts)


def build_messages(order: dict, customer_email: str, customer_name: str) -> List[EmailMessage]:
    customer = EmailMessage()
    customer["Subject"] = f"Order Confirmation - #{order['orderNumber']}"
    customer["From"] = settings.mail_from
    customer["To"] = customer_email
    customer.set_content(f"Thank you for your order, {customer_name}!\n\n{_summary(order)}\n")

    admin = EmailMessage()
    admin["Subject"] = f"New Order Received - #{order['orderNumber']}"
    admin["From"] = settings.mail_from
    admin["To"] = settings.admin_email
    admin.set_content(
        f"Customer: {customer_name} <{customer_email}>\n"
        f"Payment Method: {order.get('paymentMethod')}\n\n{_summary(order)}\n"
    )
    return [customer, admin]


def send_order_confirmation(order: dict, customer_email: str, customer_name: str) -> bool:
    """Mail the customer and the restaurant. Returns False when nothing was sent."""
    messages = build_messages(order, customer_email, customer_name)
    if not settings.smtp_host:
        logger.info("SMTP not configured, skipping confirmation emails for %s", order["orderNumber"])
        return False

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_password or "")
            for msg in messages:
                smtp.send_message(msg)
    except (smtplib.SMTPException, OSError):
        # order is already committed here
        logger.exception("Failed to send confirmation emails for %s", order["orderNumber"])
        return False

    logger.info("Confirmation emails sent for %s", order["orderNumber"])
    return True
