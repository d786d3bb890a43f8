import asyncio
import smtplib
import httpx
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, TYPE_CHECKING
from decimal import Decimal
import logging

if TYPE_CHECKING:
    from app.schemas.payment import PaidOrderSnapshot
    from app.services.attribution_service import ResolvedAttribution
    from app.services.totals_service import PaymentTotals

logger = logging.getLogger(__name__)

PLACEHOLDER = "—"


class EmailService:
    """Email service for sending transactional emails via SMTP."""

    def __init__(
        self,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "Storefront"
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email over SMTP.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body of the email
            text_content: Plain text body (optional fallback)

        Returns:
            True if email sent successfully, False otherwise
        """
        if not self.is_configured:
            logger.warning("Email not configured. SMTP credentials missing.")
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to_email

        if text_content:
            msg.attach(MIMEText(text_content, 'plain'))
        msg.attach(MIMEText(html_content, 'html'))

        try:
            # Connect and send with timeout
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP Authentication failed. Check email credentials.")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            return False
        except OSError as e:
            # Includes socket timeouts
            logger.error(f"Network error sending email: {e}")
            return False


class SMSService:
    """SMS service using MSG91 API (India DLT compliant)."""

    def __init__(
        self,
        auth_key: str = "",
        sender_id: str = "STRFNT",
        timeout: float = 10.0
    ):
        self.auth_key = auth_key
        self.sender_id = sender_id
        self.timeout = timeout
        self.base_url = "https://control.msg91.com/api/v5/flow/"

    async def send_sms(
        self,
        phone: str,
        template_id: str,
        variables: Dict[str, str]
    ) -> bool:
        """
        Send SMS via MSG91.

        Args:
            phone: Phone number (10 digits)
            template_id: DLT registered template ID
            variables: Template variables (VAR1, VAR2, etc.)

        Returns:
            True if sent successfully
        """
        if not self.auth_key:
            logger.warning("MSG91 auth key not configured, skipping SMS")
            return False

        # Normalize phone number
        phone = phone.replace(" ", "").replace("-", "")
        if phone.startswith("+91"):
            phone = phone[3:]
        elif phone.startswith("91") and len(phone) == 12:
            phone = phone[2:]

        headers = {
            "authkey": self.auth_key,
            "Content-Type": "application/json"
        }
        payload = {
            "template_id": template_id,
            "sender": self.sender_id,
            "mobiles": f"91{phone}",
            **variables
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send SMS to {phone}: {e}")
            return False

        if response.status_code == 200:
            logger.info(f"SMS sent to {phone}")
            return True
        logger.error(f"SMS failed: {response.text}")
        return False

    async def send_order_confirmation_sms(
        self,
        phone: str,
        template_id: str,
        order_number: str,
        amount: Decimal
    ) -> bool:
        """Send order confirmation SMS."""
        return await self.send_sms(
            phone,
            template_id,
            {
                "VAR1": order_number,
                "VAR2": f"{float(amount):,.0f}"
            }
        )


def _money(amount: Optional[Decimal], currency: str = "INR") -> str:
    if amount is None:
        return PLACEHOLDER
    symbol = "₹" if currency == "INR" else f"{currency} "
    return f"{symbol}{amount:,.2f}"


def _or_placeholder(value) -> str:
    return PLACEHOLDER if value is None or value == "" else str(value)


class OrderNotifier:
    """
    Post-payment notifications: buyer receipt (email + SMS) and the
    internal new-sale alert.

    Sends are best effort; the caller bounds and isolates each one.
    """

    def __init__(
        self,
        email_service: EmailService,
        sms_service: SMSService,
        sales_alert_email: str = "",
        sms_template_id: str = "",
        d2c_url: str = "",
    ):
        self.email_service = email_service
        self.sms_service = sms_service
        self.sales_alert_email = sales_alert_email
        self.sms_template_id = sms_template_id
        self.d2c_url = d2c_url

    async def send_receipt(self, order: "PaidOrderSnapshot", totals: "PaymentTotals") -> bool:
        """Email (and SMS, when a template is configured) the buyer's receipt."""
        sent = False
        if order.customer_email:
            subject = f"Payment received - {order.order_number}"
            html_content = f"""
            <html>
            <body style="font-family: 'Segoe UI', Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
                <h2>Thank you{', ' + order.customer_name if order.customer_name else ''}!</h2>
                <p>We have received your payment for order <strong>{order.order_number}</strong>.</p>
                <table style="width: 100%; border-collapse: collapse;">
                    <tr><td>Subtotal</td><td style="text-align: right;">{_money(totals.subtotal, order.currency)}</td></tr>
                    <tr><td>Discount</td><td style="text-align: right;">-{_money(totals.discount_amount, order.currency)}</td></tr>
                    <tr><td>Shipping</td><td style="text-align: right;">{_money(totals.shipping_fee, order.currency)}</td></tr>
                    <tr><td><strong>Total paid</strong></td><td style="text-align: right;"><strong>{_money(totals.total, order.currency)}</strong></td></tr>
                </table>
                <p>Payment reference: {_or_placeholder(order.gateway_payment_id)}</p>
                <p><a href="{self.d2c_url}/account/orders/{order.id}">View your order</a></p>
            </body>
            </html>
            """
            text_content = (
                f"Payment received for order {order.order_number}. "
                f"Total paid: {_money(totals.total, order.currency)}."
            )
            sent = await asyncio.to_thread(
                self.email_service.send_email,
                order.customer_email,
                subject,
                html_content,
                text_content,
            )

        if self.sms_template_id and order.customer_phone:
            sms_sent = await self.sms_service.send_order_confirmation_sms(
                phone=order.customer_phone,
                template_id=self.sms_template_id,
                order_number=order.order_number,
                amount=totals.total,
            )
            sent = sent or sms_sent

        return sent

    async def send_internal_alert(
        self,
        order: "PaidOrderSnapshot",
        attribution: Optional["ResolvedAttribution"],
        commission_amount: Optional[Decimal] = None,
    ) -> bool:
        """Tell the sales inbox about the sale and who it is attributed to."""
        if not self.sales_alert_email:
            logger.info("Sales alert email not configured, skipping internal alert")
            return False

        influencer = attribution.influencer_id if attribution else None
        promo = attribution.promo_code_id if attribution else None
        discount = f"{attribution.discount_percent}%" if attribution else PLACEHOLDER
        commission = f"{attribution.commission_percent}%" if attribution else PLACEHOLDER

        subject = f"New sale {order.order_number} - {_money(order.total, order.currency)}"
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h3>New paid order {order.order_number}</h3>
            <ul>
                <li>Customer: {_or_placeholder(order.customer_name)} ({_or_placeholder(order.customer_email)})</li>
                <li>Total: {_money(order.total, order.currency)}</li>
                <li>Discount: {_money(order.discount_total, order.currency)}</li>
                <li>Influencer: {_or_placeholder(influencer)}</li>
                <li>Promo code: {_or_placeholder(promo)}</li>
                <li>Discount %: {discount}</li>
                <li>Commission %: {commission}</li>
                <li>Commission: {_money(commission_amount, order.currency)}</li>
            </ul>
        </body>
        </html>
        """
        return await asyncio.to_thread(
            self.email_service.send_email,
            self.sales_alert_email,
            subject,
            html_content,
        )


def get_email_service() -> EmailService:
    """Get configured email service instance."""
    from app.config import settings

    return EmailService(
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        from_email=settings.SMTP_FROM_EMAIL,
        from_name=settings.SMTP_FROM_NAME,
    )


def get_sms_service() -> SMSService:
    """Get configured SMS service instance."""
    from app.config import settings

    return SMSService(
        auth_key=settings.MSG91_AUTH_KEY,
        sender_id=settings.MSG91_SENDER_ID,
        timeout=settings.NOTIFIER_TIMEOUT_SECONDS,
    )


def get_order_notifier() -> OrderNotifier:
    """Get the notifier used after payment confirmation."""
    from app.config import settings

    return OrderNotifier(
        email_service=get_email_service(),
        sms_service=get_sms_service(),
        sales_alert_email=settings.SALES_ALERT_EMAIL,
        sms_template_id=settings.MSG91_TEMPLATE_ID_ORDER_CONFIRMED,
        d2c_url=settings.D2C_FRONTEND_URL,
    )
