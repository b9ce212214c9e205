"""HTML bodies for transactional emails."""

from dataclasses import dataclass
from html import escape


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


_WRAPPER = (
    '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
    "{body}"
    '<hr style="margin: 30px 0; border: none; border-top: 1px solid #e5e7eb;">'
    '<p style="font-size: 12px; color: #9ca3af; text-align: center;">{footer}</p>'
    "</div>"
)


def _benefits(items) -> str:
    rows = "".join(f"<li>&#9989; {escape(item)}</li>" for item in items)
    return f"<ul>{rows}</ul>"


def license_email(to: str, username: str, license_key: str, base_url: str) -> EmailMessage:
    upload_url = f"{base_url.rstrip('/')}/upload.html"
    body = (
        '<h1 style="color: #2563eb; text-align: center;">Welcome to Premium!</h1>'
        f"<p>Hi {escape(username)},</p>"
        "<p>Thank you for upgrading to Cravax Convertly Premium! "
        "Your account has been successfully upgraded.</p>"
        '<div style="background: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        '<h2 style="margin-top: 0;">Your Premium Benefits:</h2>'
        + _benefits([
            "Unlimited PDF conversions",
            "No daily limits",
            "Priority support",
            "All format conversions (Word, Excel, PowerPoint)",
        ])
        + "</div>"
        '<div style="background: #ecfdf5; padding: 15px; border-radius: 8px; margin: 20px 0;">'
        '<h3 style="margin-top: 0; color: #059669;">Your License Key:</h3>'
        f'<code style="display: block; word-break: break-all;">{escape(license_key)}</code>'
        '<p style="font-size: 14px; color: #6b7280;">Keep this license key safe for your records.</p>'
        "</div>"
        f'<p>You can start converting files immediately at <a href="{escape(upload_url)}">{escape(base_url)}</a></p>'
        "<p>Best regards,<br>The Cravax Convertly Team</p>"
    )
    footer = "This email was sent because you purchased a premium subscription to Cravax Convertly."
    return EmailMessage(
        to=to,
        subject="Welcome to Cravax Convertly Premium!",
        html=_WRAPPER.format(body=body, footer=footer),
    )


def welcome_email(to: str, username: str, base_url: str, daily_limit: int = 1) -> EmailMessage:
    upload_url = f"{base_url.rstrip('/')}/upload.html"
    plural = "" if daily_limit == 1 else "s"
    body = (
        '<h1 style="color: #2563eb; text-align: center;">Welcome to Cravax Convertly!</h1>'
        f"<p>Hi {escape(username or 'there')},</p>"
        "<p>Thank you for joining Cravax Convertly! We're excited to help you convert "
        "your PDF files to Word, Excel, and PowerPoint formats.</p>"
        '<div style="background: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        '<h2 style="margin-top: 0;">Your Free Account Includes:</h2>'
        + _benefits([
            f"{daily_limit} PDF conversion{plural} per day",
            "Convert to Word, Excel, or PowerPoint",
            "Files up to 10MB",
            "Secure file processing",
        ])
        + "</div>"
        f'<p style="text-align: center;"><a href="{escape(upload_url)}">Start Converting PDFs</a></p>'
        f'<p>Need unlimited conversions? <a href="{escape(base_url)}">Upgrade to Premium</a> '
        "and get unlimited conversions with no daily limits.</p>"
        "<p>Best regards,<br>The Cravax Convertly Team</p>"
    )
    footer = "You received this email because you signed up for Cravax Convertly."
    return EmailMessage(
        to=to,
        subject="Welcome to Cravax Convertly!",
        html=_WRAPPER.format(body=body, footer=footer),
    )
