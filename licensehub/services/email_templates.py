"""
HTML email templates keyed by name.

Each renderer takes the notification params and returns
``(subject, html_body)``.  Missing params render as empty strings so a
malformed notification still produces a readable email.
"""

from collections.abc import Callable
from typing import Any

from licensehub.core.config import settings

Renderer = Callable[[dict[str, Any]], tuple[str, str]]


def _layout(title: str, body: str) -> str:
    return f"""\
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #2c3e50;">{title}</h2>
            {body}
            <p style="color: #7f8c8d; font-size: 13px;">The {settings.APP_NAME} team</p>
        </div>
    </body>
    </html>
    """


def welcome(params: dict[str, Any]) -> tuple[str, str]:
    name = params.get("full_name") or params.get("email", "")
    login_link = f"{settings.FRONTEND_URL}/login"
    body = f"""
            <p>Hi {name},</p>
            <p>Your <strong>{settings.APP_NAME}</strong> account is ready.</p>
            <div style="text-align: center; margin: 30px 0;">
                <a href="{login_link}"
                   style="background-color: #3498db; color: #fff; padding: 12px 30px;
                          text-decoration: none; border-radius: 5px; font-size: 16px;">
                    Sign in
                </a>
            </div>
    """
    return f"Welcome to {settings.APP_NAME}", _layout("Welcome!", body)


def reset_password(params: dict[str, Any]) -> tuple[str, str]:
    name = params.get("full_name") or params.get("email", "")
    minutes = params.get("expires_minutes", 10)
    body = f"""
            <p>Hi {name},</p>
            <p>We received a request to reset your password. Your verification code is:</p>
            <div style="background-color: #f4f4f4; padding: 10px; margin: 20px 0;
                        font-size: 24px; text-align: center;">
                <strong>{params.get("code", "")}</strong>
            </div>
            <p>This code is valid for {minutes} minutes.
               If you did not ask for it, you can ignore this email.</p>
    """
    return f"{settings.APP_NAME} - password reset code", _layout("Reset your password", body)


def account_deactivation(params: dict[str, Any]) -> tuple[str, str]:
    reason = params.get("reason") or "no reason given"
    body = f"""
            <p>Your account has been deactivated ({reason}).</p>
            <p>All active sessions were signed out.  You can register again with
               this address at any time.</p>
    """
    return f"{settings.APP_NAME} - account deactivated", _layout("Account deactivated", body)


def user_deletion(params: dict[str, Any]) -> tuple[str, str]:
    reason = params.get("reason") or "no reason given"
    body = f"""
            <p>An administrator has deleted your account ({reason}).</p>
            <p>Contact support if you believe this is a mistake.</p>
    """
    return f"{settings.APP_NAME} - account deleted", _layout("Account deleted", body)


def license_request_submitted(params: dict[str, Any]) -> tuple[str, str]:
    body = f"""
            <p>User <strong>{params.get("email", "")}</strong> submitted a
               <strong>{params.get("request_type", "")}</strong> license request.</p>
            <ul>
                <li>Seats: {params.get("requested_members", "")}</li>
                <li>Duration: {params.get("duration", "")}</li>
            </ul>
    """
    return f"{settings.APP_NAME} - new license request", _layout("License request pending", body)


def license_request_processed(params: dict[str, Any]) -> tuple[str, str]:
    outcome = params.get("status", "")
    body = f"""
            <p>Your <strong>{params.get("request_type", "")}</strong> license request
               for {params.get("requested_members", "")} seat(s) was
               <strong>{outcome}</strong>.</p>
    """
    return f"{settings.APP_NAME} - license request {outcome}", _layout("License request update", body)


TEMPLATES: dict[str, Renderer] = {
    "welcome": welcome,
    "reset_password": reset_password,
    "account_deactivation": account_deactivation,
    "user_deletion": user_deletion,
    "license_request_submitted": license_request_submitted,
    "license_request_processed": license_request_processed,
}


def render(template_key: str, params: dict[str, Any]) -> tuple[str, str]:
    try:
        renderer = TEMPLATES[template_key]
    except KeyError:
        raise ValueError(f"Unknown email template: {template_key}") from None
    return renderer(params)
