import logging

import requests

from config import Settings

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def password_reset_email(settings: Settings, to_email: str, token: str) -> bool:
    reset_link = f"{settings.frontend_url}/reset-password?token={token}"
    subject = "Reset your Task Manager password"

    html_body = f"""
    <html>
      <body style="font-family: Arial, sans-serif; background-color: #f7f9fc; padding: 40px;">
        <div style="max-width: 600px; margin: auto; background: white; border-radius: 12px;
                    box-shadow: 0 4px 8px rgba(0,0,0,0.05); padding: 30px; text-align: center;">
          <h2 style="color: #333;">Password reset</h2>
          <p style="font-size: 16px; color: #555;">
            You requested to reset your Task Manager password.
            <br><br>
            Click the button below to set a new password. The link expires in
            {settings.reset_token_expire_minutes} minutes.
          </p>

          <a href="{reset_link}"
             style="display:inline-block;margin-top:20px;padding:14px 28px;background-color:#4CAF50;
                    color:white;text-decoration:none;font-weight:bold;border-radius:6px;">
            Reset Password
          </a>

          <p style="margin-top: 30px; color:#777; font-size:14px;">
            If you didn't request this, you can safely ignore this email.
          </p>
        </div>
      </body>
    </html>
    """

    if not settings.email_enabled:
        logger.warning("RESEND_API_KEY or FROM_EMAIL is not set, reset email not sent")
        return False

    try:
        resp = requests.post(
            RESEND_URL,
            headers={
                "Authorization": f"Bearer {settings.resend_api_key}",
                "Content-Type": "application/json",
            },
            json={
                "from": settings.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_body,
            },
            timeout=15,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        # runs as a background task; the reset itself is already committed
        logger.error("Reset email send failed: %r", e)
        return False

    logger.info("Reset email sent, status %s", resp.status_code)
    return True
