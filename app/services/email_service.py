import smtplib
import os
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from jinja2 import Environment, FileSystemLoader, select_autoescape
from loguru import logger
from app.core.config import settings

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates", "email")

email_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html", "xml"]),
)


# Helper to get template
def get_template(template_name):
    return email_env.get_template(template_name)


# Helper to send email via SMTP
def send_email_via_smtp(to_email, subject, html_content):
    # Only HOST is required. User/Pass are optional (for Mailpit)
    if not settings.SMTP_HOST:
        logger.warning("SMTP Host not configured. Skipping email.")
        return

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_content, "html"))

    logger.debug(f"Connecting to SMTP: {settings.SMTP_HOST}:{settings.SMTP_PORT}")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.ehlo()

        # TLS only on submission ports; Mailpit (1025) runs without it locally
        if settings.SMTP_PORT in [587, 2525]:
            server.starttls()
            server.ehlo()

        if settings.SMTP_USER and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)

        server.sendmail(settings.EMAILS_FROM_EMAIL, to_email, msg.as_string())

    logger.success(f"Email sent successfully to {to_email}")


# ---------------------------------------------------------
# 1. STATUS UPDATE EMAIL (approval / rejection / info)
# ---------------------------------------------------------
def send_status_update_email(data: dict):
    """
    data requires: name, email, title, message, kind, application_id
    """
    template = get_template("status_update.html")
    context = {
        "name": data.get("name") or "Student",
        "title": data.get("title"),
        "message": data.get("message"),
        "kind": data.get("kind"),
        "application_id": str(data.get("application_id")),
        "update_date": datetime.now().strftime("%d-%m-%Y %I:%M %p"),
        "track_url": f"{settings.FRONTEND_URL}/dashboard",
    }
    html_content = template.render(context)
    send_email_via_smtp(data.get("email"), f"No Dues Application: {data.get('title')}", html_content)


# ---------------------------------------------------------
# 2. APPLICATION SUBMITTED EMAIL
# ---------------------------------------------------------
def send_application_created_email(data: dict):
    """
    data requires: name, email, application_id
    """
    try:
        template = get_template("application_created.html")
        context = {
            "name": data.get("name") or "Student",
            "application_id": str(data.get("application_id")),
            "submission_date": datetime.now().strftime("%d-%m-%Y %I:%M %p"),
            "track_url": f"{settings.FRONTEND_URL}/dashboard",
        }
        html_content = template.render(context)
        send_email_via_smtp(data.get("email"), "Application Submitted Successfully - No Dues", html_content)
    except Exception:
        logger.exception("Error preparing submission email")
