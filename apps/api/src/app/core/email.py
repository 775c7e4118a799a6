"""
Email Service using Resend

Sends the application lifecycle emails (submission confirmations,
decisions, published admissions). Every sender returns a bool and never
raises for delivery problems; callers treat email as best effort.
"""

import asyncio
import logging
from html import escape

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_BASE_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1e3a8a; margin-bottom: 24px; }
    .success { background-color: #d1fae5; border: 1px solid #22c55e; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .warning { background-color: #fef3c7; border: 1px solid #f59e0b; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .message-box { background-color: #eff6ff; border: 1px solid #bfdbfe; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .button { display: inline-block; background-color: #1e3a8a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""

# Human-readable decision wording per status value
DECISION_LABELS = {
    "under_review": "is now under review",
    "interviewed": "has moved past the interview stage",
    "interview": "has been shortlisted for an interview",
    "accepted": "has been accepted",
    "waitlisted": "has been placed on the waiting list",
    "rejected": "was not successful",
    "hired": "has resulted in a hire",
    "withdrawn": "has been withdrawn",
}


def _render(title: str, body: str) -> str:
    """Wrap a body fragment in the shared email layout."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_BASE_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            {body}
            <div class="footer">
                <p>CareerGuide - Courses and careers in one place</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_application_received(
    to_email: str,
    student_name: str,
    course_name: str,
    application_id: str,
) -> bool:
    """Confirm a course application submission to the student."""
    safe_student_name = escape(student_name)
    safe_course_name = escape(course_name)

    status_url = f"{settings.frontend_url}/student/applications/{application_id}"
    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="success">
                Your application for <strong>{safe_course_name}</strong> has been received.
            </div>

            <p>The institution will review your application and you will be notified
            when a decision is made.</p>

            <a href="{status_url}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Application received: {safe_course_name}",
        html_content=_render("Application Received", body),
    )


async def send_application_decision(
    to_email: str,
    student_name: str,
    course_name: str,
    status: str,
    notes: str | None,
    application_id: str,
) -> bool:
    """Tell the student that their course application changed status."""
    safe_student_name = escape(student_name)
    safe_course_name = escape(course_name)
    decision = DECISION_LABELS.get(status, f"is now {escape(status)}")

    notes_block = f'<div class="message-box">{escape(notes)}</div>' if notes else ""
    status_url = f"{settings.frontend_url}/student/applications/{application_id}"
    body = f"""
            <p>Hello {safe_student_name},</p>

            <p>Your application for <strong>{safe_course_name}</strong> {decision}.</p>

            {notes_block}

            <a href="{status_url}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Update on your application for {safe_course_name}",
        html_content=_render("Application Update", body),
    )


async def send_admission_published(
    to_email: str,
    student_name: str,
    course_name: str,
    application_id: str,
) -> bool:
    """Tell an admitted student that the institution published its admissions."""
    safe_student_name = escape(student_name)
    safe_course_name = escape(course_name)

    results_url = f"{settings.frontend_url}/student/admissions?application={application_id}"
    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="success">
                <strong>Congratulations!</strong> You have been admitted to
                <strong>{safe_course_name}</strong>.
            </div>

            <p>Your admission has been published by the institution. Follow the link
            below for next steps.</p>

            <a href="{results_url}" class="button">View Admission</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Admission confirmed: {safe_course_name}",
        html_content=_render("You're In!", body),
    )


async def send_job_application_received(
    to_email: str,
    student_name: str,
    job_title: str,
    application_id: str,
) -> bool:
    """Confirm a job application submission to the student."""
    safe_student_name = escape(student_name)
    safe_job_title = escape(job_title)

    status_url = f"{settings.frontend_url}/student/jobs/applications/{application_id}"
    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="success">
                Your application for <strong>{safe_job_title}</strong> has been sent to the employer.
            </div>

            <a href="{status_url}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Job application sent: {safe_job_title}",
        html_content=_render("Application Sent", body),
    )


async def send_job_application_decision(
    to_email: str,
    student_name: str,
    job_title: str,
    status: str,
    notes: str | None,
    application_id: str,
) -> bool:
    """Tell the student that their job application changed status."""
    safe_student_name = escape(student_name)
    safe_job_title = escape(job_title)
    decision = DECISION_LABELS.get(status, f"is now {escape(status)}")

    notes_block = f'<div class="message-box">{escape(notes)}</div>' if notes else ""
    status_url = f"{settings.frontend_url}/student/jobs/applications/{application_id}"
    body = f"""
            <p>Hello {safe_student_name},</p>

            <p>Your application for <strong>{safe_job_title}</strong> {decision}.</p>

            {notes_block}

            <a href="{status_url}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Update on your application for {safe_job_title}",
        html_content=_render("Application Update", body),
    )
