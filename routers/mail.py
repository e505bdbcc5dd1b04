from fastapi import APIRouter, Depends

from schemas import EmailRequest
from mailer import Mailer, get_mailer

router = APIRouter(prefix="/api", tags=["email"])

@router.post("/send-email")
async def send_email(email: EmailRequest, mailer: Mailer = Depends(get_mailer)):
    """Forwards to the email provider; failures come back as an ``error`` body, never retried."""
    return await mailer.send(email.to, email.subject, email.html)
