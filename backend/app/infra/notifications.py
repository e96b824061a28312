# app/infra/notifications.py
"""
Collaborateur de notification — envoi des invitations Pulse.

Contrat : (destinataire, texte de la question, liens de réponse) → bool.
La livraison et le retry sont sous la responsabilité de ce module ;
le moteur n'inspecte pas le statut de livraison au-delà du booléen.
"""
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List, Tuple

from app.core.config import settings

logger = logging.getLogger(__name__)

ResponseLink = Tuple[int, str]     # (score, url)


def build_response_links(token: str, scores) -> List[ResponseLink]:
    """Un lien one-tap par score de l'échelle."""
    return [
        (score, f"{settings.BASE_URL}/pulse/respond?token={token}&score={score}")
        for score in scores
    ]


class NotificationSender:
    """Implémentation SMTP. Remplaçable (tests, autre provider) par tout objet exposant send_pulse_invitation."""

    def send_pulse_invitation(
        self, recipient: str, question_text: str, links: List[ResponseLink]
    ) -> bool:
        message = MIMEMultipart("alternative")
        message["Subject"] = "Votre pulse de la semaine"
        message["From"] = f"Pulse <{settings.EMAIL_FROM}>"
        message["To"] = recipient

        text = "\n".join(
            [question_text, ""] + [f"{score} : {url}" for score, url in links]
        )
        buttons = "".join(
            f'<a href="{url}" style="display:inline-block;margin:4px;padding:10px 14px;'
            f'background-color:#0F172A;color:white;text-decoration:none;border-radius:6px;">{score}</a>'
            for score, url in links
        )
        html = f"""
        <html>
          <body style="font-family: Arial, sans-serif; color: #0F172A;">
            <p style="font-size: 18px;"><strong>{question_text}</strong></p>
            <div style="margin: 24px 0;">{buttons}</div>
            <p style="font-size: 12px; color: #64748B;">Votre réponse est anonyme.</p>
          </body>
        </html>
        """
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT) as server:
                server.starttls()
                if settings.SMTP_USER:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                server.sendmail(settings.EMAIL_FROM, recipient, message.as_string())
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Erreur SMTP pour %s : %s", recipient, e)
            return False
