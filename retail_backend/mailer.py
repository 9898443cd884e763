# retail_backend/mailer.py
import logging

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()

SMTP_SETTINGS = ('SMTP_HOST', 'SMTP_PORT', 'SMTP_USER', 'SMTP_PASS', 'SMTP_FROM')


class MailNotConfigured(RuntimeError):
    pass


def init_mail(app):
    """Map the SMTP_* settings onto Flask-Mail. Port 465 uses implicit TLS, others STARTTLS."""
    cfg = app.config
    port = int(cfg.get('SMTP_PORT') or 587)
    cfg.update(
        MAIL_SERVER=cfg.get('SMTP_HOST') or 'localhost',
        MAIL_PORT=port,
        MAIL_USE_SSL=port == 465,
        MAIL_USE_TLS=port != 465,
        MAIL_USERNAME=cfg.get('SMTP_USER'),
        MAIL_PASSWORD=cfg.get('SMTP_PASS'),
        MAIL_DEFAULT_SENDER=cfg.get('SMTP_FROM')
    )
    mail.init_app(app)


def mail_configured():
    return all(current_app.config.get(key) for key in SMTP_SETTINGS)


def send_mail(to, subject, text, html=None):
    if not mail_configured():
        raise MailNotConfigured('missing SMTP settings')
    mail.send(Message(subject, recipients=[to], body=text, html=html, sender=current_app.config['SMTP_FROM']))
    logger.info('sent "%s" to %s', subject, to)


def send_password_reset(user, reset_link):
    minutes = current_app.config['RESET_TOKEN_TTL_MINUTES']
    recipient = current_app.config.get('RESET_MAIL_TO') or user.email
    text = (
        f'Hello {user.username},\n\n'
        f'Use the link below to reset your password:\n{reset_link}\n\n'
        f'This link expires in {minutes} minutes.'
    )
    html = (
        f'<p>Hello {user.username},</p>'
        f'<p>Use the link below to reset your password:</p>'
        f'<p><a href="{reset_link}">{reset_link}</a></p>'
        f'<p>This link expires in {minutes} minutes.</p>'
    )
    send_mail(recipient, 'Reset your password', text, html)
