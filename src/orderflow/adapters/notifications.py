"""
Adapter pour les notifications.

Ce module fournit une abstraction sur le transport d'email,
permettant de découpler le worker de notification du mécanisme
d'envoi concret (SMTP ou Amazon SES).

Un échec d'envoi remonte toujours à l'appelant : c'est ce qui
déclenche la relivraison du message par le transport.
"""

from __future__ import annotations

import abc
import smtplib
from email.message import EmailMessage


class AbstractNotifications(abc.ABC):
    """Interface abstraite pour les notifications."""

    @abc.abstractmethod
    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        raise NotImplementedError


class EmailNotifications(AbstractNotifications):
    """Implémentation concrète envoyant des emails via SMTP."""

    def __init__(self, smtp_host: str = "localhost", smtp_port: int = 587, timeout: float = 10.0):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.timeout = timeout

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
            smtp.send_message(msg)


class SesNotifications(AbstractNotifications):
    """Implémentation concrète via Amazon SES (client boto3)."""

    def __init__(self, client):
        self.client = client

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        self.client.send_email(
            Source=sender,
            Destination={"ToAddresses": [recipient]},
            Message={
                "Subject": {"Data": subject},
                "Body": {"Text": {"Data": body}},
            },
        )
