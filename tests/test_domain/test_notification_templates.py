"""
Tests for notification message templates
"""
from tesoreria.domain.notification import NotificationType, render


class TestNotificationTemplates:
    def test_reminder_mentions_days(self):
        type_, title, message = render("REQUEST_REMINDER", description="Pintura", creator="Ana", days=3)
        assert type_ == NotificationType.RECORDATORIO.value
        assert "3 días" in message
        assert "Ana" in message

    def test_rejection_embeds_comment(self):
        type_, title, message = render("REQUEST_REJECTED", description="Pintura", comment="Sin fondos")
        assert type_ == NotificationType.SOLICITUD_RECHAZADA.value
        assert title == "Solicitud rechazada"
        assert message == 'Tu solicitud "Pintura" ha sido rechazada: Sin fondos'
