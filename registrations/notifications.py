"""Outbound notifications for registration decisions.

The dispatcher is loaded from ``EXPOHUB_NOTIFICATION_DISPATCHER``. Any class
exposing ``notify_approved``, ``notify_rejected`` and ``notify_cancelled``
(each taking a recipient address and a context dict) can replace the default
mail implementation.
"""

from django.conf import settings
from django.core.mail import send_mail
from django.utils.module_loading import import_string

DEFAULT_DISPATCHER = "registrations.notifications.EmailNotificationDispatcher"


class EmailNotificationDispatcher:
    def _send(self, email, subject, lines):
        return send_mail(
            subject=subject,
            message="\n".join(lines),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
            fail_silently=False,
        )

    def notify_approved(self, email, context):
        lines = [
            f"Hello {context['exhibitor_name']},",
            "",
            f"Your registration for {context['event_name']} has been approved.",
            "You can now select your stands and equipment.",
        ]
        if context.get("event_start"):
            lines.append(f"The event starts on {context['event_start']}.")
        return self._send(email, f"Registration approved for {context['event_name']}", lines)

    def notify_rejected(self, email, context):
        lines = [
            f"Hello {context['exhibitor_name']},",
            "",
            f"Your registration for {context['event_name']} was not accepted.",
            f"Reason: {context.get('reason') or 'not provided'}",
        ]
        return self._send(email, f"Registration status for {context['event_name']}", lines)

    def notify_cancelled(self, email, context):
        lines = [
            f"Hello {context['exhibitor_name']},",
            "",
            f"Your registration for {context['event_name']} has been cancelled by the {context['cancelled_by']}.",
        ]
        if context.get("reason"):
            lines.append(f"Reason: {context['reason']}")
        return self._send(email, f"Registration cancelled for {context['event_name']}", lines)


def get_dispatcher():
    path = getattr(settings, "EXPOHUB_NOTIFICATION_DISPATCHER", DEFAULT_DISPATCHER) or DEFAULT_DISPATCHER
    return import_string(path)()
