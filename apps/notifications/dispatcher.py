"""
Fire-and-forget notification delivery.

``send`` is the only entry point the lifecycle services use. It defers all
work until the surrounding database transaction commits, so a notification
can neither block nor roll back the transition that produced it. Every
delivery failure is logged and recorded on the Notification row.
"""
import logging
import re
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import transaction
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient
from core.constants import NotificationPriority
from .models import Notification

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^\+\d{9,15}$')


def send(recipient_ids, title, message, priority=NotificationPriority.MEDIUM, metadata=None,
         notification_type='general'):
    """Queue a notification for each recipient once the current transaction commits."""
    recipient_ids = [rid for rid in dict.fromkeys(recipient_ids) if rid is not None]
    if not recipient_ids:
        return
    payload = {
        'title': title,
        'message': message,
        'priority': priority,
        'metadata': metadata or {},
        'notification_type': notification_type,
    }
    transaction.on_commit(lambda: dispatch(recipient_ids, **payload), robust=True)


def dispatch(recipient_ids, title, message, priority, metadata, notification_type):
    User = get_user_model()
    try:
        recipients = list(User.objects.filter(pk__in=recipient_ids))
    except Exception as e:
        logger.error(f"Failed to load notification recipients {recipient_ids}: {str(e)}")
        return
    for user in recipients:
        try:
            notification = Notification.objects.create(
                recipient=user,
                title=title,
                message=message,
                priority=priority,
                metadata=metadata,
                notification_type=notification_type,
            )
        except Exception as e:
            logger.error(f"Failed to store notification for user {user.id}: {str(e)}")
            continue
        deliver(notification)


def deliver(notification):
    """Push a stored notification out by email and SMS."""
    user = notification.recipient
    errors = []

    emailed = bool(user.email) and email_notification(user, notification.title, notification.message)
    if user.email and not emailed:
        errors.append('email')

    if user.phone_number and settings.TWILIO_ACCOUNT_SID:
        if not PHONE_PATTERN.match(user.phone_number):
            logger.warning(f"Invalid phone number format for user {user.id}: {user.phone_number}")
        elif not sms_notification(user, notification.message):
            errors.append('sms')
            # Fall back to email unless it already went out
            if user.email and not emailed and email_notification(user, notification.title, notification.message):
                errors.remove('email')

    try:
        if errors:
            notification.mark_as_failed(f"Delivery failed on: {', '.join(errors)}")
        else:
            notification.mark_as_sent()
    except Exception as e:
        logger.error(f"Failed to record delivery for notification {notification.id}: {str(e)}")


def email_notification(user, subject, message):
    try:
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            fail_silently=False,
        )
        logger.info(f"Email notification sent to {user.email}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {user.email}: {str(e)}")
        return False


def sms_notification(user, message):
    try:
        twilio_client = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        twilio_client.messages.create(
            body=message,
            from_=settings.TWILIO_PHONE_NUMBER,
            to=user.phone_number
        )
        logger.info(f"SMS notification sent to {user.phone_number}")
        return True
    except TwilioRestException as e:
        logger.error(f"Failed to send SMS to {user.phone_number}: {str(e)}")
        return False
    except Exception as e:
        logger.error(f"Unexpected SMS failure for {user.phone_number}: {str(e)}")
        return False
