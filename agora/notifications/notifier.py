# agora/notifications/notifier.py

# Community-wide emails for governance events

import logging

logger = logging.getLogger(__name__)

SITE_NAME = "Democratic Social Network"


class Notifier:
    def __init__(self, users, sender, base_url="http://localhost:5000"):
        self.users = users
        self.sender = sender
        self.base_url = base_url.rstrip("/")

    def _send(self, recipients, subject, body):
        try:
            self.sender.send(recipients, subject, body)
        except Exception:
            logger.exception("Notification %r could not be handed to the sender", subject)

    def _send_to_community(self, subject, body):
        try:
            recipients = self.users.emails()
        except Exception:
            logger.exception("Could not load recipients for %r", subject)
            return
        if not recipients:
            logger.info("No recipients for %r", subject)
            return
        self._send(recipients, subject, body)

    def referendum_approved(self, referendum):
        self._send_to_community(
            f"New Referendum Approved - {SITE_NAME}",
            "A suggestion has reached the required quorum and has been approved for a referendum:\n\n"
            f"{referendum.title}\n\n{referendum.description}\n\n"
            f"Log in at {self.base_url} to vote on this referendum.",
        )

    def referendum_passed(self, referendum, yes_votes, no_votes):
        self._send_to_community(
            f"Referendum Approved - {SITE_NAME}",
            "A referendum has been approved with a two-thirds majority:\n\n"
            f"{referendum.title}\n\n{referendum.description}\n\n"
            f"Yes votes: {yes_votes}\nNo votes: {no_votes}",
        )

    def admin_leaders_changed(self, leaders):
        names = "\n".join(f" - {user.username}" for user in leaders) or " - (none)"
        self._send_to_community(
            f"Admin Team Changed - {SITE_NAME}",
            f"The community has elected a new admin team:\n\n{names}",
        )

    def booking_lead_posted(self, lead):
        self._send_to_community(
            "New Booking Lead Available",
            "A new booking lead has been posted:\n\n"
            f"Date: {lead['date']}\nDuration: {lead['duration']}\n"
            f"Description: {lead['description']}\n\n"
            f"Log in at {self.base_url} to view more details.",
        )

    def email_verification(self, email, token):
        self._send(
            [email],
            f"Email Verification - {SITE_NAME}",
            f"Thank you for registering with {SITE_NAME}.\n\n"
            "Open the link below to verify your email address:\n"
            f"{self.base_url}/api/verify-email?token={token}\n\n"
            "This link will expire in 24 hours.",
        )
