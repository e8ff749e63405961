# agora/security/input_validator.py

import html
import re
from datetime import date

import bleach

# Input validation and sanitisation for user-submitted community content


class InputValidator:
    def __init__(self):
        self.allowed_html_tags = ['b', 'i', 'em', 'strong', 'p', 'br']
        self.allowed_html_attributes = {}

        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'username': re.compile(r'^[A-Za-z0-9_.-]{3,50}$'),
            'room': re.compile(r'^(general|referendum-\d+)$'),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'\bon\w+\s*=', re.IGNORECASE),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]

        cleaned = re.sub(self.patterns['xss_script'], '', input_str)
        cleaned = re.sub(self.patterns['xss_event'], '', cleaned)
        cleaned = bleach.clean(cleaned, tags=self.allowed_html_tags,
                               attributes=self.allowed_html_attributes, strip=True)
        return cleaned.strip()

    def plain_text(self, input_str, max_length=255):
        """Sanitised text with every tag removed and entities escaped once."""
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        stripped = bleach.clean(input_str[:max_length], tags=[], strip=True)
        return html.escape(html.unescape(stripped), quote=False).strip()

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def validate_username(self, username):
        return isinstance(username, str) and bool(self.patterns['username'].match(username))

    def validate_room(self, room):
        return isinstance(room, str) and bool(self.patterns['room'].match(room))

    def _required(self, payload, field):
        if not isinstance(payload, dict):
            raise ValueError("Request body must be a JSON object")
        value = payload.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError(f"Missing required field: {field}")
        return value

    def validate_registration(self, payload):
        username = str(self._required(payload, 'username')).strip()
        email = str(self._required(payload, 'email')).strip().lower()
        password = self._required(payload, 'password')
        if not self.validate_username(username):
            raise ValueError("Username must be 3-50 letters, digits, '.', '_' or '-'")
        if not self.validate_email(email):
            raise ValueError("Invalid email address")
        if not isinstance(password, str):
            raise ValueError("Password must be a string")
        return username, email, password

    def validate_suggestion(self, payload):
        title = self.plain_text(self._required(payload, 'title'), max_length=200)
        if not title:
            raise ValueError("Title must contain text")
        description = self.sanitize_string(payload.get('description') or '', max_length=5000)
        return title, description

    def validate_message(self, payload):
        room = str(payload.get('room') or 'general') if isinstance(payload, dict) else 'general'
        if not self.validate_room(room):
            raise ValueError(f"Unknown chat room: {room}")
        body = self.sanitize_string(self._required(payload, 'body'), max_length=2000)
        if not body:
            raise ValueError("Message must contain text")
        return room, body

    def validate_booking_lead(self, payload):
        raw_date = self._required(payload, 'date')
        try:
            lead_date = date.fromisoformat(str(raw_date))
        except ValueError:
            raise ValueError("Date must be in YYYY-MM-DD format")
        duration = self.plain_text(str(self._required(payload, 'duration')), max_length=50)
        description = self.sanitize_string(self._required(payload, 'description'), max_length=2000)
        if not duration or not description:
            raise ValueError("Duration and description must contain text")
        return lead_date, duration, description
