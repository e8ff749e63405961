# agora/audit/audit_logger.py

import base64
import hashlib
import json
import logging
import os
import threading

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from agora.governance.records import utcnow

logger = logging.getLogger(__name__)

# Append-only audit trail of governance events: each JSON line carries the hash
# of the previous one and an Ed25519 signature over its own body.


class AuditLogger:
    def __init__(self, log_dir="logs", signing_key=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, "audit.log")
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        last_line = None
        with open(self.log_file, "r") as f:
            for line in f:
                if line.strip():
                    last_line = line
        if last_line is None:
            return
        try:
            self.previous_hash = json.loads(last_line).get("hash")
        except ValueError:
            logger.warning("Audit log %s ends with an unreadable entry", self.log_file)
            self.previous_hash = None

    @staticmethod
    def _body_bytes(entry):
        body = {k: v for k, v in entry.items() if k not in ("hash", "signature")}
        return json.dumps(body, sort_keys=True, default=str).encode()

    def log_event(self, event_type, data, user_id=None):
        """Append an event. Audit failures are logged and never break the caller."""
        try:
            with self._lock:
                entry = {
                    "timestamp": utcnow().isoformat(),
                    "event_type": event_type,
                    "data": data,
                    "user_id": user_id,
                    "previous_hash": self.previous_hash,
                }
                body = self._body_bytes(entry)
                entry["hash"] = hashlib.sha256(body).hexdigest()
                entry["signature"] = base64.b64encode(self.signing_key.sign(body)).decode()

                with open(self.log_file, "a") as f:
                    f.write(json.dumps(entry, default=str) + "\n")

                self.previous_hash = entry["hash"]
        except Exception as e:
            logger.error("Audit log error for %s: %s", event_type, e)

    def entries(self, newest_first=True):
        result = []
        if not os.path.exists(self.log_file):
            return result
        with open(self.log_file, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    result.append(json.loads(line))
                except ValueError:
                    result.append({"raw": line})
        if newest_first:
            result.reverse()
        return result

    def verify_log_integrity(self):
        if not os.path.exists(self.log_file):
            return True
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            with open(self.log_file, "r") as f:
                for line in f:
                    if not line.strip():
                        continue
                    entry = json.loads(line)
                    if entry.get("previous_hash") != previous_hash:
                        return False
                    body = self._body_bytes(entry)
                    if hashlib.sha256(body).hexdigest() != entry.get("hash"):
                        return False
                    public_key.verify(base64.b64decode(entry["signature"]), body)
                    previous_hash = entry["hash"]
        except (ValueError, KeyError, InvalidSignature):
            return False
        return True
