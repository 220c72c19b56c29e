"""Activity dead-letter model.

When the deferred queue gives up on a payload (retries exhausted, or a
failure that retrying cannot fix), the payload is parked here with the
error so an operator can inspect and replay it. Listed by
`flask activity-dead-letters`.
"""

import uuid

from activity_app.extensions import db


class ActivityDeadLetter(db.Model):
    __tablename__ = "activity_dead_letters"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    payload = db.Column(db.JSON, nullable=False)
    error_class = db.Column(db.String(255), nullable=False)  # e.g. "OperationalError"
    error_message = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    failed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<ActivityDeadLetter {self.error_class} after {self.attempts} attempt(s)>"
