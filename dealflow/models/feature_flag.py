"""
Feature Flag Model

Global operator toggles, one row per key. The process engine reads the
``process_enforcement`` flag on every validation call; a missing row means
the configured default.
"""

from datetime import datetime, timezone

from dealflow.models import db


class FeatureFlag(db.Model):
    """Global feature flag value."""
    __tablename__ = "feature_flags"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)  # e.g. "process_enforcement"
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    updated_by = db.Column(db.String(100), default="system")
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "key": self.key,
            "enabled": self.enabled,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
