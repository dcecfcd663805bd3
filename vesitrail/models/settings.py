from vesitrail import db


class Settings(db.Model):
    """Application settings stored in the database."""

    __tablename__ = "settings"

    RECONCILE_SCHEDULES = ("", "hourly", "daily", "weekly")

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    @classmethod
    def get(cls, key: str, default: str = None) -> str:
        """Get a setting value by key."""
        setting = cls.query.filter_by(key=key).first()
        return setting.value if setting else default

    @classmethod
    def set(cls, key: str, value: str) -> None:
        """Set a setting value."""
        setting = cls.query.filter_by(key=key).first()
        if setting:
            setting.value = value
        else:
            setting = cls(key=key, value=value)
            db.session.add(setting)
        db.session.commit()

    @classmethod
    def remove(cls, key: str) -> None:
        """Delete a setting if it exists."""
        cls.query.filter_by(key=key).delete()
        db.session.commit()

    # ------------------------------------------------------------------
    # Booklet reconciliation
    # ------------------------------------------------------------------

    @classmethod
    def get_reconcile_schedule(cls) -> str:
        """Return how often booklet statuses are reconciled ('' = never)."""
        schedule = cls.get("booklet_reconcile_schedule", "")
        return schedule if schedule in cls.RECONCILE_SCHEDULES else ""

    @classmethod
    def get_reconcile_status(cls) -> dict:
        return {
            "schedule": cls.get_reconcile_schedule(),
            "last_run": cls.get("booklet_reconcile_last_run", ""),
            "last_updated": cls.get("booklet_reconcile_last_updated", ""),
        }

    def __repr__(self):
        return f"<Settings {self.key}={self.value}>"
