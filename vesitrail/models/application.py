from vesitrail import db


class ApplicationStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    ALL = (PENDING, APPROVED, REJECTED)


class ApplicationType:
    NEW = "New"
    RENEWAL = "Renewal"

    ALL = (NEW, RENEWAL)


class ConcessionApplication(db.Model):
    """A student's railway concession application.

    Once approved it holds exactly one page of one booklet.
    """

    __tablename__ = "concession_applications"
    __table_args__ = (
        db.UniqueConstraint(
            "concession_booklet_id", "page_offset", name="uq_application_booklet_page"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=ApplicationStatus.PENDING, index=True)
    application_type = db.Column(db.String(20), nullable=False, default=ApplicationType.NEW)
    previous_application_id = db.Column(
        db.Integer, db.ForeignKey("concession_applications.id"), nullable=True
    )
    station = db.Column(db.String(100))
    period_months = db.Column(db.Integer, nullable=False, default=1)

    concession_booklet_id = db.Column(
        db.Integer, db.ForeignKey("concession_booklets.id"), nullable=True, index=True
    )
    # Zero-based page index within the booklet
    page_offset = db.Column(db.Integer, nullable=True)

    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    # Relationships
    student = db.relationship("User", back_populates="applications", foreign_keys=[student_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id])
    booklet = db.relationship("ConcessionBooklet", back_populates="applications")
    previous_application = db.relationship("ConcessionApplication", remote_side=[id])

    @property
    def is_pending(self):
        return self.status == ApplicationStatus.PENDING

    @property
    def page_number(self):
        """One-based page number for display, or None when unassigned."""
        from vesitrail.services.pages import display_number

        if self.page_offset is None:
            return None
        return display_number(self.page_offset)

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "status": self.status,
            "application_type": self.application_type,
            "previous_application_id": self.previous_application_id,
            "station": self.station,
            "period_months": self.period_months,
            "booklet_id": self.concession_booklet_id,
            "page_number": self.page_number,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ConcessionApplication {self.id} ({self.status})>"
