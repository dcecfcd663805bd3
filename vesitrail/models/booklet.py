from vesitrail import db


class BookletStatus:
    AVAILABLE = "Available"
    IN_USE = "InUse"
    DAMAGED = "Damaged"
    EXHAUSTED = "Exhausted"

    ALL = (AVAILABLE, IN_USE, DAMAGED, EXHAUSTED)
    ALLOCATABLE = (IN_USE, AVAILABLE)


class ConcessionBooklet(db.Model):
    """A pre-printed booklet of serially numbered concession slips."""

    __tablename__ = "concession_booklets"

    id = db.Column(db.Integer, primary_key=True)
    booklet_number = db.Column(db.Integer, unique=True, nullable=False, index=True)
    serial_start_number = db.Column(db.String(20), unique=True, nullable=False)
    serial_end_number = db.Column(db.String(20), nullable=False)
    total_pages = db.Column(db.Integer, nullable=False, default=50)
    # Zero-based page indices, kept sorted and unique
    damaged_pages = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default=BookletStatus.AVAILABLE, index=True)
    # Consumption counter, also the optimistic concurrency token for allocation
    applications_count = db.Column(db.Integer, nullable=False, default=0)
    # Where the overlay is stamped on the printed slip
    anchor_x = db.Column(db.Float, nullable=False, default=0)
    anchor_y = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    # Relationships
    applications = db.relationship("ConcessionApplication", back_populates="booklet")

    @property
    def is_damaged(self):
        return self.status == BookletStatus.DAMAGED

    @property
    def usable_pages(self):
        return self.total_pages - len(self.damaged_pages or [])

    def to_dict(self):
        return {
            "id": self.id,
            "booklet_number": self.booklet_number,
            "serial_start_number": self.serial_start_number,
            "serial_end_number": self.serial_end_number,
            "total_pages": self.total_pages,
            "damaged_pages": list(self.damaged_pages or []),
            "status": self.status,
            "applications_count": self.applications_count,
            "anchor_x": self.anchor_x,
            "anchor_y": self.anchor_y,
        }

    def __repr__(self):
        return f"<ConcessionBooklet #{self.booklet_number} {self.serial_start_number}-{self.serial_end_number}>"
