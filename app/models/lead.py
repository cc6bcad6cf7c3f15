"""Lead model.

Pipeline: new -> contacted -> qualified -> proposal_sent -> negotiating
          -> won | lost, and converted once a customer is created from it.
"""

from app.extensions import db
from app.models.mixins import OwnedEntityMixin


class Lead(OwnedEntityMixin, db.Model):
    __tablename__ = "leads"

    STATUSES = [
        "new",
        "contacted",
        "qualified",
        "proposal_sent",
        "negotiating",
        "won",
        "lost",
        "converted",
    ]

    SOURCES = [
        "website",
        "referral",
        "google_ads",
        "facebook",
        "direct_mail",
        "cold_call",
        "trade_show",
        "other",
    ]

    first_name = db.Column(db.String(255), nullable=False)
    last_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(255), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    estimated_value = db.Column(db.Float, nullable=True)
    expected_close_date = db.Column(db.Date, nullable=True)
    score = db.Column(db.Integer, nullable=True)
    source = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(50), default="new", nullable=False)

    def __repr__(self):
        return f"<Lead {self.first_name} {self.last_name} ({self.status})>"
