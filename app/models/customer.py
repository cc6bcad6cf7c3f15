"""Customer model.

lead_id is set when the customer was converted from a lead.
"""

from app.extensions import db
from app.models.mixins import OwnedEntityMixin


class Customer(OwnedEntityMixin, db.Model):
    __tablename__ = "customers"

    first_name = db.Column(db.String(255), nullable=False)
    last_name = db.Column(db.String(255), nullable=False)
    company_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(255), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    lead_id = db.Column(
        db.String(36), db.ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self):
        return f"<Customer {self.first_name} {self.last_name}>"
