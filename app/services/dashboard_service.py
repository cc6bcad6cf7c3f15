"""Dashboard statistics for one staff user."""

from sqlalchemy import func

from app.extensions import db
from app.models.billing import Estimate, Invoice
from app.models.customer import Customer
from app.models.job import Job, Task
from app.models.lead import Lead

ACTIVE_JOB_STATUSES = ("scheduled", "in_progress")


def _count(model, user_id, *criteria):
    return model.query.filter(model.user_id == user_id, *criteria).count()


def _sum(column, model, user_id, *criteria):
    total = (
        db.session.query(func.coalesce(func.sum(column), 0))
        .filter(model.user_id == user_id, *criteria)
        .scalar()
    )
    return float(total or 0)


def get_stats(user_id):
    total_jobs = _count(Job, user_id)
    total_leads = _count(Lead, user_id)
    total_revenue = _sum(Job.total_cost, Job, user_id)

    return {
        "total_jobs": total_jobs,
        "total_revenue": total_revenue,
        "total_leads": total_leads,
        "total_tasks": _count(Task, user_id),
        "completed_jobs": _count(Job, user_id, Job.status == "completed"),
        "active_jobs": _count(Job, user_id, Job.status.in_(ACTIVE_JOB_STATUSES)),
        "conversion_rate": (
            round(total_jobs / total_leads * 100, 2) if total_leads else 0.0
        ),
        "avg_job_value": round(total_revenue / total_jobs, 2) if total_jobs else 0.0,
        "total_estimates": _count(Estimate, user_id),
        "total_customers": _count(Customer, user_id),
        "paid_revenue": _sum(
            Invoice.total_amount, Invoice, user_id, Invoice.payment_status == "paid"
        ),
    }
