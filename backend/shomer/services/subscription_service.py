"""Subscription service - decides which users get automatic scheduling"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from shomer.core.config import settings
from shomer.models.subscription import Subscription
from shomer.models.user import User

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("active", "trialing")


def is_subscription_eligible(subscription: Optional[Subscription]) -> bool:
    """True if the subscription's plan includes automation and it is in good standing"""
    if subscription is None:
        return False
    return subscription.plan_type in settings.AUTOMATION_PLAN_TYPES and subscription.status in ACTIVE_STATUSES


def is_eligible_for_automation(user_id: int, db: Session) -> bool:
    """Check whether a user's subscription tier allows automatic hide/restore"""
    subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    return is_subscription_eligible(subscription)


def get_eligible_user_ids(db: Session) -> List[int]:
    """All users eligible for automation, in a single query"""
    rows = db.query(User.id).join(Subscription, Subscription.user_id == User.id).filter(
        Subscription.plan_type.in_(settings.AUTOMATION_PLAN_TYPES),
        Subscription.status.in_(ACTIVE_STATUSES)
    ).order_by(User.id).all()
    return [row[0] for row in rows]
