import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from inquaire.database import dialect_insert
from inquaire.logging_config import get_logger
from inquaire.models import Customer, Platform

logger = get_logger("customer_service")


def resolve_customer(
    db: Session,
    *,
    business_id: UUID,
    platform: Platform,
    platform_user_id: str,
    display_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Customer, bool]:
    """Find or create the customer for (business, platform, platform user) in one statement.

    Concurrent first contacts race on the unique key and land in the
    ON CONFLICT branch instead of raising. On conflict only display_name
    (when given) moves; contact counters belong to the inquiry transaction.
    Returns the customer and whether this call inserted it.
    """
    now = now or datetime.now(timezone.utc)
    candidate_id = uuid.uuid4()
    insert = dialect_insert(db)

    stmt = insert(Customer).values(
        id=candidate_id,
        business_id=business_id,
        platform=platform.value,
        platform_user_id=platform_user_id,
        display_name=display_name,
        first_contact_at=now,
        last_contact_at=now,
        inquiry_count=0,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["business_id", "platform", "platform_user_id"],
        set_={
            "display_name": func.coalesce(stmt.excluded.display_name, Customer.display_name),
            "updated_at": now,
        },
    ).returning(Customer.id)

    customer_id = db.execute(stmt).scalar_one()
    db.commit()

    created = customer_id == candidate_id
    customer = db.get(Customer, customer_id, populate_existing=True)
    logger.info(
        "Customer resolved",
        extra={
            "context": {
                "customer_id": str(customer_id),
                "business_id": str(business_id),
                "platform": platform.value,
                "created": created,
            }
        },
    )
    return customer, created
