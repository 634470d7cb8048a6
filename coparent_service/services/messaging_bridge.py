import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
from coparent_service.config import settings
from coparent_service.models.expenses import Expense
from coparent_service.rabbitmq.producer import get_rabbitmq_producer
from coparent_service.services.errors import DependencyFailure, ExpenseValidationError
from coparent_service.services.family_service import get_co_parent_id, get_co_parent_ids

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def format_amount(amount) -> str:
    """Format an amount with the configured currency, e.g. $1,234.50"""
    value = Decimal(str(amount)).quantize(Decimal('0.01'))
    symbol = CURRENCY_SYMBOLS.get(settings.default_currency)
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{value:,.2f} {settings.default_currency}"


def expense_reference(expense: Expense) -> dict:
    """Attachment that lets the messaging UI render a link back to the expense"""
    return {
        "type": "expense_reference",
        "expense_id": expense.id,
        "expense_info": {
            "description": expense.description,
            "amount": str(expense.amount),
            "date": expense.date.isoformat(),
            "category": expense.category
        }
    }


def default_dispute_text(expense: Expense, note: str) -> str:
    return (
        f'I\'ve requested clarification on expense "{expense.description}" for '
        f'{format_amount(expense.amount)} ({expense.category}) dated '
        f'{expense.date.isoformat()}:\n\n{note}'
    )


def _child_ids(db: Session, expense: Expense) -> List[str]:
    from coparent_service.services.expense_service import get_expense_child_ids
    return get_expense_child_ids(db, expense.id)


def resolve_counterpart(db: Session, expense: Expense, actor_id: str) -> Optional[str]:
    """
    The other party of a two-party expense.

    For the payer this is their configured co-parent; for anyone else it is
    the payer.
    """
    if actor_id != expense.paid_by:
        return expense.paid_by
    return get_co_parent_id(db, actor_id, _child_ids(db, expense))


def notify_counterpart(
    db: Session,
    expense: Expense,
    actor_id: str,
    text: Optional[str] = None,
    producer=None,
    kind: str = "dispute"
) -> bool:
    """
    Send a message about an expense to the actor's counterpart.

    Returns True when a message was published and False when sending was
    skipped on purpose: disputing one's own expense, or a payer with no
    co-parent on record. Broker failures raise DependencyFailure.
    """
    if kind == "dispute" and actor_id == expense.paid_by:
        logger.info(f"Expense {expense.id} disputed by its payer, no message sent")
        return False

    receiver_id = resolve_counterpart(db, expense, actor_id)
    if not receiver_id:
        logger.warning(f"No counterpart found for {actor_id} on expense {expense.id}, no message sent")
        return False

    if not text:
        text = f'Regarding expense "{expense.description}" for {format_amount(expense.amount)}'

    producer = producer or get_rabbitmq_producer()
    if not producer.publish_message(actor_id, receiver_id, text, [expense_reference(expense)]):
        raise DependencyFailure("messaging", f"could not deliver {kind} message for expense {expense.id}")

    logger.info(f"Sent {kind} message for expense {expense.id} from {actor_id} to {receiver_id}")
    return True


def share_expense(db: Session, expense: Expense, actor_id: str, message: str, link: str, producer=None) -> List[str]:
    """
    Share an expense link with every co-parent of the expense's children.

    Returns:
        Ids of the co-parents the expense was sent to
    """
    co_parent_ids = get_co_parent_ids(db, actor_id, _child_ids(db, expense))
    if not co_parent_ids:
        raise ExpenseValidationError("No co-parents found for the selected children")

    prefix = f"{message}\n\n" if message else ""
    text = f'{prefix}I\'ve shared an expense: "{expense.description}" for {format_amount(expense.amount)}\n{link}'

    producer = producer or get_rabbitmq_producer()
    for co_parent_id in co_parent_ids:
        if not producer.publish_message(actor_id, co_parent_id, text, [expense_reference(expense)]):
            raise DependencyFailure("messaging", f"could not share expense {expense.id} with {co_parent_id}")

    logger.info(f"Shared expense {expense.id} with {len(co_parent_ids)} co-parent(s)")
    return co_parent_ids
