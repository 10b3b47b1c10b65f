import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import models, transaction
from django.utils import timezone

from ..amounts import to_cost, to_money, to_quantity
from ..exceptions import (InsufficientStockError, InvalidAmountError,
                          InvalidQuantityError)
from ..models import Item, StockMovement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiveResult:
    new_stock: Decimal
    new_average_cost: Decimal
    movement: StockMovement


@dataclass(frozen=True)
class ConsumeResult:
    unit_cost: Decimal
    total_cost: Decimal
    new_stock: Decimal
    movement: StockMovement


def _positive_quantity(quantity):
    quantity = to_quantity(quantity)
    if quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


def _lock_item(item):
    locked = Item.objects.select_for_update().get(pk=item.pk)
    if not locked.is_inventory:
        raise InvalidQuantityError(None, f"{locked} does not track stock")
    return locked


def receive(item, quantity, unit_cost, *, movement_date=None, source_type="",
            source_id=None, reference="") -> ReceiveResult:
    """
    Bring stock in and revise the weighted-average cost.

    new_avg = (old_avg × old_stock + unit_cost × qty) / (old_stock + qty);
    when old_stock + qty == 0 the average is left as is.
    """
    quantity = _positive_quantity(quantity)
    unit_cost = to_cost(unit_cost)
    if unit_cost < 0:
        raise InvalidAmountError(unit_cost, "Unit cost cannot be negative")
    movement_date = movement_date or timezone.localdate()

    with transaction.atomic():
        locked = _lock_item(item)
        old_stock = locked.current_stock
        old_average = locked.average_cost
        new_stock = old_stock + quantity

        if new_stock == 0:
            new_average = old_average
        elif old_stock < 0:
            # legacy negative stock carries no usable cost basis
            new_average = unit_cost
        else:
            new_average = to_cost(
                (old_average * old_stock + unit_cost * quantity) / new_stock
            )

        locked.current_stock = new_stock
        locked.average_cost = new_average
        locked.last_purchase_price = unit_cost
        locked.last_purchase_date = movement_date
        locked.save(update_fields=[
            "current_stock", "average_cost", "last_purchase_price", "last_purchase_date",
        ])

        movement = StockMovement.objects.create(
            company=locked.company,
            item=locked,
            movement_type="entry",
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=to_money(quantity * unit_cost),
            movement_date=movement_date,
            source_type=source_type,
            source_id=source_id,
            reference=reference,
        )

    # keep the caller's instance in step with the row
    item.current_stock = new_stock
    item.average_cost = new_average
    logger.debug(
        "Received %s of %s at %s, average now %s",
        quantity, locked, unit_cost, new_average,
    )
    return ReceiveResult(new_stock, new_average, movement)


def consume(item, quantity, *, movement_date=None, source_type="", source_id=None,
            reference="") -> ConsumeResult:
    """
    Take stock out at the current average cost.

    The average read here is the one used for both the stock decrement
    and the COGS amount; exits never change the average.
    """
    quantity = _positive_quantity(quantity)
    movement_date = movement_date or timezone.localdate()

    with transaction.atomic():
        locked = _lock_item(item)
        if quantity > locked.current_stock:
            raise InsufficientStockError(locked, quantity, locked.current_stock)

        unit_cost = locked.average_cost
        total_cost = to_money(quantity * unit_cost)
        new_stock = locked.current_stock - quantity

        locked.current_stock = new_stock
        locked.save(update_fields=["current_stock"])

        movement = StockMovement.objects.create(
            company=locked.company,
            item=locked,
            movement_type="exit",
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            movement_date=movement_date,
            source_type=source_type,
            source_id=source_id,
            reference=reference,
        )

    item.current_stock = new_stock
    return ConsumeResult(unit_cost, total_cost, new_stock, movement)


def reverse_receipt(item, quantity, unit_cost, *, movement_date=None, source_type="",
                    source_id=None, reference="") -> ConsumeResult:
    """
    Take back stock that came in at `unit_cost` (a cancelled purchase).

    The exit is valued at the receipt's cost rather than the current
    average, and the receipt's weight is taken out of the average:
    new_avg = (old_avg × old_stock - unit_cost × qty) / (old_stock - qty).
    """
    quantity = _positive_quantity(quantity)
    unit_cost = to_cost(unit_cost)
    if unit_cost < 0:
        raise InvalidAmountError(unit_cost, "Unit cost cannot be negative")
    movement_date = movement_date or timezone.localdate()

    with transaction.atomic():
        locked = _lock_item(item)
        if quantity > locked.current_stock:
            raise InsufficientStockError(locked, quantity, locked.current_stock)

        old_stock = locked.current_stock
        new_stock = old_stock - quantity
        if new_stock == 0:
            new_average = locked.average_cost
        else:
            new_average = to_cost(
                (locked.average_cost * old_stock - unit_cost * quantity) / new_stock
            )
        if new_average < 0:
            logger.warning(
                "Reversing receipt of %s at %s leaves no cost basis; average reset to 0",
                locked, unit_cost, extra={"company": locked.company_id},
            )
            new_average = to_cost(0)

        locked.current_stock = new_stock
        locked.average_cost = new_average
        locked.save(update_fields=["current_stock", "average_cost"])

        total_cost = to_money(quantity * unit_cost)
        movement = StockMovement.objects.create(
            company=locked.company,
            item=locked,
            movement_type="exit",
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            movement_date=movement_date,
            source_type=source_type,
            source_id=source_id,
            reference=reference,
        )

    item.current_stock = new_stock
    item.average_cost = new_average
    return ConsumeResult(unit_cost, total_cost, new_stock, movement)


def receive_inventory(company, item_ref, quantity, unit_cost, **kwargs) -> ReceiveResult:
    """Tenant-scoped receive; item_ref is an Item or its primary key."""
    pk = item_ref.pk if isinstance(item_ref, Item) else item_ref
    item = Item.objects.for_company(company).get(pk=pk)
    return receive(item, quantity, unit_cost, **kwargs)


def stock_from_movements(item) -> Decimal:
    """Replay the movement history; must equal item.current_stock."""
    sums = StockMovement.objects.filter(item=item).aggregate(
        entries=models.Sum("quantity", filter=models.Q(movement_type="entry")),
        exits=models.Sum("quantity", filter=models.Q(movement_type="exit")),
    )
    return to_quantity(
        (sums["entries"] or Decimal("0")) - (sums["exits"] or Decimal("0"))
    )
