"""
Stock balances derived from the movement ledger.

There is no stored running total: every balance is Σ(in) − Σ(out) over the
matching StockMove rows, computed at read time without locking.
"""

from decimal import Decimal

from django.db.models import Exists, F, OuterRef, Q, Sum

from inventory.models import Product, StockMove

ZERO = Decimal("0")


def _balance_expression(prefix="", extra_filter=None):
    """Σqty(in) − Σqty(out) as an aggregate, optionally across a relation."""
    direction_field = f"{prefix}direction"
    in_filter = Q(**{direction_field: StockMove.Direction.IN})
    out_filter = Q(**{direction_field: StockMove.Direction.OUT})
    if extra_filter is not None:
        in_filter &= extra_filter
        out_filter &= extra_filter

    quantity_field = f"{prefix}quantity"
    return Sum(quantity_field, filter=in_filter, default=ZERO) - Sum(quantity_field, filter=out_filter, default=ZERO)


def current_stock(product_id, warehouse_id=None, branch_id=None) -> Decimal:
    moves = StockMove.objects.filter(product_id=product_id)

    if warehouse_id is not None:
        moves = moves.filter(warehouse_id=warehouse_id)
    if branch_id is not None:
        moves = moves.filter(branch_id=branch_id)

    balance = moves.aggregate(balance=_balance_expression())["balance"]
    return ZERO if balance is None else Decimal(balance)


def stock_levels(branch_id=None, sku=None, warehouse_id=None, low_stock=False):
    """
    Products annotated with their derived ``current_quantity``.

    Aggregation is grouped per product so pagination applies to products, not
    to ledger rows. A warehouse filter keeps only products with movements in that
    warehouse and counts only those movements.
    ``low_stock`` keeps products whose balance is at or below ``minimum_quantity``.
    """
    products = Product.objects.all()
    if branch_id:
        products = products.filter(branch_id=branch_id)
    if sku:
        products = products.filter(sku=sku)

    move_filter = None
    if warehouse_id:
        in_warehouse = StockMove.objects.filter(product_id=OuterRef("pk"), warehouse_id=warehouse_id)
        products = products.filter(Exists(in_warehouse))
        move_filter = Q(stock_moves__warehouse_id=warehouse_id)
    products = products.annotate(current_quantity=_balance_expression("stock_moves__", move_filter))

    if low_stock:
        products = products.filter(current_quantity__lte=F("minimum_quantity"))

    return products.order_by("sku", "id")


def negative_balances(branch_id=None):
    """(product, warehouse) scopes whose derived balance is below zero."""
    moves = StockMove.objects.all()
    if branch_id:
        moves = moves.filter(branch_id=branch_id)

    return (
        moves.values("product_id", "product__sku", "warehouse_id", "warehouse__name", "branch_id")
        .annotate(balance=_balance_expression())
        .filter(balance__lt=0)
        .order_by("product__sku", "warehouse__name")
    )
