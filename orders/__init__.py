"""
Orders module - proposal to order lifecycle.

    from orders.lifecycle import OrderLifecycle
"""
from orders.models import Environment, Order, OrderSide, OrderStatus, OrderType
