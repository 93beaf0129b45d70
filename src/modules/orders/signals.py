"""Signals for automatic Order status history tracking.

Every path that changes ``Order.status`` through ``save()`` (the order
service, the queue manager, the reconciler) gets an audit row without
having to remember to write one.  Callers may set ``_status_change_notes``
and ``_status_changed_by`` on the instance before saving.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, cast

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from modules.orders.models import Order, OrderStatusHistory

_TRANSIENT_ATTRS = ("_previous_status", "_status_change_notes", "_status_changed_by")


class _OrderStatusAware(Protocol):
    _previous_status: Optional[str]
    _status_change_notes: Optional[str]
    _status_changed_by: Any


@receiver(pre_save, sender=Order)
def _capture_previous_status(sender, instance: Order, **kwargs) -> None:
    status_instance = cast(_OrderStatusAware, instance)
    update_fields = kwargs.get("update_fields")
    if update_fields is not None and "status" not in update_fields:
        status_instance._previous_status = instance.status
        return
    if instance._state.adding:
        status_instance._previous_status = None
        return
    status_instance._previous_status = (
        sender.objects.filter(pk=instance.pk).values_list("status", flat=True).first()
    )


@receiver(post_save, sender=Order)
def _create_status_history(sender, instance: Order, created: bool, **kwargs) -> None:
    previous_status = getattr(instance, "_previous_status", None)
    notes = getattr(instance, "_status_change_notes", None)

    if created or previous_status != instance.status:
        OrderStatusHistory.objects.create(
            order=instance,
            old_status=previous_status,
            new_status=instance.status,
            user=getattr(instance, "_status_changed_by", None),
            notes=notes if notes is not None else ("Order created" if created else ""),
        )

    for attr in _TRANSIENT_ATTRS:
        if hasattr(instance, attr):
            delattr(instance, attr)
