"""
Dispensing engine.

Issues medicine against a prescription by drawing from inventory batches
soonest-expiry first.  The stock check, every batch deduction, the
dispensing record and the hand-off of the appointment to ``Completed``
commit together or not at all.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F, Sum
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic.exceptions import (
    AlreadyDispensed, InsufficientStock, NotFound, PersistenceFailure, Unauthorized, WorkflowError,
)
from clinic.models import (
    Appointment, Dispensing, DispensingItem, InventoryBatch, Prescription, User,
)
from clinic.services.workflow import apply_transition, lock_appointment

logger = logging.getLogger(__name__)


class _StockConflict(Exception):
    """A batch changed between locking and the conditional decrement."""


def fifo_batches(medicine_ids, *, for_update: bool = False):
    qs = InventoryBatch.objects.filter(medicine_id__in=medicine_ids, stock_level__gt=0)
    if for_update:
        qs = qs.select_for_update()
    return qs.order_by(F('expiry_date').asc(nulls_last=True), 'id')


def available_stock(medicine_ids) -> dict[int, int]:
    rows = (
        InventoryBatch.objects.filter(medicine_id__in=medicine_ids)
        .values('medicine_id')
        .annotate(total=Sum('stock_level'))
    )
    return {r['medicine_id']: r['total'] or 0 for r in rows}


def plan_allocation(batches, quantity: int) -> list[tuple[InventoryBatch, int]]:
    """Split ``quantity`` over ``batches`` (already in FIFO order).

    Returns ``(batch, take)`` pairs; the caller guarantees enough stock.
    """
    plan = []
    remaining = quantity
    for batch in batches:
        if remaining <= 0:
            break
        if batch.stock_level <= 0:
            continue
        take = min(batch.stock_level, remaining)
        plan.append((batch, take))
        remaining -= take
    if remaining > 0:
        raise _StockConflict(f'short by {remaining}')
    return plan


def _validate_items(prescription: Prescription, items: list[dict]) -> None:
    if not items:
        raise ValidationError({'items': ['Nothing to dispense']})
    non_positive = [item['prescription_item_id'] for item in items if item['quantity'] <= 0]
    if non_positive:
        raise ValidationError({'items': [f'Quantity must be at least 1 for item {i}' for i in non_positive]})
    rx_items = {i.id: i for i in prescription.items.all()}
    requested = defaultdict(int)
    for item in items:
        rx_item = rx_items.get(item['prescription_item_id'])
        if rx_item is None:
            raise NotFound('Prescription item not found on this prescription',
                           prescriptionItemId=item['prescription_item_id'])
        if rx_item.medicine_id != item['medicine_id']:
            raise ValidationError({'items': [f'Medicine does not match prescription item {rx_item.id}']})
        requested[rx_item.id] += item['quantity']
    if settings.DISPENSE_ENFORCE_PRESCRIBED_CAP:
        over = [i for i, qty in requested.items() if qty > rx_items[i].quantity]
        if over:
            raise ValidationError({'items': [
                f'Item {i} asks for {requested[i]} but {rx_items[i].quantity} were prescribed' for i in over
            ]})


def _dispense_once(pharmacist: User, prescription_id, items: list[dict]) -> Dispensing:
    with transaction.atomic():
        prescription = (
            Prescription.objects.select_for_update().filter(id=prescription_id).first()
        )
        if not prescription:
            raise NotFound('Prescription not found')
        if Dispensing.objects.filter(prescription=prescription).exists():
            raise AlreadyDispensed()
        appointment = lock_appointment(prescription.appointment_id)
        _validate_items(prescription, items)

        demand = defaultdict(int)
        for item in items:
            demand[item['medicine_id']] += item['quantity']

        batches_by_medicine = defaultdict(list)
        for batch in fifo_batches(list(demand), for_update=True):
            batches_by_medicine[batch.medicine_id].append(batch)

        shortages = []
        for medicine_id, qty in demand.items():
            available = sum(b.stock_level for b in batches_by_medicine[medicine_id])
            if qty > available:
                shortages.append({'medicineId': medicine_id, 'requested': qty, 'available': available})
        if shortages:
            raise InsufficientStock(shortages=shortages)

        now = timezone.now()
        dispensing = Dispensing.objects.create(
            prescription=prescription,
            pharmacist=pharmacist,
            status=Dispensing.STATUS_ISSUED,
            dispensed_at=now,
        )
        lines = []
        for item in items:
            for batch, take in plan_allocation(batches_by_medicine[item['medicine_id']], item['quantity']):
                updated = InventoryBatch.objects.filter(id=batch.id, stock_level__gte=take).update(
                    stock_level=F('stock_level') - take, updated_at=now,
                )
                if updated != 1:
                    raise _StockConflict(f'batch {batch.id}')
                batch.stock_level -= take
                lines.append(DispensingItem(
                    dispensing=dispensing,
                    prescription_item_id=item['prescription_item_id'],
                    inventory=batch,
                    quantity_issued=take,
                    price_at_issue=batch.unit_price,
                ))
        DispensingItem.objects.bulk_create(lines)

        apply_transition(appointment, Appointment.STATUS_COMPLETED, pharmacist, reason='medicines dispensed')
    return dispensing


def dispense_prescription(pharmacist: User, prescription_id, items: list[dict], *, attempts: Optional[int] = None) -> Dispensing:
    """Dispense ``items`` (``prescription_item_id``, ``medicine_id``, ``quantity``).

    All-or-nothing: if any medicine lacks stock across its batches nothing
    is deducted and :class:`InsufficientStock` is raised.
    """
    if getattr(pharmacist, 'role', None) != User.ROLE_PHARMACIST:
        raise Unauthorized('Only pharmacists can dispense')
    attempts = max(1, attempts or settings.DISPENSE_MAX_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            dispensing = _dispense_once(pharmacist, prescription_id, items)
        except _StockConflict as exc:
            logger.warning('Stock changed while dispensing prescription %s (%s), attempt %s/%s',
                           prescription_id, exc, attempt, attempts)
            continue
        except (WorkflowError, ValidationError) as exc:
            logger.warning('Dispensing prescription %s rejected: %s', prescription_id, exc)
            raise
        except DatabaseError as exc:
            logger.exception('Dispensing prescription %s failed', prescription_id)
            raise PersistenceFailure() from exc
        logger.info('Dispensed prescription %s as dispensing %s by user %s',
                    prescription_id, dispensing.id, pharmacist.id)
        return dispensing
    raise InsufficientStock('Stock changed while dispensing, please retry')


def prescription_detail(appointment_id) -> dict:
    prescription = (
        Prescription.objects.select_related('appointment', 'doctor')
        .prefetch_related('items__medicine')
        .filter(appointment_id=appointment_id)
        .first()
    )
    if not prescription:
        raise NotFound('No prescription for this appointment')
    items = list(prescription.items.all())
    medicine_ids = {i.medicine_id for i in items}
    stock = available_stock(medicine_ids)
    return {
        'id': prescription.id,
        'appointmentId': prescription.appointment_id,
        'doctorName': prescription.doctor.display_name,
        'dispensed': Dispensing.objects.filter(prescription=prescription).exists(),
        'items': [
            {
                'id': i.id,
                'medicineId': i.medicine_id,
                'medicine': i.medicine.brand_name,
                'genericName': i.medicine.generic_name,
                'unit': i.medicine.unit,
                'dosage': i.dosage,
                'frequency': i.frequency,
                'durationDays': i.duration_days,
                'quantity': i.quantity,
                'available': stock.get(i.medicine_id, 0),
            }
            for i in items
        ],
        'inventory': [
            {
                'id': b.id,
                'medicineId': b.medicine_id,
                'batchNumber': b.batch_number,
                'expiryDate': b.expiry_date.isoformat() if b.expiry_date else None,
                'stockLevel': b.stock_level,
                'unitPrice': str(b.unit_price),
            }
            for b in fifo_batches(medicine_ids)
        ],
    }
