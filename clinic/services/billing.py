"""
Billing aggregation: consultation fee + dispensed medicine + lab tests.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic.exceptions import AlreadyBilled, NotFound, Unauthorized
from clinic.models import (
    Appointment, DispensingItem, Invoice, InvoiceItem, LabReport, User,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
CENT = Decimal('0.01')


def _money(value) -> Decimal:
    return Decimal(value or 0).quantize(CENT)


def _doctor_fee(appointment: Appointment) -> Decimal:
    profile = getattr(appointment.doctor, 'doctor_profile', None)
    return _money(profile.consultation_fee if profile else ZERO)


def invoice_breakdown(appointment_id) -> dict:
    """Everything payable for an appointment, with subtotals.

    Medicine lines come from what was actually issued (batch price at the
    time of issue), lab lines from every report requested for the visit.
    """
    appointment = (
        Appointment.objects.select_related('doctor__doctor_profile', 'patient')
        .filter(id=appointment_id)
        .first()
    )
    if not appointment:
        raise NotFound('Appointment not found')

    doctor_fee = _doctor_fee(appointment)

    medicine_items = []
    dispensed = (
        DispensingItem.objects.filter(dispensing__prescription__appointment=appointment)
        .select_related('inventory__medicine', 'prescription_item__medicine')
        .order_by('id')
    )
    for line in dispensed:
        medicine = None
        if line.inventory_id:
            medicine = line.inventory.medicine
        elif line.prescription_item_id:
            medicine = line.prescription_item.medicine
        name = medicine.brand_name if medicine else 'Medicine'
        medicine_items.append({
            'id': line.id,
            'description': f'Med: {name}',
            'quantity': line.quantity_issued,
            'unitPrice': _money(line.price_at_issue),
            'total': _money(line.line_total),
        })
    medicine_total = sum((m['total'] for m in medicine_items), ZERO)

    lab_items = [
        {'id': r.id, 'description': f'Lab: {r.test_name}', 'status': r.status, 'total': _money(r.price)}
        for r in LabReport.objects.filter(appointment=appointment).order_by('id')
    ]
    lab_total = sum((item['total'] for item in lab_items), ZERO)

    return {
        'appointmentId': appointment.id,
        'patientName': appointment.patient.display_name,
        'doctorName': appointment.doctor.display_name,
        'doctorFee': doctor_fee,
        'medicineItems': medicine_items,
        'medicineTotal': medicine_total,
        'labItems': lab_items,
        'labTotal': lab_total,
        'grandTotal': doctor_fee + medicine_total + lab_total,
        'billed': Invoice.objects.filter(appointment=appointment).exists(),
    }


def breakdown_line_items(breakdown: dict) -> list[dict]:
    lines = [{
        'description': 'Consultation fee',
        'amount': breakdown['doctorFee'],
        'source_type': InvoiceItem.SOURCE_CONSULTATION,
        'source_ref': str(breakdown['appointmentId']),
    }]
    lines += [
        {'description': m['description'], 'amount': m['total'],
         'source_type': InvoiceItem.SOURCE_MEDICINE, 'source_ref': str(m['id'])}
        for m in breakdown['medicineItems']
    ]
    lines += [
        {'description': lab['description'], 'amount': lab['total'],
         'source_type': InvoiceItem.SOURCE_LAB, 'source_ref': str(lab['id'])}
        for lab in breakdown['labItems']
    ]
    return lines


def _check_sources(line_items: list[dict], breakdown: dict) -> None:
    """Each source's lines must add up to that source's subtotal."""
    expected = {
        InvoiceItem.SOURCE_CONSULTATION: breakdown['doctorFee'],
        InvoiceItem.SOURCE_MEDICINE: breakdown['medicineTotal'],
        InvoiceItem.SOURCE_LAB: breakdown['labTotal'],
    }
    billed = dict.fromkeys(expected, ZERO)
    for item in line_items:
        source = item.get('source_type')
        if source not in billed:
            raise ValidationError({'lineItems': [f"Unknown line source: {source or '(none)'}"]})
        billed[source] += _money(item['amount'])
    mismatched = [source for source in expected if billed[source] != expected[source]]
    if mismatched:
        raise ValidationError({'lineItems': [
            f'{source} lines total {billed[source]}, expected {expected[source]}' for source in mismatched
        ]})


def create_invoice(
    receptionist: User,
    appointment_id,
    line_items: Optional[list[dict]],
    total,
    method: str,
) -> Invoice:
    """Record payment for an appointment.

    An appointment is billed once; a second attempt raises
    :class:`AlreadyBilled`.  When ``line_items`` is empty the lines are
    taken from :func:`invoice_breakdown`; supplied lines must match the
    breakdown per source and ``total`` must equal its grand total.
    """
    if getattr(receptionist, 'role', None) != User.ROLE_RECEPTIONIST:
        raise Unauthorized('Only receptionists can create invoices')
    if method not in (Invoice.METHOD_CASH, Invoice.METHOD_CARD):
        raise ValidationError({'method': [f'Unsupported payment method: {method}']})

    with transaction.atomic():
        appointment = Appointment.objects.select_for_update().filter(id=appointment_id).first()
        if not appointment:
            raise NotFound('Appointment not found')
        if Invoice.objects.filter(appointment=appointment).exists():
            logger.warning('Appointment %s already billed; rejected invoice by user %s',
                           appointment.id, receptionist.id)
            raise AlreadyBilled()

        breakdown = invoice_breakdown(appointment.id)
        if not line_items:
            line_items = breakdown_line_items(breakdown)
        line_sum = sum((_money(item['amount']) for item in line_items), ZERO)
        total = _money(total)
        if total != line_sum:
            raise ValidationError({'total': [f'Total {total} does not match the line items ({line_sum})']})
        if total != breakdown['grandTotal']:
            raise ValidationError(
                {'total': [f"Total {total} does not match the amount due ({breakdown['grandTotal']})"]}
            )
        _check_sources(line_items, breakdown)

        invoice = Invoice.objects.create(
            appointment=appointment,
            total_amount=total,
            payment_method=method,
            payment_status=Invoice.PAYMENT_PAID,
            issued_by=receptionist,
            paid_at=timezone.now(),
        )
        InvoiceItem.objects.bulk_create([
            InvoiceItem(
                invoice=invoice,
                description=item['description'][:255],
                amount=_money(item['amount']),
                source_type=item.get('source_type') or '',
                source_ref=str(item.get('source_ref') or ''),
            )
            for item in line_items
        ])

    logger.info('Invoice %s created for appointment %s: %s (%s) by user %s',
                invoice.id, appointment.id, total, method, receptionist.id)
    return invoice
