"""
Management command to populate the database with demo clinic data.
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from clinic.models import DoctorProfile, InventoryBatch, LabTestType, Medicine, PatientProfile, User

DOCTORS = [
    ('dr_perera', 'Nimal', 'Perera', 'General Medicine', Decimal('1500.00')),
    ('dr_silva', 'Kamala', 'Silva', 'Paediatrics', Decimal('2000.00')),
    ('dr_fernando', 'Ruwan', 'Fernando', 'Dermatology', Decimal('2500.00')),
]

MEDICINES = [
    # brand, generic, manufacturer, dosage, frequency, unit, batches (stock, price, days to expiry)
    ('Panadol', 'Paracetamol', 'GSK', '500mg', '1-1-1', 'tablet', [(200, '5.00', 90), (300, '5.50', 400)]),
    ('Amoxil', 'Amoxicillin', 'GSK', '250mg', '1-0-1', 'capsule', [(150, '12.00', 180)]),
    ('Zyrtec', 'Cetirizine', 'UCB', '10mg', '0-0-1', 'tablet', [(80, '8.00', 60), (120, '8.25', 365)]),
    ('Losec', 'Omeprazole', 'AstraZeneca', '20mg', '1-0-0', 'capsule', [(100, '15.00', 240)]),
]

LAB_TESTS = [
    ('Full Blood Count', 'FBC with differential', Decimal('1200.00')),
    ('Fasting Blood Sugar', 'FBS', Decimal('450.00')),
    ('Lipid Profile', 'Total cholesterol, HDL, LDL, triglycerides', Decimal('2200.00')),
    ('Urine Full Report', 'UFR', Decimal('600.00')),
]


class Command(BaseCommand):
    help = 'Populate the database with demo doctors, patients, medicines, stock and lab tests'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='123456', help='Password for every demo account')

    @transaction.atomic
    def handle(self, *args, **options):
        password = make_password(options['password'])
        self.stdout.write('Creating demo data...')

        for username, first, last, specialization, fee in DOCTORS:
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={'role': User.ROLE_DOCTOR, 'first_name': first, 'last_name': last, 'password': password},
            )
            DoctorProfile.objects.update_or_create(
                user=user,
                defaults={'specialization': specialization, 'consultation_fee': fee},
            )
        self.stdout.write(f'  doctors: {len(DOCTORS)}')

        for i in range(1, 6):
            user, _ = User.objects.get_or_create(
                username=f'patient{i}',
                defaults={'role': User.ROLE_PATIENT, 'first_name': f'Patient {i}', 'password': password},
            )
            PatientProfile.objects.get_or_create(user=user, defaults={'contact_number': f'07700000{i:02d}'})
        self.stdout.write('  patients: 5')

        for role in (User.ROLE_PHARMACIST, User.ROLE_RECEPTIONIST, User.ROLE_LAB_ASSISTANT):
            User.objects.get_or_create(username=f'{role}1', defaults={'role': role, 'password': password})

        today = timezone.localdate()
        batches = 0
        for brand, generic, maker, dosage, freq, unit, stock in MEDICINES:
            medicine, _ = Medicine.objects.get_or_create(
                brand_name=brand,
                defaults={
                    'generic_name': generic,
                    'manufacturer': maker,
                    'default_dosage': dosage,
                    'default_frequency': freq,
                    'unit': unit,
                },
            )
            for n, (level, price, days) in enumerate(stock, start=1):
                _, created = InventoryBatch.objects.get_or_create(
                    medicine=medicine,
                    batch_number=f'{brand[:3].upper()}-{n:03d}',
                    defaults={
                        'stock_level': level,
                        'unit_price': Decimal(price),
                        'expiry_date': today + timedelta(days=days),
                    },
                )
                batches += int(created)
        self.stdout.write(f'  medicines: {len(MEDICINES)}, new batches: {batches}')

        for name, description, price in LAB_TESTS:
            LabTestType.objects.get_or_create(name=name, defaults={'description': description, 'price': price})
        self.stdout.write(f'  lab tests: {len(LAB_TESTS)}')

        self.stdout.write(self.style.SUCCESS('Demo data ready.'))
