"""Clinical workflow application.

Appointment booking and queueing, the appointment status state machine,
consultation recording, pharmacy dispensing, lab requests and billing.
"""
