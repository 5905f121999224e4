from django.test import TestCase

from appointments.services.persistence import get_active_patient
from patients.models import Patient
from scheduling.exceptions import NotFoundError


class PatientModelTest(TestCase):
    def setUp(self):
        self.patient = Patient.objects.create(first_name="Ali", last_name="Hassan", phone="0599000000")

    def test_full_name(self):
        self.assertEqual(self.patient.full_name, "Ali Hassan")
        self.assertEqual(str(self.patient), "Ali Hassan")

    def test_active_patient_lookup(self):
        self.assertEqual(get_active_patient(self.patient.id), self.patient)

    def test_inactive_patient_is_not_found(self):
        self.patient.is_active = False
        self.patient.save()
        with self.assertRaises(NotFoundError) as ctx:
            get_active_patient(self.patient.id)
        self.assertEqual(ctx.exception.code, "patient_not_found")

    def test_unknown_patient_is_not_found(self):
        with self.assertRaises(NotFoundError):
            get_active_patient(99999)
