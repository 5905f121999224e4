"""
Race tests for the booking coordinator.

Threads book through separate database connections, so these run as
TransactionTestCase against a real (file-backed) test database.
"""

import asyncio
import threading
from datetime import datetime, time, timedelta

from asgiref.sync import sync_to_async
from django.db import connection
from django.test import TransactionTestCase, override_settings
from django.utils import timezone

from appointments.models import Appointment
from appointments.services import create_appointment, reschedule_appointment
from patients.models import Patient
from providers.models import Provider
from scheduling.exceptions import BookingError, ConflictError
from scheduling.intervals import interval_of, overlaps


@override_settings(SCHEDULING={"LOCK_TIMEOUT_SECONDS": 30})
class ConcurrentBookingTests(TransactionTestCase):
    THREADS = 8

    def setUp(self):
        self.provider = Provider.objects.create(first_name="Ahmad", last_name="Khalil")
        self.patients = [
            Patient.objects.create(first_name=f"Patient{i}", last_name="Test") for i in range(self.THREADS)
        ]
        today = timezone.localdate()
        self.next_monday = today + timedelta(days=(7 - today.weekday()) or 7)

    def at(self, hour, minute=0):
        return datetime.combine(self.next_monday, time(hour, minute), tzinfo=timezone.get_current_timezone())

    def run_in_threads(self, jobs):
        """Start every job at the same moment; collect results and booking errors."""
        barrier = threading.Barrier(len(jobs))
        results, errors = [], []
        guard = threading.Lock()

        def worker(job):
            try:
                barrier.wait()
                outcome = job()
                with guard:
                    results.append(outcome)
            except BookingError as exc:
                with guard:
                    errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(job,)) for job in jobs]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(60)
        return results, errors

    def assert_no_overlaps(self):
        live = list(Appointment.objects.live().filter(provider=self.provider))
        for i, first in enumerate(live):
            for second in live[i + 1:]:
                self.assertFalse(
                    overlaps(interval_of(first), interval_of(second)),
                    f"{first.reference_code} overlaps {second.reference_code}",
                )

    def test_only_one_of_many_same_slot_bookings_succeeds(self):
        jobs = [
            (lambda p=patient: create_appointment(
                patient_id=p.id,
                provider_id=self.provider.id,
                scheduled_at=self.at(10),
                duration_minutes=30,
            ))
            for patient in self.patients
        ]

        results, errors = self.run_in_threads(jobs)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), self.THREADS - 1)
        self.assertTrue(all(isinstance(exc, ConflictError) for exc in errors))
        self.assertEqual(Appointment.objects.filter(provider=self.provider).count(), 1)

    def test_overlapping_offsets_never_double_book(self):
        jobs = [
            (lambda p=patient, minute=minute: create_appointment(
                patient_id=p.id,
                provider_id=self.provider.id,
                scheduled_at=self.at(10, minute),
                duration_minutes=30,
            ))
            for patient, minute in zip(self.patients, (0, 5, 10, 15, 20, 25, 30, 35))
        ]

        results, errors = self.run_in_threads(jobs)

        self.assertEqual(len(results) + len(errors), self.THREADS)
        self.assertTrue(results)
        self.assert_no_overlaps()

    def test_disjoint_slots_all_succeed(self):
        jobs = [
            (lambda p=patient, hour=9 + i: create_appointment(
                patient_id=p.id,
                provider_id=self.provider.id,
                scheduled_at=self.at(hour),
                duration_minutes=30,
            ))
            for i, patient in enumerate(self.patients)
        ]

        results, errors = self.run_in_threads(jobs)

        self.assertEqual(errors, [])
        self.assertEqual(len(results), self.THREADS)

    def test_reschedule_racing_a_booking(self):
        original = create_appointment(
            patient_id=self.patients[0].id,
            provider_id=self.provider.id,
            scheduled_at=self.at(9),
            duration_minutes=30,
        )
        jobs = [
            lambda: reschedule_appointment(original.id, self.at(14)),
            lambda: create_appointment(
                patient_id=self.patients[1].id,
                provider_id=self.provider.id,
                scheduled_at=self.at(14),
                duration_minutes=30,
            ),
        ]

        results, errors = self.run_in_threads(jobs)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 1)
        self.assert_no_overlaps()

    async def test_async_callers_share_the_same_guard(self):
        def book(patient):
            try:
                return create_appointment(
                    patient_id=patient.id,
                    provider_id=self.provider.id,
                    scheduled_at=self.at(11),
                    duration_minutes=30,
                )
            except ConflictError as exc:
                return exc
            finally:
                connection.close()

        outcomes = await asyncio.gather(
            *(sync_to_async(book, thread_sensitive=False)(patient) for patient in self.patients[:4])
        )

        booked = [outcome for outcome in outcomes if isinstance(outcome, Appointment)]
        self.assertEqual(len(booked), 1)
        self.assertEqual(await Appointment.objects.filter(provider=self.provider).acount(), 1)
