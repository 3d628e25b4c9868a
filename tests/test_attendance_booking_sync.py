import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.cache import cache
from app.core.lab_errors import LabValidationError, NotFoundError
from app.core.time_provider import TimeProvider
from app.db import Base
from app.models import AttendanceRecord, AuthUser, Batch, LabBooking, LabPC, Student
from app.services import attendance_booking_sync_service
from app.services.attendance_booking_sync_service import on_attendance_marked
from app.services.attendance_service import mark_attendance, mark_bulk_attendance
from app.services.lab_availability_service import get_lab_availability


DAY = date(2026, 3, 2)
SLOT = '09:00-10:30'


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt


class _SyncFixture(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_attendance_booking_sync.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        cache.invalidate_prefix('lab_availability')
        self.db = self._session_factory()
        for table in (LabBooking, AttendanceRecord, Student, Batch, LabPC, AuthUser):
            self.db.query(table).delete()
        self.db.commit()
        self.clock = FixedTimeProvider(datetime(2026, 3, 2, 9, 15, 0))
        self.batch = Batch(name='CS Batch A', timing=SLOT)
        self.other_batch = Batch(name='CS Batch B', timing='14:00-15:30')
        self.pc1 = LabPC(pc_number='CS-01', row_number=1)
        self.db.add_all([self.batch, self.other_batch, self.pc1])
        self.db.commit()
        self.alice = Student(name='Alice', roll_no='CS001', batch_id=self.batch.id)
        self.bob = Student(name='Bob', roll_no='CS002', batch_id=self.batch.id)
        self.db.add_all([self.alice, self.bob])
        self.db.commit()
        self.booking = LabBooking(
            pc_id=self.pc1.id,
            booking_date=DAY,
            time_slot=SLOT,
            booked_for='Alice',
            student_name='Alice',
            notes='weekly practice',
        )
        self.db.add(self.booking)
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def _sync(self, status, student_id=None):
        return on_attendance_marked(
            self.db,
            student_id=student_id or self.alice.id,
            status=status,
            attendance_date=DAY,
            time_slot=SLOT,
            time_provider=self.clock,
        )

    def _reload_booking(self):
        self.db.expire_all()
        return self.db.query(LabBooking).filter(LabBooking.id == self.booking.id).one()


class AttendanceBookingSyncTests(_SyncFixture):
    def test_absent_releases_booking_with_audit_note(self):
        result = self._sync('absent')
        self.assertEqual(result['updated_count'], 1)
        self.assertEqual(result['affected_bookings'][0]['pc_number'], 'CS-01')
        booking = self._reload_booking()
        self.assertEqual(booking.status, 'completed')
        self.assertEqual(
            booking.notes,
            'weekly practice - Student marked absent in attendance at 09:15:00',
        )

    def test_absent_twice_is_idempotent(self):
        self._sync('absent')
        second = self._sync('Absent')
        self.assertEqual(second['updated_count'], 0)
        self.assertEqual(second['message'], 'No matching lab bookings found')
        self.assertEqual(self._reload_booking().notes.count('marked absent'), 1)

    def test_absent_then_present_round_trips_status(self):
        self._sync('absent')
        result = self._sync('present')
        self.assertEqual(result['updated_count'], 1)
        booking = self._reload_booking()
        self.assertEqual(booking.status, 'confirmed')
        self.assertTrue(booking.notes.endswith('Booking restored (student marked present/late) at 09:15:00'))

    def test_late_also_restores(self):
        self._sync('absent')
        self.assertEqual(self._sync('late')['updated_count'], 1)

    def test_reclaimed_slot_is_not_restored(self):
        self._sync('absent')
        self.db.add(
            LabBooking(pc_id=self.pc1.id, booking_date=DAY, time_slot=SLOT, booked_for='Bob', student_name='Bob')
        )
        self.db.commit()
        result = self._sync('present')
        self.assertEqual(result['updated_count'], 0)
        self.assertEqual(result['message'], 'No bookings to restore or slots already taken')
        self.assertEqual(self._reload_booking().status, 'completed')

    def test_present_without_released_booking_changes_nothing(self):
        result = self._sync('present')
        self.assertEqual(result['updated_count'], 0)
        self.assertEqual(self._reload_booking().status, 'confirmed')

    def test_missing_student_returns_soft_result(self):
        result = self._sync('absent', student_id=999999)
        self.assertEqual(result['updated_count'], 0)
        self.assertEqual(result['message'], 'Student not found')

    def test_unknown_status_is_ignored(self):
        result = self._sync('excused')
        self.assertEqual(result['updated_count'], 0)
        self.assertEqual(self._reload_booking().status, 'confirmed')

    def test_internal_failure_is_downgraded(self):
        with patch.object(attendance_booking_sync_service, '_release_for_absence', side_effect=RuntimeError('db gone')):
            result = self._sync('absent')
        self.assertEqual(result['updated_count'], 0)
        self.assertEqual(result['error'], 'db gone')
        self.assertEqual(self._reload_booking().status, 'confirmed')

    def test_release_frees_cell_in_next_availability_read(self):
        self.assertFalse(get_lab_availability(self.db, DAY)['availability'][0]['slots'][SLOT]['available'])
        self._sync('absent')
        cell = get_lab_availability(self.db, DAY)['availability'][0]['slots'][SLOT]
        self.assertTrue(cell['available'])
        self.assertTrue(cell['recently_freed'])


class AttendanceWriterTests(_SyncFixture):
    def test_mark_attendance_persists_and_syncs(self):
        result = mark_attendance(
            self.db,
            student_id=self.alice.id,
            batch_id=self.batch.id,
            attendance_date=DAY,
            status='Absent',
            time_provider=self.clock,
        )
        self.assertEqual(result['attendance']['status'], 'absent')
        self.assertEqual(result['lab_booking_update']['updated_count'], 1)
        self.assertEqual(self._reload_booking().status, 'completed')

        again = mark_attendance(
            self.db,
            student_id=self.alice.id,
            batch_id=self.batch.id,
            attendance_date=DAY,
            status='present',
            time_provider=self.clock,
        )
        self.assertEqual(again['attendance']['id'], result['attendance']['id'])
        self.assertEqual(self.db.query(AttendanceRecord).count(), 1)
        self.assertEqual(self._reload_booking().status, 'confirmed')

    def test_sync_failure_keeps_attendance_record(self):
        with patch.object(attendance_booking_sync_service, '_release_for_absence', side_effect=RuntimeError('boom')):
            result = mark_attendance(
                self.db,
                student_id=self.alice.id,
                batch_id=self.batch.id,
                attendance_date=DAY,
                status='absent',
            )
        self.assertEqual(result['lab_booking_update']['updated_count'], 0)
        self.db.expire_all()
        self.assertEqual(self.db.query(AttendanceRecord).one().status, 'absent')

    def test_mark_bulk_attendance_counts_lab_updates(self):
        result = mark_bulk_attendance(
            self.db,
            batch_id=self.batch.id,
            attendance_date=DAY,
            records=[
                {'student_id': self.alice.id, 'status': 'absent'},
                {'student_id': self.bob.id, 'status': 'present', 'remarks': 'on time'},
            ],
            time_provider=self.clock,
        )
        self.assertEqual(result['marked_count'], 2)
        self.assertEqual(result['lab_bookings_updated'], 1)
        self.assertEqual(self.db.query(AttendanceRecord).count(), 2)

    def test_bulk_repeated_student_keeps_last_entry(self):
        result = mark_bulk_attendance(
            self.db,
            batch_id=self.batch.id,
            attendance_date=DAY,
            records=[
                {'student_id': self.alice.id, 'status': 'present'},
                {'student_id': self.bob.id, 'status': 'present'},
                {'student_id': self.alice.id, 'status': 'absent', 'remarks': 'left early'},
            ],
            time_provider=self.clock,
        )
        self.assertEqual(result['marked_count'], 2)
        self.assertEqual([item['student_id'] for item in result['results']], [self.alice.id, self.bob.id])
        self.assertEqual(result['lab_bookings_updated'], 1)
        self.db.expire_all()
        record = self.db.query(AttendanceRecord).filter(AttendanceRecord.student_id == self.alice.id).one()
        self.assertEqual(record.status, 'absent')
        self.assertEqual(record.remarks, 'left early')
        self.assertEqual(self.db.query(AttendanceRecord).count(), 2)
        self.assertEqual(self._reload_booking().status, 'completed')

    def test_student_batch_mismatch_and_missing_rows(self):
        with self.assertRaises(LabValidationError):
            mark_attendance(
                self.db, student_id=self.alice.id, batch_id=self.other_batch.id, attendance_date=DAY, status='present'
            )
        with self.assertRaises(NotFoundError):
            mark_attendance(self.db, student_id=999999, batch_id=self.batch.id, attendance_date=DAY, status='present')
        with self.assertRaises(NotFoundError):
            mark_attendance(self.db, student_id=self.alice.id, batch_id=999999, attendance_date=DAY, status='present')
        with self.assertRaises(LabValidationError):
            mark_attendance(self.db, student_id=self.alice.id, batch_id=self.batch.id, attendance_date=DAY, status='sick')
        self.assertEqual(self.db.query(AttendanceRecord).count(), 0)


if __name__ == '__main__':
    unittest.main()
