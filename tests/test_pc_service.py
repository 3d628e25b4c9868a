import tempfile
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.cache import cache
from app.core.lab_errors import BookingConflictError, ConfirmationRequiredError, LabValidationError, NotFoundError
from app.db import Base
from app.models import AuthUser, LabBooking, LabPC
from app.services.lab_availability_service import get_lab_availability
from app.services.lab_booking_service import create_booking
from app.services.pc_service import (
    clear_all_pcs,
    create_pc,
    delete_pc,
    get_pc,
    get_pcs_by_row,
    list_pcs,
    serialize_pc,
    update_pc,
)


DAY = date(2026, 3, 2)


class PCServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_pc_service.db'
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
        for table in (LabBooking, LabPC, AuthUser):
            self.db.query(table).delete()
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_create_pc_with_specifications(self):
        pc = create_pc(
            self.db,
            pc_number=' CS-01 ',
            row_number=1,
            specifications={'processor': 'Intel i5', 'ram': '16GB'},
            notes='near window',
        )
        payload = serialize_pc(pc)
        self.assertEqual(payload['pc_number'], 'CS-01')
        self.assertEqual(payload['status'], 'active')
        self.assertEqual(payload['specifications']['processor'], 'Intel i5')
        self.assertIsNone(payload['specifications']['monitor'])

    def test_create_rejects_bad_code_row_and_duplicates(self):
        for bad in ('cs-01', 'CS01', 'ABCD-1', 'CS-1234', ''):
            with self.assertRaises(LabValidationError):
                create_pc(self.db, pc_number=bad, row_number=1)
        with self.assertRaises(LabValidationError):
            create_pc(self.db, pc_number='CS-09', row_number=5)
        create_pc(self.db, pc_number='CS-01', row_number=1)
        with self.assertRaises(BookingConflictError) as ctx:
            create_pc(self.db, pc_number='CS-01', row_number=2)
        self.assertEqual(ctx.exception.conflict_type, 'pc_number')
        self.assertEqual(self.db.query(LabPC).count(), 1)

    def test_list_filters_and_orders_by_row_then_code(self):
        create_pc(self.db, pc_number='CS-02', row_number=2)
        create_pc(self.db, pc_number='CS-03', row_number=1)
        create_pc(self.db, pc_number='CS-01', row_number=1)
        self.assertEqual([pc.pc_number for pc in list_pcs(self.db)], ['CS-01', 'CS-03', 'CS-02'])
        self.assertEqual([pc.pc_number for pc in list_pcs(self.db, row_number=2)], ['CS-02'])
        self.assertEqual(list_pcs(self.db, status='maintenance'), [])
        with self.assertRaises(LabValidationError):
            list_pcs(self.db, status='broken')

    def test_update_merges_specifications_and_revalidates_code(self):
        pc = create_pc(self.db, pc_number='CS-01', row_number=1, specifications={'processor': 'i5', 'ram': '8GB'})
        create_pc(self.db, pc_number='CS-02', row_number=1)
        updated = update_pc(
            self.db,
            pc.id,
            status='maintenance',
            specifications={'ram': '16GB'},
            last_maintenance=date(2026, 3, 1),
        )
        self.assertEqual(updated.processor, 'i5')
        self.assertEqual(updated.ram, '16GB')
        self.assertEqual(updated.status, 'maintenance')
        self.assertEqual(update_pc(self.db, pc.id, pc_number='CS-01').pc_number, 'CS-01')
        with self.assertRaises(BookingConflictError):
            update_pc(self.db, pc.id, pc_number='CS-02')
        with self.assertRaises(LabValidationError):
            update_pc(self.db, pc.id, status='retired')

    def test_delete_pc_frees_bookings_from_its_id(self):
        create_pc(self.db, pc_number='CS-01', row_number=1)
        old = create_pc(self.db, pc_number='CS-08', row_number=1)
        booking = create_booking(
            self.db,
            pc_id=old.id,
            booking_date=DAY,
            time_slot='09:00-10:30',
            booked_for='Alice',
            student_name='Alice',
        )
        old_id = old.id
        delete_pc(self.db, old_id)
        with self.assertRaises(NotFoundError):
            get_pc(self.db, old_id)

        self.db.expire_all()
        kept = self.db.get(LabBooking, booking.id)
        self.assertIsNotNone(kept)
        self.assertIsNone(kept.pc_id)

        replacement = create_pc(self.db, pc_number='MS-99', row_number=2)
        self.assertNotEqual(replacement.id, old_id)
        grid = get_lab_availability(self.db, DAY)
        row = next(row for row in grid['availability'] if row['pc']['pc_number'] == 'MS-99')
        self.assertEqual(row['slots']['09:00-10:30'], {'available': True, 'booking': None})
        self.assertEqual(grid['booked_slots'], 0)

        fresh = create_booking(
            self.db,
            pc_id=replacement.id,
            booking_date=DAY,
            time_slot='09:00-10:30',
            booked_for='Bob',
            student_name='Bob',
        )
        self.assertEqual(fresh.pc_id, replacement.id)

    def test_by_row_projection_excludes_inactive(self):
        create_pc(self.db, pc_number='CS-01', row_number=1)
        create_pc(self.db, pc_number='CS-05', row_number=2)
        retired = create_pc(self.db, pc_number='CS-06', row_number=2)
        repair = create_pc(self.db, pc_number='CS-07', row_number=3)
        update_pc(self.db, retired.id, status='inactive')
        update_pc(self.db, repair.id, status='maintenance')
        grouped = get_pcs_by_row(self.db)
        self.assertEqual(sorted(grouped), [1, 2, 3])
        self.assertEqual([pc['pc_number'] for pc in grouped[2]], ['CS-05'])
        self.assertEqual(grouped[3][0]['status'], 'maintenance')

    def test_clear_all_requires_confirmation(self):
        first = create_pc(self.db, pc_number='CS-01', row_number=1)
        self.db.add(LabBooking(pc_id=first.id, booking_date=DAY, time_slot='09:00-10:30', booked_for='Alice'))
        self.db.commit()
        create_pc(self.db, pc_number='CS-02', row_number=1)
        with self.assertRaises(ConfirmationRequiredError):
            clear_all_pcs(self.db)
        self.assertEqual(self.db.query(LabPC).count(), 2)
        self.assertEqual(clear_all_pcs(self.db, confirm=True), 2)
        self.assertEqual(self.db.query(LabPC).count(), 0)
        self.db.expire_all()
        self.assertEqual([booking.pc_id for booking in self.db.query(LabBooking).all()], [None])


if __name__ == '__main__':
    unittest.main()
