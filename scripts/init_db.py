from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.db import Base, SessionLocal, engine
from app.models import AuthUser, Batch, LabPC, Role, Student
from app.services.auth_service import create_session_token
from app.services.pc_service import create_pc


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    admin = db.query(AuthUser).filter(AuthUser.role == Role.ADMIN.value).first()
    if not admin:
        admin = AuthUser(name='Lab Admin', phone='9999990000', role=Role.ADMIN.value)
        db.add(admin)
        db.commit()
        db.refresh(admin)

    if not db.query(Batch).first():
        batch = Batch(name='CS Batch A', section='A', academic_year='2026-27', timing='09:00-10:30', created_by=admin.id)
        db.add(batch)
        db.commit()
        db.refresh(batch)
        db.add_all(
            [
                Student(name='Aarav', roll_no='CS001', batch_id=batch.id),
                Student(name='Diya', roll_no='CS002', batch_id=batch.id),
                Student(name='Ishaan', roll_no='CS003', batch_id=batch.id),
            ]
        )
        db.commit()

    if not db.query(LabPC).first():
        for row in (1, 2):
            for seat in range(1, 5):
                create_pc(
                    db,
                    pc_number=f'CS-{(row - 1) * 4 + seat:02d}',
                    row_number=row,
                    specifications={'processor': 'Intel i5', 'ram': '16GB', 'storage': '512GB SSD'},
                    created_by=admin.id,
                )

    session = create_session_token(db, admin.id)
finally:
    db.close()

print('DB initialized with sample data.')
print(f"Admin bearer token: {session['token']}")
