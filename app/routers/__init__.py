from app.routers import attendance, lab

__all__ = [
    'attendance',
    'lab',
]
