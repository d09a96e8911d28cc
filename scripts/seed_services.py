#!/usr/bin/env python3
"""
Seed the service catalog and a couple of staff members.

Usage:
  python scripts/seed_services.py

This script is idempotent: services are upserted by code and staff by code.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db import SessionLocal, Base, engine
from app.models.models import Service, Staff


SERVICES = [
    # code, name, category, estimated minutes
    ("HEM-PANT", "Hem pants", "hemming", 30),
    ("HEM-DRESS", "Hem dress", "hemming", 45),
    ("TAKE-IN", "Take in sides", "fitting", 40),
    ("SLEEVE", "Shorten sleeves", "fitting", 35),
    ("ZIP", "Replace zipper", "repair", 25),
    ("PATCH", "Patch / mend", "repair", 20),
]

STAFF = [
    # code, name, role
    ("manager", "Shop Manager", "operator"),
    ("seamstress-1", "Seamstress 1", "staff"),
]


def ensure_service(session, code: str, name: str, category: str, minutes: int) -> Service:
    service = session.query(Service).filter(Service.code == code).first()
    if service:
        service.name = name
        service.category = category
        service.estimated_minutes = minutes
        return service
    service = Service(code=code, name=name, category=category, estimated_minutes=minutes)
    session.add(service)
    return service


def ensure_staff(session, code: str, name: str, role: str) -> Staff:
    staff = session.query(Staff).filter(Staff.code == code).first()
    if staff:
        staff.name = name
        staff.role = role
        return staff
    staff = Staff(code=code, name=name, role=role)
    session.add(staff)
    return staff


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        for code, name, category, minutes in SERVICES:
            ensure_service(session, code, name, category, minutes)
        for code, name, role in STAFF:
            ensure_staff(session, code, name, role)
        session.commit()
        print(f"[OK] {len(SERVICES)} services and {len(STAFF)} staff seeded")
    finally:
        session.close()


if __name__ == "__main__":
    main()
