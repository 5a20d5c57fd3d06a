"""Seed database with demo patients, doctors and reference documents. Drop-and-recreate tables on each run."""

from __future__ import annotations

import asyncio

from healthdesk.database import async_session, engine
from healthdesk.models.orm import Base, Doctor, DoctorAvailability, Document, Patient
from healthdesk.services import vector_store
from healthdesk.triage.specialty import (
    CARDIOLOGY,
    DERMATOLOGY,
    GASTROENTEROLOGY,
    GENERAL_PRACTICE,
    NEUROLOGY,
    ORTHOPEDICS,
)

PATIENTS = [
    Patient(name="Maria Rossi", email="maria.rossi@example.com"),
    Patient(name="James Wilson", email="james.wilson@example.com"),
]

DOCTORS = [
    (
        "Dr. Giulia Bianchi",
        GENERAL_PRACTICE,
        "Family physician with 15 years of experience in primary and preventive care.",
    ),
    (
        "Dr. Luca Ferri",
        DERMATOLOGY,
        "Dermatologist focused on eczema, acne and skin cancer screening.",
    ),
    (
        "Dr. Sofia Conti",
        CARDIOLOGY,
        "Cardiologist specialised in hypertension and arrhythmia management.",
    ),
    (
        "Dr. Marco Greco",
        GASTROENTEROLOGY,
        "Gastroenterologist treating reflux, IBS and inflammatory bowel disease.",
    ),
    (
        "Dr. Elena Ricci",
        NEUROLOGY,
        "Neurologist with a clinical interest in headache and migraine disorders.",
    ),
    (
        "Dr. Paolo Romano",
        ORTHOPEDICS,
        "Orthopedic surgeon for sports injuries, back pain and joint problems.",
    ),
]

# Mon-Fri, morning and afternoon sessions, 30 minute slots
WEEKLY_HOURS = [("09:00", "12:00"), ("14:00", "17:00")]

DOCUMENTS = [
    Document(
        id="seed_tension_headache",
        source="MedQuAD",
        title="Tension headache (information)",
        text=(
            "Question: What is a tension headache?\n\n"
            "Answer: Tension headaches cause mild to moderate pain often described as a tight "
            "band around the head. Rest, hydration and over-the-counter pain relief usually help."
        ),
        doc_metadata={"dataset": "seed"},
    ),
    Document(
        id="seed_indigestion",
        source="MedQuAD",
        title="Indigestion (information)",
        text=(
            "Question: What is indigestion?\n\n"
            "Answer: Indigestion is discomfort in the upper abdomen after eating. Smaller meals "
            "and avoiding fatty food often relieve symptoms."
        ),
        doc_metadata={"dataset": "seed"},
    ),
    Document(
        id="seed_chest_pain",
        source="MedQuAD",
        title="Chest pain (symptoms)",
        text=(
            "Question: When is chest pain an emergency?\n\n"
            "Answer: Chest pain with shortness of breath, sweating or pain spreading to the arm "
            "or jaw needs emergency care."
        ),
        doc_metadata={"dataset": "seed"},
    ),
]


def _doctors() -> list[Doctor]:
    doctors = []
    for name, specialty, bio in DOCTORS:
        doctor = Doctor(name=name, specialty=specialty, bio=bio)
        doctor.availability = [
            DoctorAvailability(weekday=weekday, start_time=start, end_time=end, slot_minutes=30)
            for weekday in range(1, 6)
            for start, end in WEEKLY_HOURS
        ]
        doctors.append(doctor)
    return doctors


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    # Indexed points would outlive the dropped rows
    await vector_store.reset_collection()

    doctors = _doctors()
    async with async_session() as session:
        session.add_all(PATIENTS)
        session.add_all(doctors)
        session.add_all(DOCUMENTS)
        await session.commit()

    print(
        f"Seeded {len(PATIENTS)} patients, {len(doctors)} doctors, "
        f"{len(DOCUMENTS)} documents (run scripts/reembed_documents.py to index them)."
    )
    await engine.dispose()
    await vector_store.get_qdrant_client().close()


if __name__ == "__main__":
    asyncio.run(main())
