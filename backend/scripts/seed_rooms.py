import os

from roombook.db.models import Room
from roombook.db.session import SessionLocal

DEFAULT_ROOMS = (
    {
        "id": "room1",
        "name": "Sala 1",
        "description": "Sala de ensayo principal",
        "calendar_env": "ROOM1_CALENDAR_REF",
    },
    {
        "id": "room2",
        "name": "Sala 2",
        "description": "Sala de ensayo secundaria",
        "calendar_env": "ROOM2_CALENDAR_REF",
    },
)


def seed_rooms() -> None:
    session = SessionLocal()
    try:
        for seed in DEFAULT_ROOMS:
            existing = session.query(Room).filter(Room.id == seed["id"]).first()
            calendar_ref = os.getenv(seed["calendar_env"], "").strip() or None
            if existing is not None:
                if calendar_ref and existing.external_calendar_ref != calendar_ref:
                    existing.external_calendar_ref = calendar_ref
                    session.commit()
                print(f"Room {existing.id} already exists")
                continue

            room = Room(
                id=seed["id"],
                name=seed["name"],
                description=seed["description"],
                hourly_rate=10000,
                additional_hour_rate=5000,
                addon_hourly_rate=2000,
                external_calendar_ref=calendar_ref,
            )
            session.add(room)
            session.commit()
            print(f"Created room {room.id}")
    finally:
        session.close()


if __name__ == "__main__":
    seed_rooms()
