"""Seed a handful of demo profiles for local development."""
import asyncio
import sys
from datetime import date
sys.path.insert(0, ".")

from sqlalchemy import select
from app.database import async_session_factory
from app.models.user import User
from app.utils.security import hash_password


DEMO_PASSWORD = "kindred-demo"

DEMO_USERS = [
    {
        "email": "ada@kindred.app",
        "username": "ada_1001",
        "name": "Ada",
        "dob": date(1998, 4, 12),
        "gender": "Female",
        "interested_in": "Male",
        "bio": "Bouldering, bad puns, good coffee.",
        "affiliation": "UCL",
        "profile_picture": "https://example.com/seed/ada.jpg",
    },
    {
        "email": "ben@kindred.app",
        "username": "ben_1002",
        "name": "Ben",
        "dob": date(1997, 9, 3),
        "gender": "Male",
        "interested_in": "Female",
        "bio": "Will cook for board games.",
        "affiliation": "KCL",
        "profile_picture": "https://example.com/seed/ben.jpg",
    },
    {
        "email": "cleo@kindred.app",
        "username": "cleo_1003",
        "name": "Cleo",
        "dob": date(2000, 1, 25),
        "gender": "Female",
        "interested_in": "Both",
        "bio": "",
        "affiliation": "Imperial",
        "profile_picture": None,
    },
    {
        "email": "dev@kindred.app",
        "username": "dev_1004",
        "name": "Dev",
        "dob": date(1999, 6, 30),
        "gender": "Male",
        "interested_in": "Both",
        "bio": "Runner. Reader. Occasional DJ.",
        "affiliation": "LSE",
        "profile_picture": "https://example.com/seed/dev.jpg",
    },
    {
        "email": "sam@kindred.app",
        "username": "sam_1005",
        "name": "Sam",
        "dob": date(2001, 11, 8),
        "gender": "Other",
        "interested_in": "Both",
        "bio": "Ask me about my plants.",
        "affiliation": "Edinburgh",
        "profile_picture": None,
    },
]


async def seed():
    password_hash = hash_password(DEMO_PASSWORD)
    async with async_session_factory() as session:
        for u in DEMO_USERS:
            existing = await session.execute(select(User).where(User.email == u["email"]))
            if existing.scalar_one_or_none() is None:
                session.add(User(password_hash=password_hash, status="active", **u))
                print(f"  Seeded user {u['username']} ({u['email']})")
            else:
                print(f"  User {u['email']} already exists, skipping.")
        await session.commit()
    print(f"Done seeding users (password: {DEMO_PASSWORD}).")


if __name__ == "__main__":
    asyncio.run(seed())
