"""
Database seeding script for initial users.

Creates an ADMIN, a GYM operator with its gym and a demo MEMBER for testing
and development. Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.core.config import settings
from backend.app.models.enums import UserRole
from backend.app.models.gym import Gym
from backend.app.models.gym_class import GymClass
from backend.app.models.class_enums import WeekDay
from backend.app.services.membership import create_user, create_member_profile, email_taken


async def seed_users():
    """
    Seed initial users with different roles.

    Creates:
    - 1 ADMIN user
    - 1 GYM operator owning "Downtown Fitness" with one class
    - 1 MEMBER holding the starting token grant
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")

        if await email_taken(db, settings.first_admin_email):
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        await create_user(
            db,
            name="Administrator",
            email=settings.first_admin_email,
            password=settings.first_admin_password,
            role=UserRole.ADMIN,
        )
        print(f"✅ Created ADMIN user ({settings.first_admin_email})")

        owner = await create_user(
            db,
            name="Gym Owner",
            email="owner@gymhub.com",
            password="owner1234",
            role=UserRole.GYM,
            phone="0771234567",
        )
        gym = Gym(
            owner_id=owner.id,
            name="Downtown Fitness",
            email="owner@gymhub.com",
            phone="0771234567",
            street="12 Main Street",
            city="Colombo",
        )
        db.add(gym)
        await db.flush()
        db.add(GymClass(
            gym_id=gym.id,
            name="Morning Yoga",
            day=WeekDay.MONDAY,
            start_time="07:00",
            duration_minutes=60,
            max_capacity=20,
            token_cost=2,
        ))
        print("✅ Created GYM user (owner@gymhub.com / owner1234) with gym 'Downtown Fitness'")

        member_user = await create_user(
            db,
            name="Demo Member",
            email="member@gymhub.com",
            password="member1234",
            role=UserRole.MEMBER,
        )
        member = await create_member_profile(db, member_user, gym_id=gym.id)
        print(f"✅ Created MEMBER user (member@gymhub.com / member1234), {member.membership_number}")

        await db.commit()

        print("\n🎉 User seeding completed successfully!")
        print("\nSeeded users:")
        print(f"  - ADMIN:  {settings.first_admin_email} / {settings.first_admin_password}")
        print("  - GYM:    owner@gymhub.com / owner1234")
        print(f"  - MEMBER: member@gymhub.com / member1234 ({settings.starting_token_grant} tokens)")
        print("\nNote: further MEMBER users register via POST /api/v1/auth/register")


if __name__ == "__main__":
    asyncio.run(seed_users())
