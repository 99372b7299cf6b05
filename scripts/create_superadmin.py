"""
Bootstraps the first superadmin. Role changes over the API need a superadmin
already, so the first one has to come from here.

    python3 scripts/create_superadmin.py admin@example.com [password] [name]

Promotes the user if the email exists, otherwise creates it (password required).
"""
import sys
import os
import asyncio
from sqlalchemy.future import select

# Add parent dir to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from elearning.database import engine, AsyncSessionLocal, Base
from elearning.models import User, Role
from elearning.routers.auth import hash_password

async def create_superadmin(email: str, password: str | None, name: str):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalars().first()

        if user:
            user.role = Role.SUPERADMIN.value
            print(f"✅ Promoted {email} to superadmin.")
        elif password:
            user = User(name=name, email=email, hashed_password=hash_password(password), role=Role.SUPERADMIN.value)
            print(f"✅ Created superadmin {email}.")
        else:
            print(f"⚠️ No user with email {email}; pass a password to create one.")
            await engine.dispose()
            return 1

        session.add(user)
        await session.commit()

    await engine.dispose()
    return 0

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    email = sys.argv[1]
    password = sys.argv[2] if len(sys.argv) > 2 else None
    name = sys.argv[3] if len(sys.argv) > 3 else "Super Admin"
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    sys.exit(asyncio.run(create_superadmin(email, password, name)))
