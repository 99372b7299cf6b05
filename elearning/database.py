from urllib.parse import urlparse, parse_qs, urlencode, urlunparse
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.dialects import postgresql, sqlite
from elearning.config import settings

DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

# asyncpg rejects sslmode in the query string
if "postgres" in DATABASE_URL:
    parsed = urlparse(DATABASE_URL)
    query_params = parse_qs(parsed.query)
    if 'sslmode' in query_params:
        query_params.pop('sslmode', None)
        new_query = urlencode(query_params, doseq=True)
        DATABASE_URL = urlunparse(parsed._replace(query=new_query))

engine_options = {"pool_pre_ping": True, "echo": False}
if not DATABASE_URL.startswith("sqlite"):
    engine_options.update(pool_size=20, max_overflow=10)

engine = create_async_engine(DATABASE_URL, **engine_options)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()

async def get_db():
    async with AsyncSessionLocal() as session:
        yield session

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

async def insert_if_absent(db: AsyncSession, model, values: dict, conflict: list[str]) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING against the unique constraint on `conflict`.
    Returns True when a row was written, False when one already existed.
    Does not commit.
    """
    dialect = db.get_bind().dialect.name
    try:
        insert = _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise RuntimeError(f"insert_if_absent is not supported on {dialect}")
    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict)
    result = await db.execute(stmt)
    return result.rowcount == 1
