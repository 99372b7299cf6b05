from sqlalchemy import func, update
from sqlalchemy.future import select
from elearning.database import insert_if_absent
from elearning.models import Progress, CompletedLecture, Lecture, utcnow

# Outcomes of record_completion
CREATED = "created"
APPENDED = "appended"
UNCHANGED = "unchanged"

def progress_percentage(completed: int, total: int) -> float:
    if total <= 0:
        return 0
    return completed * 100 / total

async def get_progress(db, user_id: int, course_id: int) -> Progress | None:
    result = await db.execute(
        select(Progress).where(Progress.user_id == user_id, Progress.course_id == course_id)
    )
    return result.scalars().first()

async def ensure_progress(db, user_id: int, course_id: int) -> bool:
    """Creates an empty progress record for the pair if none exists. Returns True if created."""
    return await insert_if_absent(
        db, Progress, {"user_id": user_id, "course_id": course_id}, ["user_id", "course_id"]
    )

async def record_completion(db, user_id: int, course_id: int, lecture_id: int) -> str:
    """
    Marks a lecture complete for (user, course) and commits.

    Returns CREATED when the progress record itself was new, APPENDED when the
    lecture was added to an existing record, UNCHANGED when it was already there.
    """
    created = await ensure_progress(db, user_id, course_id)
    progress_id = (await db.execute(
        select(Progress.id).where(Progress.user_id == user_id, Progress.course_id == course_id)
    )).scalar_one()

    appended = await insert_if_absent(
        db,
        CompletedLecture,
        {"progress_id": progress_id, "lecture_id": lecture_id},
        ["progress_id", "lecture_id"],
    )
    if appended:
        await db.execute(update(Progress).where(Progress.id == progress_id).values(updated_at=utcnow()))
    await db.commit()

    if created:
        return CREATED
    return APPENDED if appended else UNCHANGED

async def count_lectures(db, course_id: int) -> int:
    result = await db.execute(select(func.count(Lecture.id)).where(Lecture.course_id == course_id))
    return result.scalar() or 0
