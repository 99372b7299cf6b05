import logging
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy import delete, func
from sqlalchemy.future import select
from elearning.database import get_db
from elearning.errors import BadRequest, NotFound
from elearning.models import User, Course, Lecture, Subscription, Progress, CompletedLecture, Role
from elearning.routers.auth import is_admin, is_superadmin
from elearning.services.uploads import save_upload, remove_upload

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/course/new")
async def create_course(
    title: str = Form(...),
    description: str = Form(...),
    price: float = Form(...),
    duration: int = Form(...),
    category: str = Form(...),
    created_by: str = Form(..., alias="createdBy"),
    file: UploadFile | None = File(None),
    admin: User = Depends(is_admin),
    db = Depends(get_db),
):
    image = await save_upload(file)
    course = Course(
        title=title,
        description=description,
        image=image,
        price=price,
        duration=duration,
        category=category,
        created_by=created_by,
    )
    db.add(course)
    await db.commit()
    await db.refresh(course)

    logger.info(f"Admin {admin.id} created course {course.id}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Course created successfully", "course": course.to_dict()},
    )

@router.post("/course/{course_id}")
async def add_lectures(
    course_id: int,
    title: str = Form(...),
    description: str = Form(...),
    file: UploadFile | None = File(None),
    admin: User = Depends(is_admin),
    db = Depends(get_db),
):
    result = await db.execute(select(Course).where(Course.id == course_id))
    course = result.scalars().first()
    if not course:
        raise NotFound("No Course with this id")

    video = await save_upload(file)
    lecture = Lecture(title=title, description=description, video=video, course_id=course.id)
    db.add(lecture)
    await db.commit()
    await db.refresh(lecture)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Lecture added successfully", "lecture": lecture.to_dict()},
    )

@router.delete("/lecture/{lecture_id}")
async def delete_lecture(lecture_id: int, admin: User = Depends(is_admin), db = Depends(get_db)):
    result = await db.execute(select(Lecture).where(Lecture.id == lecture_id))
    lecture = result.scalars().first()
    if not lecture:
        raise NotFound("Lecture not found")

    video = lecture.video
    await db.execute(delete(CompletedLecture).where(CompletedLecture.lecture_id == lecture.id))
    await db.delete(lecture)
    await db.commit()
    remove_upload(video)

    logger.info(f"Admin {admin.id} deleted lecture {lecture_id}")
    return {"message": "Lecture deleted successfully"}

@router.delete("/course/{course_id}")
async def delete_course(course_id: int, admin: User = Depends(is_admin), db = Depends(get_db)):
    result = await db.execute(select(Course).where(Course.id == course_id))
    course = result.scalars().first()
    if not course:
        raise NotFound("Course not found")

    lectures = (await db.execute(select(Lecture).where(Lecture.course_id == course.id))).scalars().all()
    media = [lecture.video for lecture in lectures] + [course.image]

    # Explicit child deletes: SQLite does not enforce ON DELETE CASCADE by default.
    lecture_ids = select(Lecture.id).where(Lecture.course_id == course.id)
    progress_ids = select(Progress.id).where(Progress.course_id == course.id)
    await db.execute(
        delete(CompletedLecture).where(
            CompletedLecture.lecture_id.in_(lecture_ids) | CompletedLecture.progress_id.in_(progress_ids)
        )
    )
    await db.execute(delete(Progress).where(Progress.course_id == course.id))
    await db.execute(delete(Lecture).where(Lecture.course_id == course.id))
    await db.execute(delete(Subscription).where(Subscription.course_id == course.id))
    await db.delete(course)
    await db.commit()

    # Media is removed only after the rows are committed.
    for reference in media:
        remove_upload(reference)

    logger.info(f"Admin {admin.id} deleted course {course_id} with {len(lectures)} lectures")
    return {"message": "Course deleted successfully"}

@router.get("/stats")
async def get_all_stats(admin: User = Depends(is_admin), db = Depends(get_db)):
    total_courses = (await db.execute(select(func.count(Course.id)))).scalar() or 0
    total_lectures = (await db.execute(select(func.count(Lecture.id)))).scalar() or 0
    total_users = (await db.execute(select(func.count(User.id)))).scalar() or 0

    return {
        "stats": {
            "totalCourses": total_courses,
            "totalLectures": total_lectures,
            "totalUsers": total_users,
        }
    }

@router.put("/user/{user_id}")
async def update_role(user_id: int, superadmin: User = Depends(is_superadmin), db = Depends(get_db)):
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()
    if not user:
        raise NotFound("User not found")

    if user.permission == Role.SUPERADMIN:
        raise BadRequest("Cannot change role of a superadmin")

    user.role = Role.USER.value if user.permission == Role.ADMIN else Role.ADMIN.value
    db.add(user)
    await db.commit()

    logger.info(f"Superadmin {superadmin.id} set user {user.id} role to {user.role}")
    return {"message": "Role updated successfully", "user": user.to_dict()}

@router.get("/users")
async def get_all_users(admin: User = Depends(is_admin), db = Depends(get_db)):
    result = await db.execute(select(User).where(User.id != admin.id).order_by(User.id))
    return {"users": [user.to_dict() for user in result.scalars().all()]}
