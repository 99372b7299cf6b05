import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.future import select
from elearning.config import settings
from elearning.database import get_db, insert_if_absent
from elearning.errors import BadRequest, Conflict, NotFound, Internal
from elearning.models import User, Course, Lecture, Subscription, Payment, PaymentStatus, Role, utcnow
from elearning.routers.auth import is_auth
from elearning.services.payment_gateway import RazorpayGateway, PaymentGatewayError, get_payment_gateway
from elearning.services.progress import ensure_progress

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_SUBSCRIBED = "You have not subscribed to this course"

class PaymentVerification(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str

async def get_course_or_404(db, course_id: int, message: str = "Course not found") -> Course:
    result = await db.execute(select(Course).where(Course.id == course_id))
    course = result.scalars().first()
    if not course:
        raise NotFound(message)
    return course

def can_view_course(user: User, course_id: int) -> bool:
    return user.has_role(Role.ADMIN) or user.is_subscribed(course_id)

@router.get("/course/all")
async def get_all_courses(db = Depends(get_db)):
    result = await db.execute(select(Course).order_by(Course.created_at.desc()))
    return {"courses": [course.to_dict() for course in result.scalars().all()]}

@router.get("/course/{course_id}")
async def get_single_course(course_id: int, db = Depends(get_db)):
    course = await get_course_or_404(db, course_id)
    return {"course": course.to_dict()}

@router.get("/lectures/{course_id}")
async def fetch_lectures(course_id: int, user: User = Depends(is_auth), db = Depends(get_db)):
    if not can_view_course(user, course_id):
        raise BadRequest(NOT_SUBSCRIBED)

    result = await db.execute(select(Lecture).where(Lecture.course_id == course_id).order_by(Lecture.id))
    return {"lectures": [lecture.to_dict() for lecture in result.scalars().all()]}

@router.get("/lecture/{lecture_id}")
async def fetch_lecture(lecture_id: int, user: User = Depends(is_auth), db = Depends(get_db)):
    result = await db.execute(select(Lecture).where(Lecture.id == lecture_id))
    lecture = result.scalars().first()
    if not lecture:
        raise NotFound("Lecture not found")

    if not can_view_course(user, lecture.course_id):
        raise BadRequest(NOT_SUBSCRIBED)
    return {"lecture": lecture.to_dict()}

@router.get("/mycourse")
async def get_my_courses(user: User = Depends(is_auth), db = Depends(get_db)):
    result = await db.execute(
        select(Course)
        .join(Subscription, Subscription.course_id == Course.id)
        .where(Subscription.user_id == user.id)
        .order_by(Subscription.created_at)
    )
    return {"courses": [course.to_dict() for course in result.scalars().all()]}

@router.post("/course/checkout/{course_id}")
async def checkout(
    course_id: int,
    user: User = Depends(is_auth),
    db = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    course = await get_course_or_404(db, course_id)

    if user.is_subscribed(course.id):
        raise Conflict("You already have this course")

    amount = int(round(course.price * 100))
    try:
        order = await gateway.create_order(
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            receipt=f"course_{course.id}_user_{user.id}",
        )
    except PaymentGatewayError as e:
        logger.error(f"Checkout failed for course {course.id}: {e}")
        raise Internal("Payment gateway error")

    # The order is only redeemable by this user for this course.
    db.add(Payment(
        razorpay_order_id=order["id"],
        amount=amount,
        user_id=user.id,
        course_id=course.id,
    ))
    await db.commit()

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"order": order, "course": course.to_dict()},
    )

@router.post("/verification/{course_id}")
async def payment_verification(
    course_id: int,
    data: PaymentVerification,
    user: User = Depends(is_auth),
    db = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    course = await get_course_or_404(db, course_id)

    authentic = gateway.verify_payment_signature(
        data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
    )
    if not authentic:
        logger.warning(f"Signature mismatch for order {data.razorpay_order_id} (user {user.id})")
        raise BadRequest("Payment Failed")

    # Claims the pending order in one statement; a used, foreign or unknown order matches nothing.
    claimed = await db.execute(
        update(Payment)
        .where(
            Payment.razorpay_order_id == data.razorpay_order_id,
            Payment.user_id == user.id,
            Payment.course_id == course.id,
            Payment.status == PaymentStatus.CREATED.value,
        )
        .values(
            razorpay_payment_id=data.razorpay_payment_id,
            razorpay_signature=data.razorpay_signature,
            status=PaymentStatus.PAID.value,
            paid_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        if user.is_subscribed(course.id):
            raise Conflict("You already have this course")
        logger.warning(f"Order {data.razorpay_order_id} not redeemable by user {user.id} for course {course.id}")
        raise BadRequest("Payment Failed")

    subscribed = await insert_if_absent(
        db, Subscription, {"user_id": user.id, "course_id": course.id}, ["user_id", "course_id"]
    )
    if not subscribed:
        await db.rollback()
        raise Conflict("You already have this course")

    await ensure_progress(db, user.id, course.id)
    await db.commit()

    logger.info(f"User {user.id} enrolled in course {course.id} (order {data.razorpay_order_id})")
    return {"message": "Course Verified and Added Successfully"}
