import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from elearning.database import Base

def utcnow():
    return datetime.now(timezone.utc)

def _iso(value):
    return value.isoformat() if value else None

class Role(str, enum.Enum):
    """Ordered permission levels: user < admin < superadmin."""
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank

_ROLE_RANK = {Role.USER: 0, Role.ADMIN: 1, Role.SUPERADMIN: 2}

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, default=Role.USER.value, nullable=False)
    is_verified = Column(Boolean, default=True)
    reset_password_expire = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    subscriptions = relationship("Subscription", lazy="selectin", cascade="all, delete-orphan")

    @property
    def permission(self) -> Role:
        return Role(self.role)

    def has_role(self, role: Role) -> bool:
        return self.permission.at_least(role)

    @property
    def subscription(self) -> list[int]:
        return [s.course_id for s in self.subscriptions]

    def is_subscribed(self, course_id: int) -> bool:
        return course_id in self.subscription

    def to_dict(self):
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "subscription": self.subscription,
            "isVerified": self.is_verified,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    image = Column(String, nullable=True)
    price = Column(Float, nullable=False)
    duration = Column(Integer, nullable=False)
    category = Column(String, nullable=False)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "_id": self.id,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "price": self.price,
            "duration": self.duration,
            "category": self.category,
            "createdBy": self.created_by,
            "createdAt": _iso(self.created_at),
        }

class Lecture(Base):
    __tablename__ = "lectures"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    video = Column(String, nullable=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "_id": self.id,
            "title": self.title,
            "description": self.description,
            "video": self.video,
            "course": self.course_id,
            "createdAt": _iso(self.created_at),
        }

class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

class Progress(Base):
    __tablename__ = "progress"
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    completed = relationship("CompletedLecture", lazy="selectin", cascade="all, delete-orphan")

    @property
    def completed_lectures(self) -> list[int]:
        return [c.lecture_id for c in self.completed]

    def to_dict(self):
        return {
            "_id": self.id,
            "course": self.course_id,
            "user": self.user_id,
            "completedLectures": self.completed_lectures,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

class CompletedLecture(Base):
    __tablename__ = "completed_lectures"
    __table_args__ = (UniqueConstraint("progress_id", "lecture_id"),)

    id = Column(Integer, primary_key=True, index=True)
    progress_id = Column(Integer, ForeignKey("progress.id", ondelete="CASCADE"), index=True, nullable=False)
    lecture_id = Column(Integer, ForeignKey("lectures.id", ondelete="CASCADE"), index=True, nullable=False)
    completed_at = Column(DateTime(timezone=True), default=utcnow)

class PaymentStatus(str, enum.Enum):
    CREATED = "created"
    PAID = "paid"

class Payment(Base):
    """One gateway order, recorded at checkout and claimed once by verification."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    razorpay_order_id = Column(String, unique=True, index=True, nullable=False)
    razorpay_payment_id = Column(String, nullable=True)
    razorpay_signature = Column(String, nullable=True)
    amount = Column(Integer)  # smallest currency unit, as sent to the gateway
    status = Column(String, default=PaymentStatus.CREATED.value, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
