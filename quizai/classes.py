import random
import string
from typing import List

from sqlmodel import select

from quizai.db import get_session
from quizai.errors import NotFoundError
from quizai.models import Class, Enrollment


def _generate_code(length: int = 6) -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def create_class(title: str, description: str | None, owner_id: int, code: str | None = None) -> Class:
    if code is None:
        code = _generate_code()
    with get_session() as session:
        # ensure unique code
        q = select(Class).where(Class.code == code)
        existing = session.exec(q).first()
        if existing:
            code = _generate_code()
        cls = Class(title=title, description=description, owner_id=owner_id, code=code)
        session.add(cls)
        session.flush()
        # enroll owner as teacher in class
        session.add(Enrollment(class_id=cls.id, user_id=owner_id, role_in_class='teacher'))
        session.commit()
        session.refresh(cls)
        return cls


def enroll_student(class_id: int, student_id: int) -> Enrollment:
    with get_session() as session:
        cls = session.get(Class, class_id)
        if not cls or not cls.is_active:
            raise NotFoundError("Class not found")
        q = select(Enrollment).where(Enrollment.class_id == class_id, Enrollment.user_id == student_id)
        existing = session.exec(q).first()
        if existing:
            if not existing.is_active:
                existing.is_active = True
                session.add(existing)
                session.commit()
                session.refresh(existing)
            return existing
        enroll = Enrollment(class_id=class_id, user_id=student_id, role_in_class='student')
        session.add(enroll)
        session.commit()
        session.refresh(enroll)
        return enroll


def join_class_by_code(code: str, user_id: int) -> Enrollment:
    with get_session() as session:
        cls = session.exec(select(Class).where(Class.code == code)).first()
    if not cls:
        raise NotFoundError("Class not found")
    return enroll_student(cls.id, user_id)


def deactivate_enrollment(class_id: int, student_id: int) -> bool:
    with get_session() as session:
        q = select(Enrollment).where(
            Enrollment.class_id == class_id,
            Enrollment.user_id == student_id,
            Enrollment.role_in_class == 'student',
        )
        enroll = session.exec(q).first()
        if not enroll:
            raise NotFoundError("Enrollment not found")
        enroll.is_active = False
        session.add(enroll)
        session.commit()
        return True


def is_enrolled(student_id: int, class_id: int) -> bool:
    with get_session() as session:
        q = select(Enrollment).where(
            Enrollment.class_id == class_id,
            Enrollment.user_id == student_id,
            Enrollment.role_in_class == 'student',
            Enrollment.is_active == True,  # noqa: E712
        )
        return session.exec(q).first() is not None


def get_enrolled_class_ids(student_id: int) -> List[int]:
    with get_session() as session:
        q = select(Enrollment.class_id).where(
            Enrollment.user_id == student_id,
            Enrollment.role_in_class == 'student',
            Enrollment.is_active == True,  # noqa: E712
        )
        return list(session.exec(q))


def get_owned_class(class_id: int, owner_id: int) -> Class | None:
    with get_session() as session:
        cls = session.get(Class, class_id)
        if cls and cls.owner_id == owner_id and cls.is_active:
            return cls
        return None
