# autoecole/models/student_progress.py
"""Running totals of completed individual lessons per learner."""

from sqlalchemy import Column, DateTime, Float, Integer, String

from ..database import Base


class StudentProgress(Base):
    """Accumulated driving hours, updated when an instructor completes a booking."""

    __tablename__ = "student_progress"

    student_id = Column(String(64), primary_key=True)
    total_hours = Column(Float, nullable=False, default=0.0)
    completed_lessons = Column(Integer, nullable=False, default=0)
    rating_sum = Column(Integer, nullable=False, default=0)
    last_lesson_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def average_rating(self) -> float:
        if not self.completed_lessons:
            return 0.0
        return self.rating_sum / self.completed_lessons

    def record_lesson(self, hours: float, rating: int, at) -> None:
        self.total_hours = float(self.total_hours or 0) + hours
        self.completed_lessons = int(self.completed_lessons or 0) + 1
        self.rating_sum = int(self.rating_sum or 0) + rating
        self.last_lesson_at = at
