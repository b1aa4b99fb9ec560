import os
import unittest
from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure settings can be initialized in test environments
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("EMAIL_PROVIDER", "dummy")

from app.core.security import hash_password
from app.db.session import Base, get_db
from app.main import app
from app.models.booking import Booking
from app.models.review import Review
from app.models.tour import Tour
from app.models.user import User
from app.services.auth_service import issue_token

PASSWORD = "test-pass-1234"
_PASSWORD_HASH = hash_password(PASSWORD)


class ApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        Base.metadata.drop_all(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            for table in reversed(Base.metadata.sorted_tables):
                db.execute(delete(table))
            db.commit()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()

    def create_user(self, *, role: str = "user", email: str | None = None, name: str = "Test User", active: bool = True) -> UUID:
        with self.SessionLocal() as db:
            user = User(
                name=name,
                email=email or f"{role}-{name.lower().replace(' ', '-')}@example.com",
                role=role,
                password_hash=_PASSWORD_HASH,
                active=active,
            )
            db.add(user)
            db.commit()
            return user.id

    def auth(self, user_id: UUID) -> dict[str, str]:
        with self.SessionLocal() as db:
            token = issue_token(db.get(User, user_id))
        return {"Authorization": f"Bearer {token}"}

    def create_tour(self, **overrides) -> UUID:
        data = {
            "name": "The Forest Hiker",
            "duration": 5,
            "max_group_size": 25,
            "difficulty": "easy",
            "price": 397,
            "summary": "Breathtaking hike through the Canadian Banff National Park",
            "image_cover": "tour-1-cover.jpg",
        }
        guide_ids = overrides.pop("guides", [])
        data.update(overrides)
        with self.SessionLocal() as db:
            tour = Tour(**data)
            tour.guides = [db.get(User, guide_id) for guide_id in guide_ids]
            db.add(tour)
            db.commit()
            return tour.id

    def create_review(self, tour_id: UUID, user_id: UUID, rating: int = 5, text: str = "Amazing tour, would book again") -> UUID:
        with self.SessionLocal() as db:
            review = Review(tour_id=tour_id, user_id=user_id, rating=rating, review=text)
            db.add(review)
            db.commit()
            return review.id

    def create_booking(self, tour_id: UUID, user_id: UUID, price: float = 397) -> UUID:
        with self.SessionLocal() as db:
            booking = Booking(tour_id=tour_id, user_id=user_id, price=price)
            db.add(booking)
            db.commit()
            return booking.id

    def get_row(self, model, row_id):
        with self.SessionLocal() as db:
            row = db.get(model, row_id)
            if row is not None:
                db.expunge(row)
            return row
