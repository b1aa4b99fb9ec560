import os
import unittest
from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import DateTime, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")

from app.api.handler_factory import ResourceDescriptor, create_one, delete_one, get_all, get_one, update_one
from app.core.errors import register_error_handlers
from app.db.session import get_db
from app.models.common import utcnow
from app.services.document_store import Collection


class _Base(DeclarativeBase):
    pass


class _Gadget(_Base):
    __tablename__ = "_hf_gadgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    colour: Mapped[str] = mapped_column(String(20), nullable=False, default="grey")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


def _owner_from_path(request, payload):
    if "owner_id" in request.path_params:
        payload.setdefault("owner_id", int(request.path_params["owner_id"]))
    return payload


GADGETS = ResourceDescriptor(Collection(model=_Gadget), parent=("owner_id", "owner_id"), prepare_payload=_owner_from_path)


def _build_app() -> FastAPI:
    mini = FastAPI()
    register_error_handlers(mini)
    for prefix in ("/gadgets", "/owners/{owner_id}/gadgets"):
        mini.add_api_route(prefix, get_all(GADGETS), methods=["GET"])
        mini.add_api_route(prefix, create_one(GADGETS), methods=["POST"], status_code=201)
        mini.add_api_route(prefix + "/{id}", get_one(GADGETS), methods=["GET"])
        mini.add_api_route(prefix + "/{id}", update_one(GADGETS), methods=["PATCH"])
        mini.add_api_route(prefix + "/{id}", delete_one(GADGETS), methods=["DELETE"], status_code=204)
    return mini


class HandlerFactoryTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        cls.app = _build_app()

    @classmethod
    def tearDownClass(cls):
        cls.engine.dispose()

    def setUp(self):
        _Base.metadata.create_all(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(self.app)

    def tearDown(self):
        self.client.close()
        self.app.dependency_overrides.clear()
        _Base.metadata.drop_all(bind=self.engine)

    def _create(self, path="/gadgets", **payload):
        response = self.client.post(path, json=payload)
        self.assertEqual(response.status_code, 201)
        return response.json()["data"]["data"]

    def test_create_then_get_returns_payload_plus_defaults(self):
        created = self._create(name="Widget")
        self.assertEqual(created["name"], "Widget")
        self.assertEqual(created["colour"], "grey")
        self.assertIsInstance(created["id"], int)
        self.assertTrue(created["created_at"])

        fetched = self.client.get(f"/gadgets/{created['id']}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json(), {"status": "success", "data": {"data": created}})

    def test_create_rejects_unknown_fields(self):
        response = self.client.post("/gadgets", json={"name": "Widget", "weight": 3})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"status": "fail", "message": "Unknown fields: weight"})

    def test_get_all_envelope_and_zero_results(self):
        empty = self.client.get("/gadgets")
        self.assertEqual(empty.json(), {"status": "success", "results": 0, "data": {"data": []}})

        self._create(name="Alpha", colour="red")
        self._create(name="Beta", colour="blue")
        listed = self.client.get("/gadgets", params={"sort": "name", "fields": "name"}).json()
        self.assertEqual(listed["results"], 2)
        self.assertEqual([set(doc) for doc in listed["data"]["data"]], [{"id", "name"}, {"id", "name"}])
        self.assertEqual([doc["name"] for doc in listed["data"]["data"]], ["Alpha", "Beta"])

        none = self.client.get("/gadgets", params={"colour": "green"}).json()
        self.assertEqual((none["status"], none["results"]), ("success", 0))

    def test_parent_scope_and_payload_preparation(self):
        self._create("/owners/1/gadgets", name="Mine")
        self._create("/owners/2/gadgets", name="Theirs")

        scoped = self.client.get("/owners/1/gadgets").json()
        self.assertEqual([doc["name"] for doc in scoped["data"]["data"]], ["Mine"])
        self.assertEqual(scoped["data"]["data"][0]["owner_id"], 1)

        overridden = self.client.get("/owners/1/gadgets", params={"owner_id": "2"}).json()
        self.assertEqual([doc["name"] for doc in overridden["data"]["data"]], ["Theirs"])

    def test_get_one_missing_and_malformed(self):
        missing = self.client.get("/gadgets/999")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json(), {"status": "fail", "message": "No document found with that id"})
        self.assertEqual(self.client.get("/gadgets/abc").status_code, 400)

    def test_update(self):
        created = self._create(name="Widget")
        updated = self.client.patch(f"/gadgets/{created['id']}", json={"colour": "black"})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["data"]["data"]["colour"], "black")
        self.assertEqual(updated.json()["data"]["data"]["name"], "Widget")
        self.assertEqual(self.client.patch("/gadgets/999", json={"colour": "black"}).status_code, 404)

    def test_update_rejects_unknown_fields(self):
        created = self._create(name="Widget")
        response = self.client.patch(f"/gadgets/{created['id']}", json={"colour": "black", "weight": 3})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"status": "fail", "message": "Unknown fields: weight"})
        self.assertEqual(self.client.get(f"/gadgets/{created['id']}").json()["data"]["data"]["colour"], "grey")

    def test_exclusion_of_unknown_field_is_400(self):
        self._create(name="Widget")
        response = self.client.get("/gadgets", params={"fields": "-weight"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], 'Unknown field "weight"')

    def test_delete_then_second_delete_is_404(self):
        created = self._create(name="Widget")
        first = self.client.delete(f"/gadgets/{created['id']}")
        self.assertEqual(first.status_code, 204)
        self.assertEqual(first.content, b"")
        self.assertEqual(self.client.get(f"/gadgets/{created['id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/gadgets/{created['id']}").status_code, 404)


if __name__ == "__main__":
    unittest.main()
