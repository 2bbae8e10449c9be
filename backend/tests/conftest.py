import os

# avant tout import de backend.* : le module session crée son engine à l'import
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session, sessionmaker

from backend.app.api.deps import get_db, get_notifier, get_supplier_links, get_token_service
from backend.app.core.config import settings
from backend.app.db.base import Base
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import Category, Product, Supplier, User
from backend.app.db.session import make_engine
from backend.app.main import app
from backend.services.access import Actor
from backend.services.confirmation_tokens import ConfirmationTokenService, SigningContext
from backend.services.order_workflow import SupplierLinks


class FakeNotifier:
    """Notifier de test : garde les emails en mémoire."""

    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.sent = []

    def send(self, to, subject, html_body, text_body):
        if self.error:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})
        return self.result


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    Chaque test a sa propre base SQLite en mémoire, schéma créé depuis les
    modèles : rien ne fuit d'un test à l'autre.
    """
    engine = make_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """
    Fabrique de sessions sur une base SQLite fichier.

    Chaque session a sa propre connexion : deux sessions voient les commits
    l'une de l'autre, comme deux requêtes HTTP concurrentes.
    """
    engine = make_engine(f"sqlite+pysqlite:///{tmp_path / 'invema.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    opened = []

    def _open() -> Session:
        session = factory()
        opened.append(session)
        return session

    try:
        yield _open
    finally:
        for session in opened:
            session.close()
        engine.dispose()


@pytest.fixture
def tokens() -> ConfirmationTokenService:
    return ConfirmationTokenService(SigningContext(secret="test-confirmation-secret", ttl=timedelta(hours=24)))


@pytest.fixture
def make_notifier():
    return FakeNotifier


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def links() -> SupplierLinks:
    return SupplierLinks(base_url="http://testserver", app_name="INVEMA WMS")


# ---------- master data ----------
@pytest.fixture
def users(db_session):
    """Un utilisateur par rôle, indexés par Role."""
    rows = {
        Role.admin: User(name="Admin", email="admin@test.local", role=Role.admin),
        Role.storekeeper: User(name="Mag", email="mag@test.local", role=Role.storekeeper),
        Role.employee: User(name="Emp", email="emp@test.local", role=Role.employee),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


@pytest.fixture
def admin(users) -> Actor:
    return Actor(user_id=users[Role.admin].id, role=Role.admin)


@pytest.fixture
def storekeeper(users) -> Actor:
    return Actor(user_id=users[Role.storekeeper].id, role=Role.storekeeper)


@pytest.fixture
def employee(users) -> Actor:
    return Actor(user_id=users[Role.employee].id, role=Role.employee)


@pytest.fixture
def category(db_session) -> Category:
    c = Category(name="Fournitures")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def supplier(db_session) -> Supplier:
    s = Supplier(name="Acme", email="orders@acme.test")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def make_product(db_session, category):
    counter = {"n": 0}

    def _make(quantity=5, alert_level=2, **kwargs):
        counter["n"] += 1
        p = Product(
            sku=kwargs.pop("sku", f"SKU-{counter['n']}"),
            name=kwargs.pop("name", f"Produit {counter['n']}"),
            quantity=quantity,
            alert_level=alert_level,
            category_id=kwargs.pop("category_id", category.id),
            **kwargs,
        )
        db_session.add(p)
        db_session.commit()
        return p

    return _make


# ---------- API ----------
@pytest.fixture
def auth():
    """Headers Authorization pour un Actor, signés comme le service d'identité."""

    def _headers(actor: Actor) -> dict:
        token = jwt.encode(
            {"id": actor.user_id, "role": actor.role.value},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(db_session, tokens, notifier, links):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_token_service] = lambda: tokens
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_supplier_links] = lambda: links
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
