from types import SimpleNamespace

import pytest

from app import create_app
from utilities.database import db, Campus, Category, Sector, InventoryItem, User, ensure_admin_campus

PASSWORD = "senha123"


@pytest.fixture
def app(tmp_path):
    application = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "AUTO_CREATE_SCHEMA": False,
        "LOG_FILE": None,
    })

    with application.app_context():
        db.create_all()
        ensure_admin_campus()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def campuses(app):
    with app.app_context():
        aimores = Campus(name="Aimorés")
        liberdade = Campus(name="Liberdade")
        db.session.add_all([aimores, liberdade])
        db.session.commit()
        admin_campus = Campus.query.filter_by(name="Administrador").one()
        return SimpleNamespace(admin=admin_campus.id, aimores=aimores.id, liberdade=liberdade.id)


def _make_user(username, name, role, campus_id=None, password=PASSWORD):
    user = User(username=username, name=name, role=role, campus_id=campus_id)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture
def users(app, campuses):
    with app.app_context():
        return SimpleNamespace(
            admin=_make_user("admin", "Administrador", "admin"),
            super=_make_user("full", "Super Usuário", "super"),
            tec_aimores=_make_user("tec.aimores", "Técnico Aimorés", "tecnico", campuses.aimores),
            tec_liberdade=_make_user("tec.liberdade", "Técnico Liberdade", "tecnico", campuses.liberdade),
        )


def _login(app, username, campus=None):
    client = app.test_client()
    payload = {"username": username, "password": PASSWORD}
    if campus:
        payload["campus"] = campus
    response = client.post("/auth/login", json=payload)
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def admin_client(app, users):
    return _login(app, "admin")


@pytest.fixture
def super_client(app, users):
    return _login(app, "full")


@pytest.fixture
def aimores_client(app, users):
    return _login(app, "tec.aimores", "Aimorés")


@pytest.fixture
def liberdade_client(app, users):
    return _login(app, "tec.liberdade", "Liberdade")


@pytest.fixture
def catalogue(app, campuses):
    """One category and one sector per campus."""
    with app.app_context():
        rows = {}
        for key in ("aimores", "liberdade"):
            campus_id = getattr(campuses, key)
            category = Category(name="Notebook", campus_id=campus_id)
            sector = Sector(name="Laboratório", campus_id=campus_id)
            db.session.add_all([category, sector])
            db.session.flush()
            rows[key] = SimpleNamespace(category=category.id, sector=sector.id)
        db.session.commit()
        return SimpleNamespace(**rows)


@pytest.fixture
def make_item(app, campuses, catalogue):
    def _make(campus="aimores", serial="SN-001", status="funcionando", **fields):
        with app.app_context():
            item = InventoryItem(
                campus_id=getattr(campuses, campus),
                category_id=getattr(catalogue, campus).category,
                sector_id=getattr(catalogue, campus).sector,
                serial=serial,
                status=status,
                **fields,
            )
            db.session.add(item)
            db.session.commit()
            return item.id
    return _make
