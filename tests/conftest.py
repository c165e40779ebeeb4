import pytest

from app import create_app
from config import TestConfig
from models import db
from models.business import Business, CapacityMode, default_operating_hours
from models.service import Service
from scheduling.generator import generate_for_date
from tests.helpers import FRIDAY


@pytest.fixture
def app(tmp_path):
    # file-backed so worker threads share one database
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "test.db")

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_business(app):
    counter = {"n": 0}

    def _make(capacity=2, hours=None, mode=CapacityMode.SLOTS, slug=None, time_zone="UTC"):
        counter["n"] += 1
        business = Business(
            name=f"Salon {counter['n']}",
            slug=slug or f"salon-{counter['n']}",
            capacity=capacity,
            capacity_mode=mode,
            time_zone=time_zone,
            operating_hours=hours if hours is not None else default_operating_hours(),
        )
        db.session.add(business)
        db.session.commit()
        return business

    return _make


@pytest.fixture
def make_service(app):
    def _make(business, name="Haircut", duration=30, price=100000, active=True, position=0):
        service = Service(
            business_id=business.id,
            name=name,
            name_normalized=name.strip().lower(),
            duration_minutes=duration,
            price_cents=price,
            active=active,
            position=position,
        )
        db.session.add(service)
        db.session.commit()
        return service

    return _make


@pytest.fixture
def make_slots(app):
    def _make(business, day=FRIDAY):
        created = generate_for_date(business, day)
        db.session.commit()
        return created

    return _make
