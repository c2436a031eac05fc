import os

# Configurar environment ANTES de cualquier import de la app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-2")

import pytest
from jose import jwt

from labtracker import app as flask_app
from labtracker.cache import query_cache
from labtracker.models import db, Lab, LabUser, Product, Profile, Quote, QuoteItem, UserRole


@pytest.fixture
def app():
    """App with a fresh in-memory database per test"""
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.create_all()
        query_cache.clear()
        yield flask_app
        db.session.remove()
        db.drop_all()
    query_cache.clear()


@pytest.fixture
def client(app):
    return app.test_client()


def make_token(user_id, email=None):
    claims = {"sub": user_id, "email": email or f"{user_id}@example.com"}
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def headers_for():
    return auth_headers


def add_user(user_id, role="subscriber", full_name=None, username=None, onboarding_completed=None, onboarding_step=None):
    db.session.add(UserRole(user_id=user_id, role=role))
    db.session.add(Profile(
        id=user_id,
        full_name=full_name,
        username=username,
        onboarding_completed=onboarding_completed,
        onboarding_step=onboarding_step,
    ))
    db.session.commit()


def add_lab(name="Acme Labs"):
    lab = Lab(name=name)
    db.session.add(lab)
    db.session.commit()
    return lab


def add_lab_user(lab, user_id, role="member", is_active=True):
    lab_user = LabUser(lab_id=lab.id, user_id=user_id, role=role, is_active=is_active)
    db.session.add(lab_user)
    db.session.commit()
    return lab_user


def add_quote(user_id, lab, status="draft", created_at=None, **fields):
    quote = Quote(user_id=user_id, lab_id=lab.id, status=status, **fields)
    if created_at is not None:
        quote.created_at = created_at
    db.session.add(quote)
    db.session.commit()
    return quote


def add_item(quote, product_name="Semaglutide", **fields):
    product = Product(name=product_name)
    db.session.add(product)
    db.session.flush()
    item = QuoteItem(quote_id=quote.id, product_id=product.id, **fields)
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture
def lab(app):
    return add_lab()


@pytest.fixture
def admin(app):
    add_user("admin-1", role="admin", username="root")
    return "admin-1"


@pytest.fixture
def customer(app):
    add_user("customer-1", role="subscriber", full_name="Casey Customer")
    return "customer-1"


