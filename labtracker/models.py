from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
import uuid

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, the format stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Profile(db.Model):
    __tablename__ = "profiles"
    id = db.Column(db.String(36), primary_key=True)  # same id as the Cognito sub
    full_name = db.Column(db.String(200))
    username = db.Column(db.String(100))
    onboarding_completed = db.Column(db.Boolean)
    onboarding_step = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "username": self.username,
            "onboarding_completed": self.onboarding_completed,
            "onboarding_step": self.onboarding_step,
        }


class UserRole(db.Model):
    __tablename__ = "user_roles"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), unique=True, index=True, nullable=False)
    role = db.Column(db.String(20), nullable=False, default="subscriber")  # admin / subscriber / lab
    created_at = db.Column(db.DateTime, default=utcnow)


class Lab(db.Model):
    __tablename__ = "labs"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    contact_email = db.Column(db.String(200))
    location = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "contact_email": self.contact_email,
            "location": self.location,
        }


class LabUser(db.Model):
    __tablename__ = "lab_users"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    lab_id = db.Column(db.String(36), db.ForeignKey("labs.id"), index=True, nullable=False)
    user_id = db.Column(db.String(36), index=True, nullable=False)
    role = db.Column(db.String(20), nullable=False, default="member")  # admin / member
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class Product(db.Model):
    __tablename__ = "products"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=utcnow)


class Quote(db.Model):
    __tablename__ = "quotes"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    quote_number = db.Column(db.String(50))
    lab_quote_number = db.Column(db.String(50))
    status = db.Column(db.String(40), nullable=False, default="draft")
    user_id = db.Column(db.String(36), index=True, nullable=False)
    lab_id = db.Column(db.String(36), db.ForeignKey("labs.id"), index=True, nullable=False)
    notes = db.Column(db.Text)
    tracking_number = db.Column(db.String(100))
    shipped_date = db.Column(db.DateTime)
    payment_status = db.Column(db.String(40))
    payment_amount_usd = db.Column(db.Numeric(12, 2))
    payment_date = db.Column(db.DateTime)
    transaction_id = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    lab = db.relationship("Lab", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "quote_number": self.quote_number,
            "lab_quote_number": self.lab_quote_number,
            "status": self.status,
            "user_id": self.user_id,
            "lab_id": self.lab_id,
            "lab_name": self.lab.name if self.lab else None,
            "notes": self.notes,
            "tracking_number": self.tracking_number,
            "shipped_date": _iso(self.shipped_date),
            "payment_status": self.payment_status,
            "payment_amount_usd": float(self.payment_amount_usd) if self.payment_amount_usd is not None else None,
            "payment_date": _iso(self.payment_date),
            "transaction_id": self.transaction_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class QuoteItem(db.Model):
    __tablename__ = "quote_items"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    quote_id = db.Column(db.String(36), db.ForeignKey("quotes.id"), index=True, nullable=False)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    additional_samples = db.Column(db.Integer)
    additional_report_headers = db.Column(db.Integer)
    price = db.Column(db.Numeric(12, 2))
    # raw user input, parsed when pricing is resolved
    sample_price_override = db.Column(db.String(50))
    header_price_override = db.Column(db.String(50))
    report_file = db.Column(db.String(500))
    status = db.Column(db.String(40))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_category": self.product.category if self.product else None,
            "additional_samples": self.additional_samples,
            "additional_report_headers": self.additional_report_headers,
            "price": float(self.price) if self.price is not None else None,
            "sample_price_override": self.sample_price_override,
            "header_price_override": self.header_price_override,
            "report_file": self.report_file,
            "status": self.status,
        }


class Subscription(db.Model):
    __tablename__ = "subscriptions"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), unique=True, index=True, nullable=False)
    tier = db.Column(db.String(20), nullable=False, default="free")  # free / pro / enterprise
    monthly_item_limit = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    current_period_start = db.Column(db.DateTime, nullable=False)
    current_period_end = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tier": self.tier,
            "monthly_item_limit": self.monthly_item_limit,
            "is_active": self.is_active,
            "current_period_start": _iso(self.current_period_start),
            "current_period_end": _iso(self.current_period_end),
        }


class UsageTracking(db.Model):
    __tablename__ = "usage_tracking"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), index=True, nullable=False)
    items_sent_this_month = db.Column(db.Integer, nullable=False, default=0)
    period_start = db.Column(db.DateTime, nullable=False)
    period_end = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items_sent_this_month": self.items_sent_this_month,
            "period_start": _iso(self.period_start),
            "period_end": _iso(self.period_end),
        }
