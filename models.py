from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Numeric
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

PRODUCT_STATUSES = ("active", "inactive")
SALE_STATUSES = ("pending", "processing", "shipped", "completed", "cancelled")


def _money(value):
    return float(value) if value is not None else 0.0


def _iso(value):
    return value.isoformat() if value else None


class Category(db.Model):
    __tablename__ = "categories"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    subcategories = db.relationship(
        "Subcategory", backref="category", cascade="all, delete-orphan", order_by="Subcategory.name",
    )

    def to_dict(self, product_count=None, with_subcategories=False):
        data = {"id": self.id, "name": self.name, "created_at": _iso(self.created_at)}
        if product_count is not None:
            data["product_count"] = product_count
        if with_subcategories:
            data["subcategories"] = [{"id": s.id, "name": s.name} for s in self.subcategories]
        return data


class Subcategory(db.Model):
    __tablename__ = "subcategories"
    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "created_at": _iso(self.created_at),
        }


class Product(db.Model):
    __tablename__ = "products"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    subcategory_id = db.Column(
        db.Integer, db.ForeignKey("subcategories.id", ondelete="SET NULL"), nullable=True
    )
    price = db.Column(Numeric(10, 2), nullable=False)
    cost = db.Column(Numeric(10, 2), nullable=False, default=0)
    description = db.Column(db.Text, nullable=False, default="")
    image_base64 = db.Column(db.Text)
    stock = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    featured = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    category = db.relationship("Category", lazy="joined")
    subcategory = db.relationship("Subcategory", lazy="joined")

    @property
    def is_active(self):
        return self.status == "active"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "subcategory_id": self.subcategory_id,
            "subcategory_name": self.subcategory.name if self.subcategory else None,
            "price": _money(self.price),
            "cost": _money(self.cost),
            "description": self.description or "",
            "image_base64": self.image_base64,
            "stock": self.stock or 0,
            "status": self.status,
            "featured": bool(self.featured),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Administrator(db.Model):
    __tablename__ = "administrators"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, default="")
    role = db.Column(db.String(50), nullable=False, default="admin")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_password(self, p): self.password_hash = generate_password_hash(p)
    def check_password(self, p): return check_password_hash(self.password_hash, p)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "created_at": _iso(self.created_at),
        }


class Customer(db.Model):
    __tablename__ = "customers"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    active = db.Column(db.Boolean, nullable=False, default=True)
    role = db.Column(db.String(50), nullable=False, default="customer")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    def set_password(self, p): self.password_hash = generate_password_hash(p)
    def check_password(self, p): return check_password_hash(self.password_hash, p)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "active": bool(self.active),
            "role": self.role,
            "created_at": _iso(self.created_at),
            "last_login": _iso(self.last_login),
        }


class Sale(db.Model):
    __tablename__ = "sales"
    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(100), unique=True, nullable=False)
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    cart_data = db.Column(db.JSON, nullable=False)
    total = db.Column(Numeric(10, 2), nullable=False)
    client_name = db.Column(db.String(255), nullable=False, default="")
    client_email = db.Column(db.String(255), nullable=False, default="")
    client_phone = db.Column(db.String(30), nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(50))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "cart_data": self.cart_data,
            "total": _money(self.total),
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "status": self.status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
