import logging
import re
import secrets
import string
from collections import defaultdict
from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import request
from sqlalchemy import func, or_
from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthenticationError, NotFoundError, ValidationError
from models import (
    db, Administrator, Category, Customer, Product, Sale,
    PRODUCT_STATUSES, SALE_STATUSES,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
MAX_LIMIT = 500
# Numeric(10, 2) columns and 32-bit integer columns
MAX_AMOUNT = Decimal("99999999.99")
MAX_INT = 2 ** 31 - 1

INVALID_CREDENTIALS = "Invalid credentials"
# checked when no account matches the login name
_DUMMY_PASSWORD_HASH = generate_password_hash(secrets.token_hex(16))

# legacy spellings still sent by older admin panels
STATUS_ALIASES = {"activo": "active", "inactivo": "inactive"}


def generate_order_id(length=8):
    alphabet = string.ascii_uppercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_order_number(now=None):
    stamp = (now or datetime.utcnow()).strftime("%Y%m%d%H%M%S")
    return f"ORD-{stamp}-{generate_order_id(6)}"


def money(value): return float(value or 0)


# ---------- Field parsers ----------

def parse_text(value, field):
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValidationError(f"{field} must be text")
    return str(value).strip()


def parse_required_text(value, field):
    text = parse_text(value, field)
    if not text:
        raise ValidationError(f"{field} cannot be empty")
    return text


def parse_optional_text(value, field):
    return parse_text(value, field) or None


def parse_amount(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be zero or positive")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    try:
        return amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")


def parse_count(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number")
    try:
        count = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a whole number")
    if count < 0:
        raise ValidationError(f"{field} cannot be negative")
    if count > MAX_INT:
        raise ValidationError(f"{field} is too large")
    return count


def parse_flag(value, field):
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValidationError(f"{field} must be true or false")


def parse_optional_id(value, field):
    """Empty string or 0 clears the reference."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an id")
    if value in ("", 0, "0"):
        return None
    try:
        ident = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be an id")
    if ident < 0 or ident > MAX_INT:
        raise ValidationError(f"{field} must be an id")
    return ident or None


def parse_product_status(value, field="status"):
    status = parse_text(value, field).lower()
    status = STATUS_ALIASES.get(status, status)
    if status not in PRODUCT_STATUSES:
        raise ValidationError(f"{field} must be one of: {', '.join(PRODUCT_STATUSES)}")
    return status


def parse_sale_status(value, field="status"):
    status = parse_text(value, field).lower()
    if status not in SALE_STATUSES:
        raise ValidationError(f"{field} must be one of: {', '.join(SALE_STATUSES)}")
    return status


def parse_email(value, field="email"):
    email = parse_required_text(value, field).lower()
    if not EMAIL_RE.match(email):
        raise ValidationError(f"{field} is not a valid email address")
    return email


def parse_limit(value, default):
    if value in (None, ""):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError("limit must be a whole number")
    if limit < 1:
        raise ValidationError("limit must be positive")
    return min(limit, MAX_LIMIT)


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def filter_value(value):
    """Query-string filter; empty and ``all`` mean no filter."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "all":
        return None
    return value


def like_pattern(search):
    """Substring pattern for ``ilike`` with the LIKE wildcards escaped."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def get_or_404(model, ident, message):
    row = db.session.get(model, ident) if 0 < ident <= MAX_INT else None
    if row is None:
        raise NotFoundError(message)
    return row


def check_login(account, password):
    """Return ``account`` if ``password`` matches, else raise the generic 401."""
    if account is None:
        check_password_hash(_DUMMY_PASSWORD_HASH, password)
        raise AuthenticationError(INVALID_CREDENTIALS)
    if not account.check_password(password):
        raise AuthenticationError(INVALID_CREDENTIALS)
    return account


# ---------- Catalog queries ----------

def product_query(search=None, category_id=None, subcategory_id=None, featured=None):
    query = Product.query
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if subcategory_id is not None:
        query = query.filter(Product.subcategory_id == subcategory_id)
    if featured is not None:
        query = query.filter(Product.featured.is_(featured))
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            Product.name.ilike(pattern, escape="\\"), Product.description.ilike(pattern, escape="\\")
        ))
    return query


def catalog_filters(args):
    category_id = filter_value(args.get("category_id"))
    subcategory_id = filter_value(args.get("subcategory_id"))
    featured = filter_value(args.get("featured"))
    return dict(
        search=filter_value(args.get("search")),
        category_id=parse_optional_id(category_id, "category_id") if category_id else None,
        subcategory_id=parse_optional_id(subcategory_id, "subcategory_id") if subcategory_id else None,
        featured=parse_flag(featured, "featured") if featured else None,
    )


# ---------- Patch tables ----------
# Every updatable column is listed here with its parser. Keys outside a
# table are ignored, so no request field ever names a column directly.

PRODUCT_FIELDS = {
    "name": parse_required_text,
    "category_id": parse_optional_id,
    "subcategory_id": parse_optional_id,
    "price": parse_amount,
    "cost": parse_amount,
    "description": parse_text,
    "image_base64": parse_optional_text,
    "stock": parse_count,
    "status": parse_product_status,
    "featured": parse_flag,
}
PRODUCT_ALIASES = {"invertido": "cost"}
PRODUCT_DEFAULTS = {
    "category_id": None,
    "subcategory_id": None,
    "cost": Decimal("0.00"),
    "description": "",
    "image_base64": None,
    "stock": 0,
    "status": "active",
    "featured": False,
}

CATEGORY_FIELDS = {"name": parse_required_text}

SUBCATEGORY_FIELDS = {
    "name": parse_required_text,
    "category_id": parse_optional_id,
}

CUSTOMER_FIELDS = {
    "name": parse_required_text,
    "email": parse_email,
    "phone": parse_optional_text,
    "address": parse_optional_text,
    "active": parse_flag,
}


def parse_patch(payload, fields, aliases=None):
    """Validate the known keys of ``payload`` against a patch table.

    Missing and null keys are left out of the result, so applying it keeps
    the stored value.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    for alias, target in (aliases or {}).items():
        if payload.get(target) is None and payload.get(alias) is not None:
            payload = {**payload, target: payload[alias]}
    patch = {}
    for field, parser in fields.items():
        value = payload.get(field)
        if value is None:
            continue
        patch[field] = parser(value, field)
    return patch


def parse_new_product(payload):
    patch = parse_patch(payload, PRODUCT_FIELDS, PRODUCT_ALIASES)
    if "name" not in patch or "price" not in patch:
        raise ValidationError("Name and price are required")
    return {**PRODUCT_DEFAULTS, **patch}


def apply_patch(row, patch):
    for field, value in patch.items():
        setattr(row, field, value)
    return row


# ---------- Cart helpers ----------

def cart_quantity(item):
    for key in ("quantity", "qty", "cantidad"):
        if key in item:
            try:
                return max(int(item[key]), 0)
            except (TypeError, ValueError):
                return 0
    return 1


def cart_label(item):
    for key in ("name", "nombre", "title"):
        if item.get(key):
            return str(item[key])
    return "Item"


def cart_product_id(item):
    for key in ("product_id", "id"):
        if item.get(key) is not None:
            return item[key]
    return None


# ---------- Admin bootstrap ----------

def ensure_admin(config):
    """Create or refresh the configured administrator, keyed by username.

    The row keeps its id across restarts so issued tokens stay bound to it.
    """
    username = (config.get("ADMIN_USERNAME") or "").strip()
    password = config.get("ADMIN_PASSWORD")
    if not username or not password:
        logger.warning("ADMIN_USERNAME/ADMIN_PASSWORD not set; skipping admin bootstrap")
        return None

    admin = Administrator.query.filter_by(username=username).first()
    created = admin is None
    if created:
        admin = Administrator(username=username, role="admin")
        db.session.add(admin)
    admin.name = config.get("ADMIN_NAME") or "Main Administrator"
    admin.email = config.get("ADMIN_EMAIL") or ""
    admin.role = "admin"
    if created or not admin.check_password(password):
        admin.set_password(password)
    db.session.commit()
    logger.info(f"Administrator '{username}' {'created' if created else 'reconciled'} from configuration")
    return admin


# ---------- Dashboard ----------

def dashboard_summary(low_stock_threshold=5, recent=10, top=5):
    investment, inventory_value = db.session.query(
        func.coalesce(func.sum(Product.cost * Product.stock), 0),
        func.coalesce(func.sum(Product.price * Product.stock), 0),
    ).one()
    investment, inventory_value = money(investment), money(inventory_value)

    revenue = 0.0
    units_sold = 0
    sold = {}
    sales_by_status = defaultdict(int)
    for sale in Sale.query.all():
        sales_by_status[sale.status] += 1
        if sale.status == "cancelled":
            continue
        revenue += money(sale.total)
        for item in sale.cart_data or []:
            if not isinstance(item, dict):
                continue
            qty = cart_quantity(item)
            units_sold += qty
            product_id = cart_product_id(item)
            key = str(product_id) if product_id is not None else cart_label(item)
            entry = sold.setdefault(key, {"product_id": product_id, "name": cart_label(item), "quantity": 0})
            entry["quantity"] += qty

    top_products = sorted(sold.values(), key=lambda entry: entry["quantity"], reverse=True)[:top]

    low_stock = (
        Product.query.filter(Product.stock <= low_stock_threshold, Product.status == "active")
        .order_by(Product.stock.asc(), Product.name.asc()).all()
    )
    recent_sales = Sale.query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(recent).all()

    return {
        "total_products": Product.query.count(),
        "active_products": Product.query.filter_by(status="active").count(),
        "total_categories": Category.query.count(),
        "total_customers": Customer.query.count(),
        "total_sales": sum(sales_by_status.values()),
        "sales_by_status": dict(sales_by_status),
        "revenue": round(revenue, 2),
        "units_sold": units_sold,
        "total_investment": round(investment, 2),
        "inventory_value": round(inventory_value, 2),
        "potential_profit": round(inventory_value - investment, 2),
        "top_products": top_products,
        "low_stock": [{"id": p.id, "name": p.name, "stock": p.stock} for p in low_stock],
        "recent_sales": [s.to_dict() for s in recent_sales],
    }
