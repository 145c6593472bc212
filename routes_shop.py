# routes_shop.py
from datetime import datetime

from flask import Blueprint, current_app, g, request
from sqlalchemy import func, or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import current_principal, customer_required, issue_token
from errors import (
    AuthenticationError, ConflictError, ForbiddenError, NotFoundError,
    ValidationError, fail, ok,
)
from models import db, Category, Customer, Product, Sale
from services import (
    MIN_PASSWORD_LENGTH, catalog_filters, check_login, generate_order_number,
    get_or_404, json_body, parse_amount, parse_email, parse_limit,
    parse_optional_text, parse_required_text, product_query,
)

bp = Blueprint("shop", __name__, url_prefix="/api")


# ---------- Health ----------

@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        products = Product.query.count()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Health check failed")
        error = str(e) if current_app.config.get("EXPOSE_ERRORS") else None
        return fail("Database unavailable", 500, error=error)
    return ok(
        message="Server running",
        timestamp=datetime.utcnow().isoformat() + "Z",
        database={"connected": True, "products": products},
        env={"name": current_app.config.get("ENV_NAME")},
    )


# ---------- Catalog ----------

@bp.get("/products")
def list_products():
    limit = parse_limit(request.args.get("limit"), 50)
    products = (
        product_query(**catalog_filters(request.args))
        .filter(Product.status == "active")
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit).all()
    )
    return ok([p.to_dict() for p in products], count=len(products))


@bp.get("/products/<int:product_id>")
def get_product(product_id):
    product = get_or_404(Product, product_id, "Product not found")
    if not product.is_active:
        raise NotFoundError("Product not found")
    return ok(product.to_dict())


@bp.get("/categories")
def list_categories():
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.status == "active", Product.category_id.isnot(None))
        .group_by(Product.category_id).all()
    )
    categories = Category.query.order_by(Category.name.asc()).all()
    return ok([
        c.to_dict(product_count=counts.get(c.id, 0), with_subcategories=True)
        for c in categories
    ])


# ---------- Sales ----------

def _sale_customer():
    claims = current_principal(optional=True)
    if not claims or claims.get("role") != "customer":
        return None
    customer = db.session.get(Customer, claims["principal_id"])
    if not customer or not customer.active:
        raise ForbiddenError("Customer session is no longer valid")
    return customer


@bp.post("/sales")
def create_sale():
    data = json_body()
    cart = data.get("cart_data")
    if not isinstance(cart, list) or not cart:
        raise ValidationError("Cart is empty")
    if not all(isinstance(item, dict) for item in cart):
        raise ValidationError("Cart items must be objects")
    try:
        total = parse_amount(data.get("total"), "total")
    except ValidationError:
        raise ValidationError("Invalid total")
    if total <= 0:
        raise ValidationError("Invalid total")

    customer = _sale_customer()
    sale = Sale(
        order_number=generate_order_number(),
        customer_id=customer.id if customer else None,
        cart_data=cart,
        total=total,
        client_name=parse_optional_text(data.get("client_name") or "", "client_name")
        or (customer.name if customer else "Guest"),
        client_email=(parse_optional_text(data.get("client_email") or "", "client_email")
                      or (customer.email if customer else "")).lower(),
        client_phone=parse_optional_text(data.get("client_phone") or "", "client_phone")
        or ((customer.phone or "") if customer else ""),
        payment_method=parse_optional_text(data.get("payment_method") or "", "payment_method"),
        notes=parse_optional_text(data.get("notes") or "", "notes"),
        status="pending",
    )
    db.session.add(sale)
    db.session.commit()
    current_app.logger.info(f"Sale {sale.order_number} registered ({len(cart)} lines, total {sale.total})")
    return ok(
        {"sale_id": sale.id, "order_number": sale.order_number, "total": float(total)},
        message="Sale registered", status=201,
    )


# ---------- Customers ----------

@bp.post("/clients/register")
def register_client():
    data = json_body()
    if not all(str(data.get(f) or "").strip() for f in ("username", "password", "name", "email")):
        raise ValidationError("Required fields: username, password, name, email")
    username = parse_required_text(data["username"], "username")
    name = parse_required_text(data["name"], "name")
    email = parse_email(data["email"])
    password = data["password"]
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    current_app.logger.info(f"Registration attempt for '{username}'")
    taken = Customer.query.filter(
        or_(Customer.username == username, Customer.email == email)
    ).first()
    if taken:
        raise ConflictError("Username or email is already registered")

    customer = Customer(
        username=username,
        name=name,
        email=email,
        phone=parse_optional_text(data.get("phone") or "", "phone"),
        address=parse_optional_text(data.get("address") or "", "address"),
        role="customer",
    )
    customer.set_password(password)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent registration
        db.session.rollback()
        raise ConflictError("Username or email is already registered")
    current_app.logger.info(f"Customer {customer.id} registered")
    return ok({"user": customer.to_dict()}, message="Customer registered", status=201)


@bp.post("/clients/login")
def login_client():
    data = json_body()
    identifier = str(data.get("identifier") or data.get("username") or data.get("email") or "").strip()
    password = data.get("password")
    if not identifier or not password:
        raise ValidationError("Username/email and password are required")

    customer = Customer.query.filter(
        or_(Customer.username == identifier, Customer.email == identifier.lower())
    ).first()
    try:
        check_login(customer, str(password))
    except AuthenticationError:
        current_app.logger.info(f"Failed customer login for '{identifier}'")
        raise
    if not customer.active:
        raise ForbiddenError("Account is disabled")

    customer.last_login = datetime.utcnow()
    db.session.commit()
    current_app.logger.info(f"Customer login: {customer.username}")
    return ok({"token": issue_token(customer), "user": customer.to_dict()}, message="Login successful")


def _me():
    customer = db.session.get(Customer, g.principal["principal_id"])
    if not customer or not customer.active:
        raise AuthenticationError("Session is no longer valid")
    return customer


@bp.get("/clients/me")
@customer_required
def client_profile():
    return ok(_me().to_dict())


@bp.get("/clients/me/sales")
@customer_required
def client_sales():
    customer = _me()
    limit = parse_limit(request.args.get("limit"), 50)
    sales = (
        Sale.query.filter_by(customer_id=customer.id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit).all()
    )
    return ok([s.to_dict() for s in sales], count=len(sales))
