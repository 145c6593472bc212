# routes_admin.py
from datetime import datetime

from flask import Blueprint, current_app, g, request
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from auth import admin_required, issue_token
from errors import AuthenticationError, ConflictError, ValidationError, ok
from models import db, Administrator, Category, Customer, Product, Sale, Subcategory
from services import (
    CATEGORY_FIELDS, CUSTOMER_FIELDS, MIN_PASSWORD_LENGTH, PRODUCT_ALIASES,
    PRODUCT_FIELDS, SUBCATEGORY_FIELDS, apply_patch, catalog_filters,
    check_login, dashboard_summary, filter_value, get_or_404, json_body,
    like_pattern, parse_flag, parse_limit, parse_new_product, parse_optional_id,
    parse_patch, parse_product_status, parse_sale_status, product_query,
)

bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# ---------- Session ----------

@bp.post("/login")
def admin_login():
    data = json_body()
    username = str(data.get("username") or "").strip()
    password = data.get("password")
    if not username or not password:
        raise ValidationError("Username and password are required")

    admin = Administrator.query.filter_by(username=username).first()
    try:
        check_login(admin, str(password))
    except AuthenticationError:
        current_app.logger.info(f"Failed admin login for '{username}'")
        raise

    current_app.logger.info(f"Admin login: {username}")
    return ok({"token": issue_token(admin), "admin": admin.to_dict()}, message="Login successful")


@bp.get("/verify")
@admin_required
def admin_verify():
    admin = db.session.get(Administrator, g.principal["principal_id"])
    if not admin:
        raise AuthenticationError("Session is no longer valid")
    return ok({"admin": admin.to_dict()})


@bp.get("/dashboard")
@admin_required
def dashboard():
    return ok(dashboard_summary(current_app.config.get("LOW_STOCK_THRESHOLD", 5)))


# ---------- Categories ----------

@bp.get("/categories")
@admin_required
def list_categories():
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.category_id.isnot(None))
        .group_by(Product.category_id).all()
    )
    categories = Category.query.order_by(Category.name.asc()).all()
    return ok([
        c.to_dict(product_count=counts.get(c.id, 0), with_subcategories=True)
        for c in categories
    ])


@bp.post("/categories")
@admin_required
def create_category():
    patch = parse_patch(json_body(), CATEGORY_FIELDS)
    if "name" not in patch:
        raise ValidationError("Category name is required")
    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    current_app.logger.info(f"Category created: {category.id}")
    return ok(category.to_dict(), status=201)


@bp.put("/categories/<int:category_id>")
@admin_required
def update_category(category_id):
    category = get_or_404(Category, category_id, "Category not found")
    apply_patch(category, parse_patch(json_body(), CATEGORY_FIELDS))
    db.session.commit()
    return ok(category.to_dict())


@bp.delete("/categories/<int:category_id>")
@admin_required
def delete_category(category_id):
    category = get_or_404(Category, category_id, "Category not found")
    sub_ids = [s.id for s in category.subcategories]
    Product.query.filter(Product.category_id == category.id).update(
        {"category_id": None, "subcategory_id": None}, synchronize_session=False
    )
    if sub_ids:
        Product.query.filter(Product.subcategory_id.in_(sub_ids)).update(
            {"subcategory_id": None}, synchronize_session=False
        )
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info(f"Category deleted: {category_id} ({len(sub_ids)} subcategories)")
    return ok({"id": category_id}, message="Category deleted")


@bp.get("/categories/<int:category_id>/subcategories")
@admin_required
def category_subcategories(category_id):
    get_or_404(Category, category_id, "Category not found")
    subs = Subcategory.query.filter_by(category_id=category_id).order_by(Subcategory.name.asc()).all()
    return ok([s.to_dict() for s in subs])


# ---------- Subcategories ----------

@bp.get("/subcategories")
@admin_required
def list_subcategories():
    query = Subcategory.query
    category_id = filter_value(request.args.get("category_id"))
    if category_id:
        query = query.filter_by(category_id=parse_optional_id(category_id, "category_id"))
    subs = query.order_by(Subcategory.name.asc()).all()
    return ok([s.to_dict() for s in subs])


@bp.post("/subcategories")
@admin_required
def create_subcategory():
    patch = parse_patch(json_body(), SUBCATEGORY_FIELDS)
    if not patch.get("category_id") or "name" not in patch:
        raise ValidationError("category_id and name are required")
    get_or_404(Category, patch["category_id"], "Category not found")
    sub = Subcategory(**patch)
    db.session.add(sub)
    db.session.commit()
    current_app.logger.info(f"Subcategory created: {sub.id}")
    return ok(sub.to_dict(), status=201)


@bp.put("/subcategories/<int:subcategory_id>")
@admin_required
def update_subcategory(subcategory_id):
    sub = get_or_404(Subcategory, subcategory_id, "Subcategory not found")
    patch = parse_patch(json_body(), SUBCATEGORY_FIELDS)
    if "category_id" in patch:
        if patch["category_id"] is None:
            raise ValidationError("A subcategory must belong to a category")
        get_or_404(Category, patch["category_id"], "Category not found")
        # products follow their subcategory
        Product.query.filter(Product.subcategory_id == sub.id).update(
            {"category_id": patch["category_id"]}, synchronize_session=False
        )
    apply_patch(sub, patch)
    db.session.commit()
    return ok(sub.to_dict())


@bp.delete("/subcategories/<int:subcategory_id>")
@admin_required
def delete_subcategory(subcategory_id):
    sub = get_or_404(Subcategory, subcategory_id, "Subcategory not found")
    Product.query.filter(Product.subcategory_id == sub.id).update(
        {"subcategory_id": None}, synchronize_session=False
    )
    db.session.delete(sub)
    db.session.commit()
    current_app.logger.info(f"Subcategory deleted: {subcategory_id}")
    return ok({"id": subcategory_id}, message="Subcategory deleted")


# ---------- Products ----------

def _resolve_references(patch, product=None):
    """Check category/subcategory ids in ``patch`` and keep the pair consistent."""
    category_id = patch.get("category_id", product.category_id if product else None)
    subcategory_id = patch.get("subcategory_id", product.subcategory_id if product else None)

    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError("Category not found")
    if subcategory_id is None:
        return patch

    if category_id is None and "category_id" in patch and "subcategory_id" not in patch:
        # clearing the category clears its subcategory too
        patch["subcategory_id"] = None
        return patch

    sub = db.session.get(Subcategory, subcategory_id)
    if sub is None:
        raise ValidationError("Subcategory not found")
    if category_id is None:
        patch["category_id"] = sub.category_id
    elif sub.category_id != category_id:
        if "subcategory_id" in patch:
            raise ValidationError("Subcategory does not belong to the category")
        # category moved; the old subcategory no longer applies
        patch["subcategory_id"] = None
    return patch


@bp.get("/products")
@admin_required
def list_products():
    limit = parse_limit(request.args.get("limit"), 100)
    query = product_query(**catalog_filters(request.args))
    status = filter_value(request.args.get("status"))
    if status:
        query = query.filter(Product.status == parse_product_status(status))
    products = query.order_by(Product.created_at.desc(), Product.id.desc()).limit(limit).all()
    return ok([p.to_dict() for p in products], count=len(products))


@bp.get("/products/<int:product_id>")
@admin_required
def get_product(product_id):
    return ok(get_or_404(Product, product_id, "Product not found").to_dict())


@bp.post("/products")
@admin_required
def create_product():
    fields = _resolve_references(parse_new_product(json_body()))
    now = datetime.utcnow()
    product = Product(created_at=now, updated_at=now, **fields)
    db.session.add(product)
    db.session.commit()
    current_app.logger.info(f"Product created: {product.id}")
    return ok(product.to_dict(), status=201)


@bp.put("/products/<int:product_id>")
@admin_required
def update_product(product_id):
    product = get_or_404(Product, product_id, "Product not found")
    patch = _resolve_references(parse_patch(json_body(), PRODUCT_FIELDS, PRODUCT_ALIASES), product)
    apply_patch(product, patch)
    product.updated_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info(f"Product updated: {product_id} ({', '.join(sorted(patch)) or 'no fields'})")
    return ok(product.to_dict())


@bp.delete("/products/<int:product_id>")
@admin_required
def delete_product(product_id):
    product = get_or_404(Product, product_id, "Product not found")
    deleted = {"id": product.id, "name": product.name}
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info(f"Product deleted: {product_id}")
    return ok(deleted, message="Product deleted")


# ---------- Customers ----------

@bp.get("/clients")
@admin_required
def list_clients():
    limit = parse_limit(request.args.get("limit"), 100)
    query = Customer.query
    search = filter_value(request.args.get("search"))
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            Customer.username.ilike(pattern, escape="\\"),
            Customer.name.ilike(pattern, escape="\\"),
            Customer.email.ilike(pattern, escape="\\"),
        ))
    active = filter_value(request.args.get("active"))
    if active:
        query = query.filter(Customer.active.is_(parse_flag(active, "active")))
    clients = query.order_by(Customer.created_at.desc(), Customer.id.desc()).limit(limit).all()
    return ok([c.to_dict() for c in clients], count=len(clients))


@bp.get("/clients/<int:client_id>")
@admin_required
def get_client(client_id):
    customer = get_or_404(Customer, client_id, "Customer not found")
    data = customer.to_dict()
    data["sales_count"] = Sale.query.filter_by(customer_id=customer.id).count()
    return ok(data)


@bp.put("/clients/<int:client_id>")
@admin_required
def update_client(client_id):
    customer = get_or_404(Customer, client_id, "Customer not found")
    data = json_body()
    patch = parse_patch(data, CUSTOMER_FIELDS)
    if "email" in patch and Customer.query.filter(
        Customer.email == patch["email"], Customer.id != customer.id
    ).first():
        raise ConflictError("Email is already registered")

    apply_patch(customer, patch)
    password = data.get("password")
    if password is not None:
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        customer.set_password(password)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email is already registered")
    return ok(customer.to_dict())


@bp.delete("/clients/<int:client_id>")
@admin_required
def delete_client(client_id):
    customer = get_or_404(Customer, client_id, "Customer not found")
    deleted = {"id": customer.id, "username": customer.username}
    # sales keep their denormalized contact fields
    Sale.query.filter(Sale.customer_id == customer.id).update(
        {"customer_id": None}, synchronize_session=False
    )
    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info(f"Customer deleted: {client_id}")
    return ok(deleted, message="Customer deleted")


# ---------- Sales ----------

@bp.get("/sales")
@admin_required
def list_sales():
    limit = parse_limit(request.args.get("limit"), 50)
    query = Sale.query
    status = filter_value(request.args.get("status"))
    if status:
        query = query.filter(Sale.status == parse_sale_status(status))
    search = filter_value(request.args.get("search"))
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            Sale.order_number.ilike(pattern, escape="\\"),
            Sale.client_name.ilike(pattern, escape="\\"),
            Sale.client_email.ilike(pattern, escape="\\"),
        ))
    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    return ok([s.to_dict() for s in sales], count=len(sales))


@bp.get("/sales/<int:sale_id>")
@admin_required
def get_sale(sale_id):
    return ok(get_or_404(Sale, sale_id, "Sale not found").to_dict())


@bp.put("/sales/<int:sale_id>")
@admin_required
def update_sale(sale_id):
    data = json_body()
    if data.get("status") in (None, ""):
        raise ValidationError("Status is required")
    status = parse_sale_status(data["status"])
    sale = get_or_404(Sale, sale_id, "Sale not found")
    sale.status = status
    sale.updated_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info(f"Sale {sale.order_number} set to {status}")
    return ok(sale.to_dict())


@bp.delete("/sales/<int:sale_id>")
@admin_required
def delete_sale(sale_id):
    sale = get_or_404(Sale, sale_id, "Sale not found")
    deleted = {"id": sale.id, "order_number": sale.order_number}
    db.session.delete(sale)
    db.session.commit()
    current_app.logger.info(f"Sale deleted: {deleted['order_number']}")
    return ok(deleted, message="Sale deleted")
