def test_dashboard_figures(client, admin_headers, make_product, make_category):
    make_category("Shoes")
    boot = make_product(name="Boot", price=50, cost=30, stock=4)
    make_product(name="Sock", price=5, cost=2, stock=10, status="inactive")
    make_product(name="Lace", price=1, cost=0.5, stock=2)

    client.post("/api/sales", json={"cart_data": [{"id": boot["id"], "name": "Boot", "quantity": 2}],
                                    "total": 100})
    client.post("/api/sales", json={"cart_data": [{"name": "Gift card"}], "total": 25})
    cancelled = client.post("/api/sales", json={"cart_data": [{"id": boot["id"], "quantity": 9}],
                                                "total": 450}).get_json()["data"]
    client.put(f"/api/admin/sales/{cancelled['sale_id']}", json={"status": "cancelled"}, headers=admin_headers)

    r = client.get("/api/admin/dashboard", headers=admin_headers)
    assert r.status_code == 200
    data = r.get_json()["data"]

    assert data["total_products"] == 3
    assert data["active_products"] == 2
    assert data["total_categories"] == 1
    assert data["total_sales"] == 3
    assert data["sales_by_status"] == {"pending": 2, "cancelled": 1}
    assert data["revenue"] == 125.0
    assert data["units_sold"] == 3
    # 30*4 + 2*10 + 0.5*2 and 50*4 + 5*10 + 1*2
    assert data["total_investment"] == 141.0
    assert data["inventory_value"] == 252.0
    assert data["potential_profit"] == 111.0
    assert data["top_products"][0] == {"product_id": boot["id"], "name": "Boot", "quantity": 2}
    assert [p["name"] for p in data["low_stock"]] == ["Lace", "Boot"]
    assert len(data["recent_sales"]) == 3


def test_dashboard_on_empty_store(client, admin_headers):
    data = client.get("/api/admin/dashboard", headers=admin_headers).get_json()["data"]
    assert data["total_products"] == 0
    assert data["revenue"] == 0.0
    assert data["total_investment"] == 0.0
    assert data["top_products"] == []
    assert data["recent_sales"] == []


def test_dashboard_requires_admin(client):
    assert client.get("/api/admin/dashboard").status_code == 401
