"""
Admin user management and the pathogen species catalogue.
"""

from conftest import DEFAULT_PASSWORD, SCENARIO_CSV

NEW_USER = {
    "email": "Field.Hand@Example.com",
    "password": "first-pass",
    "full_name": "Field Hand",
    "role": "sampler",
}


# =============================================================================
# Users
# =============================================================================

def test_sampler_cannot_manage_users(client, login_as):
    login_as("sampler")
    assert client.get("/api/users/").status_code == 403
    assert client.post("/api/users/", json=NEW_USER).status_code == 403


def test_create_list_and_get_user(client, login_as):
    login_as("admin")

    resp = client.post("/api/users/", json=NEW_USER)
    assert resp.status_code == 201
    created = resp.json()
    assert created["email"] == "field.hand@example.com"
    assert created["role"] == "sampler"
    assert created["is_active"] is True
    assert "password_hash" not in created

    listed = client.get("/api/users/").json()
    assert {u["email"] for u in listed} == {"admin@example.com", "field.hand@example.com"}
    assert all("password_hash" not in u for u in listed)

    assert client.get(f"/api/users/{created['id']}").json()["full_name"] == "Field Hand"
    assert client.get("/api/users/9999").status_code == 404


def test_duplicate_email_is_conflict(client, login_as):
    login_as("admin")
    client.post("/api/users/", json=NEW_USER)
    resp = client.post("/api/users/", json=dict(NEW_USER, email="field.hand@EXAMPLE.com"))
    assert resp.status_code == 409
    assert resp.json()["detail"] == "email_exists"


def test_created_user_can_log_in_and_password_can_change(client, login_as):
    login_as("admin")
    user_id = client.post("/api/users/", json=NEW_USER).json()["id"]

    resp = client.patch(f"/api/users/{user_id}", json={"password": "second-pass", "role": "viewer"})
    assert resp.status_code == 200
    assert resp.json()["role"] == "viewer"

    client.cookies.clear()
    old = client.post("/api/login", json={"email": NEW_USER["email"], "password": "first-pass"})
    assert old.status_code == 401
    new = client.post("/api/login", json={"email": NEW_USER["email"], "password": "second-pass"})
    assert new.status_code == 200
    assert new.json()["user"]["role"] == "viewer"


def test_deactivate_user(client, login_as, make_user):
    login_as("admin")
    other = make_user(email="old@example.com", role="sampler")

    resp = client.patch(f"/api/users/{other.id}", json={"is_active": False})
    assert resp.json()["is_active"] is False

    client.cookies.clear()
    resp = client.post("/api/login", json={"email": "old@example.com", "password": DEFAULT_PASSWORD})
    assert resp.status_code == 401


def test_admin_cannot_delete_self(client, login_as):
    admin = login_as("admin")
    resp = client.delete(f"/api/users/{admin.id}")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "cannot_delete_self"


def test_delete_user(client, login_as, make_user):
    login_as("admin")
    other = make_user(email="temp@example.com")

    assert client.delete(f"/api/users/{other.id}").status_code == 204
    assert client.get(f"/api/users/{other.id}").status_code == 404
    assert client.delete(f"/api/users/{other.id}").status_code == 404


def test_user_with_routes_cannot_be_deleted(client, login_as, make_user):
    sampler = login_as("sampler")
    client.post("/api/uploads/metabarcode", files={"file": ("run.csv", SCENARIO_CSV, "text/csv")})

    client.cookies.clear()
    login_as("admin")
    resp = client.delete(f"/api/users/{sampler.id}")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "user_has_records"


# =============================================================================
# Pathogen species
# =============================================================================

def test_species_listing(client, login_as):
    login_as("viewer")
    species = client.get("/api/pathogens/").json()
    names = [s["species_name"] for s in species]
    assert names == sorted(names)
    assert "Puccinia striiformis" in names

    rusts = client.get("/api/pathogens/", params={"disease_type": "Rust"}).json()
    assert {s["common_name"] for s in rusts} == {"Stripe Rust", "Stem Rust", "Leaf Rust"}


def test_species_creation_is_admin_only(client, login_as):
    login_as("sampler")
    payload = {"species_name": "Blumeria graminis", "common_name": "Powdery Mildew", "disease_type": "Mildew"}
    assert client.post("/api/pathogens/", json=payload).status_code == 403

    client.cookies.clear()
    login_as("admin")
    resp = client.post("/api/pathogens/", json=payload)
    assert resp.status_code == 201
    assert resp.json()["species_name"] == "Blumeria graminis"

    assert client.post("/api/pathogens/", json=payload).status_code == 409
