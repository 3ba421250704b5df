from datetime import date

import pytest

from finacco.api.http.api_keys import get_key_verifier
from finacco.api.http.tax_assistant import get_llm_client, get_rate_limiter
from finacco.core.errors import FormValidationError
from finacco.domains.assistant.rate_limit import SlidingWindowRateLimiter

from fakes import FakeLLM

API_KEY = "AIza" + "k" * 35

RENTAL_TEMPLATE = {
    "name": "Rental Agreement",
    "template_html": (
        "<p>Agreement between [party1] and [party2] on [current_date].</p>"
        "<!-- START witness --><p>Witness: [witness]</p><!-- END witness -->"
    ),
    "fields_json": (
        '[{"id": "party1", "label": "First Party", "required": true},'
        ' {"id": "party2", "label": "Second Party", "required": true},'
        ' {"id": "witness", "label": "Witness", "isRepeatable": true, "repeatableGroup": "step2"}]'
    ),
    "keywords": "rent, rental",
}


@pytest.fixture
def admin_headers(api):
    api.create_user("admin@example.com", admin=True)
    response = api.client.post("/admin/login", json={"email": "admin@example.com", "password": "secret123"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def user_headers(api):
    api.create_user("user@example.com")
    return api.sign_in("user@example.com")


@pytest.fixture
def template_id(api, admin_headers):
    response = api.client.post("/admin/templates", json=RENTAL_TEMPLATE, headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()["template"]["id"]


def test_health(api):
    assert api.client.get("/health").json() == {"status": "ok", "service": "finacco"}


def test_unknown_paths_redirect_home(api):
    response = api.client.get("/no/such/page")

    assert response.status_code == 307
    assert response.headers["location"] == "/"


def test_sign_in_entry_keeps_next(api):
    assert api.client.get("/auth", params={"next": "/account"}).json()["next"] == "/account"


def test_sign_up_confirm_and_sign_in(api):
    response = api.client.post("/auth/sign-up", json={"email": "new@example.com", "password": "secret123"})
    assert response.status_code == 201
    assert response.json()["is_confirmed"] is False

    response = api.client.post("/auth/sign-in", json={"email": "new@example.com", "password": "secret123"})
    assert response.status_code == 401
    assert response.json()["error"] == "email_not_confirmed"

    response = api.client.get("/auth/confirm", params={"token": api.mailer.last_token()})
    assert response.status_code == 303
    assert response.headers["location"] == "/auth/confirmation/success"

    headers = api.sign_in("new@example.com")
    assert api.client.get("/auth/me", headers=headers).json()["email"] == "new@example.com"


def test_bad_confirmation_link_redirects_to_error(api):
    response = api.client.get("/auth/confirm", params={"token": "expired"})

    assert response.headers["location"] == "/auth/confirmation/error"


def test_refresh_and_sign_out(api, user_headers):
    session = api.client.post("/auth/sign-in", json={"email": "user@example.com", "password": "secret123"}).json()

    refreshed = api.client.post("/auth/refresh", json={"refresh_token": session["refresh_token"]})
    assert refreshed.status_code == 200

    response = api.client.post("/auth/sign-out", json={"refresh_token": refreshed.json()["refresh_token"]})
    assert response.status_code == 200

    response = api.client.post("/auth/refresh", json={"refresh_token": refreshed.json()["refresh_token"]})
    assert response.status_code == 401


def test_password_reset_does_not_reveal_accounts(api, user_headers):
    unknown = api.client.post("/auth/reset-password", json={"email": "nobody@example.com"})
    known = api.client.post("/auth/reset-password", json={"email": "user@example.com"})

    assert unknown.json() == known.json()
    assert len(api.mailer.sent) == 1

    response = api.client.post("/auth/update-password", json={"token": api.mailer.last_token(), "new_password": "changed1"})
    assert response.status_code == 200
    api.sign_in("user@example.com", "changed1")


def test_protected_routes_need_a_token(api):
    response = api.client.get("/account")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_account_profile(api, user_headers):
    profile = api.client.get("/account", headers=user_headers).json()
    assert profile["email"] == "user@example.com"
    assert profile["is_admin"] is False

    response = api.client.put("/account", json={"full_name": " Ravi Kumar ", "phone": "+91 98765 43210"}, headers=user_headers)
    assert response.status_code == 200
    assert response.json()["full_name"] == "Ravi Kumar"


def test_account_cannot_grant_admin(api, user_headers):
    response = api.client.put("/account", json={"full_name": "Ravi", "is_admin": True}, headers=user_headers)

    assert response.status_code == 422
    assert api.client.get("/account", headers=user_headers).json()["is_admin"] is False


def test_admin_login_rejects_regular_users(api, user_headers):
    response = api.client.post("/admin/login", json={"email": "user@example.com", "password": "secret123"})

    assert response.status_code == 403
    assert api.client.get("/admin/templates", headers=user_headers).status_code == 403


def test_admin_template_editor(api, admin_headers):
    category = api.client.post("/admin/categories", json={"name": "Agreements"}, headers=admin_headers)
    assert category.status_code == 201

    bad = api.client.post("/admin/templates", json={**RENTAL_TEMPLATE, "fields_json": "[{"}, headers=admin_headers)
    assert bad.status_code == 422
    assert bad.json()["error"] == "invalid_fields"
    wrong_type = api.client.post(
        "/admin/templates",
        json={**RENTAL_TEMPLATE, "fields_json": '[{"id": "party1", "type": "select", "options": 5}]'},
        headers=admin_headers,
    )
    assert wrong_type.status_code == 422
    assert wrong_type.json()["error"] == "invalid_fields"

    created = api.client.post(
        "/admin/templates",
        json={**RENTAL_TEMPLATE, "template_html": RENTAL_TEMPLATE["template_html"] + "[seal]"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["warnings"] == ["Placeholder [seal] has no matching field"]
    assert body["template"]["category_id"] == category.json()["id"]
    template_id = body["template"]["id"]

    updated = api.client.put(f"/admin/templates/{template_id}", json={"name": "Lease Deed"}, headers=admin_headers)
    assert updated.json()["template"]["name"] == "Lease Deed"

    assert api.client.delete(f"/admin/templates/{template_id}", headers=admin_headers).status_code == 204
    assert api.client.delete(f"/admin/templates/{template_id}", headers=admin_headers).status_code == 404


def test_document_library(api, user_headers, template_id):
    library = api.client.get("/documents", headers=user_headers).json()
    assert [t["id"] for t in library["templates"]] == [template_id]

    start = api.client.get(f"/create-document/{template_id}", headers=user_headers).json()
    assert start["steps"] == [["party1", "party2"], ["witness"]]
    assert start["form_data"] == {"party1": "", "party2": "", "witness": [{}]}


def test_step_validation(api, user_headers, template_id):
    url = f"/create-document/{template_id}/validate-step"

    invalid = api.client.post(url, json={"step": 0, "data": {"party1": "Alice"}}, headers=user_headers).json()
    assert invalid == {"valid": False, "errors": {"party2": "Second Party is required"}, "next_step": None}

    valid = api.client.post(url, json={"step": 0, "data": {"party1": "Alice", "party2": "Bob"}}, headers=user_headers).json()
    assert valid == {"valid": True, "errors": {}, "next_step": 1}

    assert api.client.post(url, json={"step": 5, "data": {}}, headers=user_headers).status_code == 404


def test_render_and_pdf(api, user_headers, template_id):
    data = {"party1": "Alice", "party2": "Bob", "witness": [{"witness": "X"}, {"witness": "Y"}]}

    rendered = api.client.post(f"/create-document/{template_id}/render", json={"data": data}, headers=user_headers).json()
    assert rendered["html"] == (
        f"<p>Agreement between Alice and Bob on {date.today():%d/%m/%Y}.</p>"
        "<p>Witness: X</p><p>Witness: Y</p>"
    )
    assert rendered["filename"] == "Rental_Agreement.pdf"

    pdf = api.client.post(f"/create-document/{template_id}/pdf", json={"data": data}, headers=user_headers)
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.headers["content-disposition"] == 'attachment; filename="Rental_Agreement.pdf"'


def test_render_rejects_incomplete_forms(api, user_headers, template_id):
    response = api.client.post(f"/create-document/{template_id}/render", json={"data": {"party1": "Alice"}}, headers=user_headers)

    assert response.status_code == 422
    assert response.json()["errors"] == {"party2": "Second Party is required"}


def test_tax_assistant_requires_an_api_key(api, user_headers):
    response = api.client.post("/tax-assistant/messages", json={"message": "What is GST?"}, headers=user_headers)

    assert response.status_code == 409
    assert response.json()["error"] == "api_key_required"


def test_api_key_setup(api, user_headers):
    verified = []

    async def verify(key):
        if key.endswith("bad"):
            raise FormValidationError({"api_key": "Invalid API key. Please make sure you copied the entire key correctly"})
        verified.append(key)

    api.app.dependency_overrides[get_key_verifier] = lambda: verify

    assert api.client.put("/api-key-setup", json={"api_key": "sk-123"}, headers=user_headers).status_code == 422
    assert api.client.put("/api-key-setup", json={"api_key": API_KEY[:-3] + "bad"}, headers=user_headers).status_code == 422

    saved = api.client.put("/api-key-setup", json={"api_key": API_KEY}, headers=user_headers)
    assert saved.json() == {"has_key": True, "masked_key": "*" * (len(API_KEY) - 4) + API_KEY[-4:]}
    assert verified == [API_KEY]
    assert api.client.get("/api-key-setup", headers=user_headers).json()["has_key"] is True

    assert api.client.delete("/api-key-setup", headers=user_headers).status_code == 204
    assert api.client.get("/api-key-setup", headers=user_headers).json() == {"has_key": False, "masked_key": None}


def test_tax_assistant_conversation(api, user_headers, template_id):
    overrides = api.app.dependency_overrides
    overrides[get_rate_limiter] = lambda: SlidingWindowRateLimiter(10, 60)
    overrides[get_llm_client] = lambda: FakeLLM(classify="true")

    turn = api.client.post("/tax-assistant/messages", json={"message": "Draft a rent agreement"}, headers=user_headers).json()
    assert turn["kind"] == "template"
    assert turn["redirect_to"] == f"/create-document/{template_id}"

    overrides[get_llm_client] = lambda: FakeLLM(replies=["GST is charged on supply."])
    follow_up = api.client.post(
        "/tax-assistant/messages",
        json={"message": "What is GST?", "chat_id": turn["chat_id"]},
        headers=user_headers,
    ).json()
    assert follow_up["kind"] == "answer"

    chat = api.client.get(f"/tax-assistant/chats/{turn['chat_id']}", headers=user_headers).json()
    assert chat["title"] == "Draft a rent agreement"
    assert [m["role"] for m in chat["messages"]] == ["user", "assistant", "user", "assistant"]

    assert api.client.delete(f"/tax-assistant/chats/{turn['chat_id']}", headers=user_headers).status_code == 204
    assert api.client.get("/tax-assistant/chats", headers=user_headers).json() == []


def test_tax_assistant_rate_limit(api, user_headers):
    limiter = SlidingWindowRateLimiter(1, 60)
    overrides = api.app.dependency_overrides
    overrides[get_rate_limiter] = lambda: limiter
    overrides[get_llm_client] = lambda: FakeLLM(replies=["one", "two"])

    assert api.client.post("/tax-assistant/messages", json={"message": "What is GST?"}, headers=user_headers).status_code == 200
    response = api.client.post("/tax-assistant/messages", json={"message": "What is TDS?"}, headers=user_headers)

    assert response.status_code == 429
    assert response.json()["detail"] == "Rate limit exceeded. Please try again in 1 minute."
    assert int(response.headers["retry-after"]) > 0


def test_generated_document_flow(api, user_headers):
    overrides = api.app.dependency_overrides
    overrides[get_rate_limiter] = lambda: SlidingWindowRateLimiter(10, 60)
    overrides[get_llm_client] = lambda: FakeLLM(replies=["<h1>Gift Deed</h1>"])

    response = api.client.post("/tax-assistant/documents", json={
        "document_type": "Gift Deed",
        "fields": [{"id": "donor", "label": "Donor", "required": True}],
        "data": {"donor": "Meera"},
    }, headers=user_headers)
    assert response.status_code == 200
    assert response.json()["messages"][1]["is_document"] is True

    pdf = api.client.post("/tax-assistant/documents/pdf", json={"document_type": "Gift Deed", "html": "<h1>Gift Deed</h1>"}, headers=user_headers)
    assert pdf.headers["content-disposition"] == 'attachment; filename="gift_deed.pdf"'
