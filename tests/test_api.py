import copy

import pytest
from fastapi.testclient import TestClient

from sat_bill_bot.main import create_app
from conftest import PNG_BYTES, REFERENCE_TOTALS, FakeBrowserProvider, portal_page


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as client:
        client.app.state.browser = FakeBrowserProvider()
        yield client


def store_credentials(client, credential_files):
    certificate, private_key = credential_files
    return client.put(
        "/config/bill-settings",
        json={
            "certificate": str(certificate),
            "privateKey": str(private_key),
            "password": "Secreta123",
            "rfc": "GODE561231GR8",
        },
    )


def test_root_and_ping(client):
    assert client.get("/ping").json() == {"status": "ok"}
    assert client.get("/").json()["name"] == "SAT Bill Bot API"


def test_trace_id_is_echoed(client):
    response = client.get("/ping", headers={"X-Trace-ID": "trace-123"})
    assert response.headers["X-Trace-ID"] == "trace-123"


def test_trace_id_is_generated_when_missing(client):
    first = client.get("/ping").headers["X-Trace-ID"]
    second = client.get("/ping").headers["X-Trace-ID"]
    assert len(first) == 32 and first != second


def test_update_bill_settings_merges_values(client, credential_files, settings):
    response = store_credentials(client, credential_files)
    assert response.status_code == 200
    assert response.json()["message"] == "Configuration saved successfully! GODE561231GR8"

    response = client.put("/config/bill-settings", json={"password": "OtraClave99"})
    assert response.status_code == 200

    stored = client.app.state.credential_store.load()
    assert stored.password == "OtraClave99"
    assert stored.certificate == str(credential_files[0])
    assert settings.credentials_file.exists()


def test_generate_bill_requires_stored_credentials(client, invoice_payload):
    response = client.post("/bills", json=invoice_payload)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "certificate" in response.json()["message"]


def test_generate_bill_returns_png(client, credential_files, invoice_payload):
    store_credentials(client, credential_files)

    response = client.post("/bills", json=invoice_payload)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content == PNG_BYTES


def test_invalid_invoice_reports_every_problem(client, credential_files, invoice_payload):
    store_credentials(client, credential_files)
    payload = copy.deepcopy(invoice_payload)
    payload["concepto"] = []
    payload["codigoPostal"] = "12"

    response = client.post("/bills", json=payload)

    assert response.status_code == 422
    errors = response.json()["errors"]
    assert any(error.startswith("concepto:") for error in errors)
    assert "Invalid postal code" in errors
    assert "Field concepto is required" in errors


def test_totals_mismatch_is_reported_verbatim(settings, credential_files, invoice_payload):
    app = create_app(settings.model_copy(update={"fill_form_enabled": True}))
    with TestClient(app) as client:
        client.app.state.browser = FakeBrowserProvider(portal_page({**REFERENCE_TOTALS, "total": "1.00"}))
        store_credentials(client, credential_files)

        response = client.post("/bills", json=invoice_payload)

        assert response.status_code == 422
        assert response.json()["message"].startswith("Totals do not match expected values")


def test_sign_in_failure_is_wrapped_and_logged(client, credential_files, invoice_payload):
    page = portal_page()
    del page.elements["#buttonFiel"]
    client.app.state.browser = FakeBrowserProvider(page)
    store_credentials(client, credential_files)

    response = client.post("/bills", json=invoice_payload)

    assert response.status_code == 500
    assert response.json()["message"].startswith("Failed to generate the bill:")

    diagnostics = client.get("/diagnostics/errors").json()
    assert diagnostics["count"] > 0
    assert diagnostics["errors"][-1]["context"]["invoice"]["rfc"] == "GODE561231GR8"

    assert client.delete("/diagnostics/errors").json() == {"success": True}
    assert client.get("/diagnostics/errors").json()["count"] == 0


def test_badly_written_amount_string_is_rejected_before_the_run(client, credential_files, invoice_payload):
    store_credentials(client, credential_files)
    payload = copy.deepcopy(invoice_payload)
    payload["concepto"][0]["valor"] = "100.5"

    response = client.post("/bills", json=payload)

    assert response.status_code == 422
    assert response.json()["errors"] == ["Invalid unit value"]
    # nothing ran, so the e.firma files are still there
    assert all(path.exists() for path in credential_files)


def test_concepto_that_is_not_a_list_is_a_validation_failure(client, credential_files, invoice_payload):
    store_credentials(client, credential_files)
    payload = copy.deepcopy(invoice_payload)
    payload["concepto"] = 5

    response = client.post("/bills", json=payload)

    assert response.status_code == 422
    errors = response.json()["errors"]
    assert "Invalid concept" in errors
    assert any(error.startswith("concepto:") for error in errors)
