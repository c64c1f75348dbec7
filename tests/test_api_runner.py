"""Unit tests for promptqa.engine.api_runner - APIClient with a mocked requests session."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from promptqa.engine.api_runner import APIClient
from promptqa.engine.context import VariableStore
from promptqa.engine.errors import MissingEndpointError, UndefinedVariableError
from promptqa.models import API_ACCEPT_HEADER

BASE = "https://parabank.parasoft.com/parabank/services/bank"


# ---------------------------------------------------------------------------
# 1. URL building
# ---------------------------------------------------------------------------

class TestBuildUrl:
    def test_relative_endpoint_joined_onto_base(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session)
        assert client.build_url("/customers/1/accounts") == f"{BASE}/customers/1/accounts"

    def test_relative_without_leading_slash(self, mock_session: MagicMock):
        client = APIClient(BASE + "/", VariableStore(), session=mock_session)
        assert client.build_url("accounts") == f"{BASE}/accounts"

    def test_absolute_url_passes_through(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session)
        assert client.build_url("https://other.example.com/x") == "https://other.example.com/x"

    def test_query_string_kept(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session)
        assert client.build_url("/createAccount?customerId=1").endswith("/createAccount?customerId=1")

    def test_relative_without_base_raises(self, mock_session: MagicMock):
        client = APIClient("", VariableStore(), session=mock_session)
        with pytest.raises(MissingEndpointError):
            client.build_url("/accounts")


# ---------------------------------------------------------------------------
# 2. Requests and decoding
# ---------------------------------------------------------------------------

class TestRequests:
    def test_accept_header_set_on_session(self, mock_session: MagicMock):
        APIClient(BASE, VariableStore(), session=mock_session)
        assert mock_session.headers["Accept"] == API_ACCEPT_HEADER

    def test_get_sends_method_url_and_timeout(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session, timeout=7)
        client.get("/accounts/13344")
        mock_session.request.assert_called_once_with("GET", f"{BASE}/accounts/13344", timeout=7)

    def test_post_sends_json_body(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session)
        client.post("/contacts", data={"firstName": "Ada"})
        _, kwargs = mock_session.request.call_args
        assert kwargs["json"] == {"firstName": "Ada"}

    def test_post_without_body_sends_no_json(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session)
        client.post("/createAccount")
        _, kwargs = mock_session.request.call_args
        assert "json" not in kwargs

    def test_put_and_delete_methods(self, mock_session: MagicMock):
        client = APIClient(BASE, VariableStore(), session=mock_session)
        client.put("/contacts/1", data={"a": 1})
        assert mock_session.request.call_args[0][0] == "PUT"
        client.delete("/contacts/1")
        assert mock_session.request.call_args[0][0] == "DELETE"

    def test_json_body_decoded(self, mock_session: MagicMock, make_response):
        mock_session.request.return_value = make_response(200, json_body={"id": 42})
        response = APIClient(BASE, VariableStore(), session=mock_session).get("/accounts/42")
        assert response.status == 200
        assert response.body == {"id": 42}
        assert response.ok

    def test_xml_body_left_as_text(self, mock_session: MagicMock, make_response):
        xml = "<customer><id>12212</id></customer>"
        mock_session.request.return_value = make_response(200, text=xml)
        response = APIClient(BASE, VariableStore(), session=mock_session).get("/login/john/demo")
        assert response.body == xml

    def test_bad_json_falls_back_to_text(self, mock_session: MagicMock, make_response):
        response_mock = make_response(200, text="not json", content_type="application/json")
        mock_session.request.return_value = response_mock
        response = APIClient(BASE, VariableStore(), session=mock_session).get("/x")
        assert response.body == "not json"

    def test_error_status_is_returned_not_raised(self, mock_session: MagicMock, make_response):
        mock_session.request.return_value = make_response(404, text="Not found", content_type="text/plain")
        response = APIClient(BASE, VariableStore(), session=mock_session).get("/x")
        assert response.status == 404
        assert not response.ok

    def test_close_closes_session(self, mock_session: MagicMock):
        APIClient(BASE, VariableStore(), session=mock_session).close()
        mock_session.close.assert_called_once()


# ---------------------------------------------------------------------------
# 3. Placeholders and XML extraction
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_replace_placeholders_uses_shared_store(self, mock_session: MagicMock, store: VariableStore):
        store.set("customerId", 12212)
        client = APIClient(BASE, store=store, session=mock_session)
        assert client.replace_placeholders("/customers/{{customerId}}/accounts") == "/customers/12212/accounts"

    def test_missing_placeholder_raises(self, mock_session: MagicMock, store: VariableStore):
        client = APIClient(BASE, store=store, session=mock_session)
        with pytest.raises(UndefinedVariableError):
            client.replace_placeholders("/customers/{{missing}}")

    def test_extract_first_tag(self):
        xml = "<accounts><account><id> 13344 </id></account><account><id>13455</id></account></accounts>"
        assert APIClient.extract_from_xml(xml, "id") == "13344"

    def test_extract_case_insensitive(self):
        assert APIClient.extract_from_xml("<ID>7</ID>", "id") == "7"

    def test_extract_missing_tag(self):
        assert APIClient.extract_from_xml("<customer/>", "id") is None
