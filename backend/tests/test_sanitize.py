"""
OrgTrack Backend — Input Sanitization Tests
============================================

What we test:
    ✅ Operator-shaped keys ($-prefixed, dotted, a[$gt]) are dropped
    ✅ Repeated query parameters collapse to the last value (whitelist aside)
    ✅ "<" is escaped in query and body values
    ✅ Sanitizers see the parsed body: cleaned values reach the handler
"""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qsl
from uuid import uuid4

import pytest

from app.middleware.sanitize import (
    InjectionSanitizeMiddleware,
    ParameterPollutionMiddleware,
    XSSSanitizeMiddleware,
    collapse_form_lists,
    collapse_repeated,
    escape_markup,
    is_operator_key,
    strip_operator_keys,
)


class TestOperatorKeys:

    def test_detects_operator_keys(self):
        assert is_operator_key("$where")
        assert is_operator_key("profile.role")
        assert is_operator_key("age[$gt]")
        assert not is_operator_key("name")
        assert not is_operator_key("price$")
        assert not is_operator_key(3)

    def test_strips_at_every_depth(self):
        body = {
            "name": "Acme",
            "$set": {"admin": True},
            "meta": {"owner.id": 1, "tags": [{"$ne": None, "ok": 1}]},
        }
        assert strip_operator_keys(body) == {
            "name": "Acme",
            "meta": {"tags": [{"ok": 1}]},
        }

    def test_query_operator_keys_removed(self):
        scope = {"type": "http", "path": "/api/TEAMS", "query_string": b"%24where=1&limit=5&a.b=2"}
        InjectionSanitizeMiddleware(app=AsyncMock()).rewrite(scope, {})
        assert parse_qsl(scope["query_string"].decode()) == [("limit", "5")]


class TestParameterPollution:

    def test_last_value_wins(self):
        pairs, polluted = collapse_repeated([("a", "1"), ("b", "x"), ("a", "2")], whitelist=set())
        assert pairs == [("b", "x"), ("a", "2")]
        assert polluted == {"a": ["1", "2"]}

    def test_whitelisted_names_keep_all_values(self):
        pairs, polluted = collapse_repeated([("tag", "1"), ("tag", "2")], whitelist={"tag"})
        assert pairs == [("tag", "1"), ("tag", "2")]
        assert polluted == {}

    def test_form_lists_collapse(self):
        form, polluted = collapse_form_lists({"name": ["a", "b"], "x": "1"}, whitelist=set())
        assert form == {"name": "b", "x": "1"}
        assert polluted == {"name": ["a", "b"]}

    def test_records_polluted_query_on_state(self):
        scope = {"type": "http", "path": "/x", "query_string": b"limit=1&limit=9"}
        state = {}
        ParameterPollutionMiddleware(app=AsyncMock(), whitelist=[]).rewrite(scope, state)
        assert state["query_polluted"] == {"limit": ["1", "9"]}
        assert scope["query_string"] == b"limit=9"

    def test_json_bodies_are_left_alone(self):
        """Lists in JSON bodies are data, not repeated fields."""
        state = {"parsed_body": {"ids": [1, 2]}, "body_source": "json"}
        scope = {"type": "http", "path": "/x", "query_string": b""}
        ParameterPollutionMiddleware(app=AsyncMock(), whitelist=[]).rewrite(scope, state)
        assert state["parsed_body"] == {"ids": [1, 2]}

    @pytest.mark.asyncio
    async def test_repeated_filter_uses_last_value(self, client):
        first, last = uuid4(), uuid4()
        with patch("app.routes.entities.team_service") as mock_service:
            mock_service.list = AsyncMock(return_value=[])
            response = await client.get(
                f"/api/TEAMS?organizationId={first}&organizationId={last}"
            )

        assert response.status_code == 200
        assert mock_service.list.await_args.kwargs["parent_id"] == last


class TestMarkupEscaping:

    def test_escapes_nested_strings(self):
        value = {"a": "<script>", "b": ["<i>", 3], "c": {"d": "x<y"}}
        assert escape_markup(value) == {
            "a": "&lt;script>",
            "b": ["&lt;i>", 3],
            "c": {"d": "x&lt;y"},
        }

    def test_escapes_query_values(self):
        scope = {"type": "http", "path": "/x", "query_string": b"q=%3Cb%3E"}
        XSSSanitizeMiddleware(app=AsyncMock()).rewrite(scope, {})
        assert parse_qsl(scope["query_string"].decode()) == [("q", "&lt;b>")]


class TestPipelineIntegration:

    @pytest.mark.asyncio
    async def test_handler_receives_cleaned_body(self, client, mock_db_session):
        response = await client.post(
            "/api/ORGANIZATION",
            json={"name": "<b>Acme</b>", "$where": "sleep(1000)", "a.b": 1},
        )

        assert response.status_code == 201
        assert response.json()["organization"]["name"] == "&lt;b>Acme&lt;/b>"
        assert mock_db_session.added[0].name == "&lt;b>Acme&lt;/b>"
