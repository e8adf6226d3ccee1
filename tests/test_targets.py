"""Tests for connection parameters and identifier quoting."""

import pytest

from dbexplorer.errors import ValidationFailedError
from dbexplorer.targets import (
    ConnectionParams,
    connection_fields_changed,
    qualified_table_name,
    quote_identifier,
)

from fakes import VALID_CONNECTION


class TestQuoteIdentifier:
    """Tests for identifier quoting used by the introspector and the reader."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("orders", '"orders"'),
            ("Order Items", '"Order Items"'),
            ('say"hi', '"say""hi"'),
            ('x"; DROP TABLE users; --', '"x""; DROP TABLE users; --"'),
        ],
    )
    def test_quote_identifier(self, name, expected):
        assert quote_identifier(name) == expected

    @pytest.mark.parametrize("name", ["", "bad\x00name"])
    def test_rejects_unquotable_names(self, name):
        with pytest.raises(ValidationFailedError):
            quote_identifier(name)

    def test_qualified_table_name(self):
        assert qualified_table_name("orders", "sales") == '"sales"."orders"'
        assert qualified_table_name("orders") == '"orders"'


class TestConnectionParams:
    """Tests for ConnectionParams."""

    def test_from_profile(self):
        params = ConnectionParams.from_profile(VALID_CONNECTION)

        assert params.host == "db.internal"
        assert params.port == 5432
        assert params.ssl is False

    def test_connect_kwargs(self):
        params = ConnectionParams.from_profile({**VALID_CONNECTION, "ssl": True, "port": "6543"})

        assert params.connect_kwargs() == {
            "host": "db.internal",
            "port": 6543,
            "database": "analytics",
            "user": "reader",
            "password": "s3cret",
            "ssl": "require",
        }

    def test_describe_omits_password(self):
        described = ConnectionParams.from_profile(VALID_CONNECTION).describe()

        assert "password" not in described
        assert described["username"] == "reader"


class TestConnectionFieldsChanged:
    """Tests for connection_fields_changed."""

    @pytest.mark.parametrize(
        "changes,expected",
        [
            ({"name": "renamed"}, False),
            ({"host": "db.internal"}, False),
            ({"host": "other"}, True),
            ({"password": "new"}, True),
            ({"ssl": True}, True),
            ({"port": 5432, "name": "x"}, False),
            ({}, False),
        ],
    )
    def test_connection_fields_changed(self, changes, expected):
        assert connection_fields_changed(VALID_CONNECTION, changes) is expected
