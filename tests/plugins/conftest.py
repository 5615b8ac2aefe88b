"""Shared fixtures for the transfer tests."""

import pytest

from .fakes import FakeOracleConnection, FakePostgresConnection, make_table


@pytest.fixture
def oracle_conn():
    return FakeOracleConnection()


@pytest.fixture
def postgres_conn():
    return FakePostgresConnection()


@pytest.fixture
def table_factory():
    return make_table


@pytest.fixture
def insert_only_postgres_conn():
    return FakePostgresConnection(supports_copy=False)
