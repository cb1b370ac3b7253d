"""Shared fixtures: in-memory storage, services and sample rows."""

from datetime import date
from decimal import Decimal

import pytest

from bookkeeper.audit import AuditLogger
from bookkeeper.classification import ClassificationService
from bookkeeper.models.categories import TransactionType
from bookkeeper.models.imports import ParsedTransaction
from bookkeeper.services import (
    CompanyService,
    PayeeService,
    TransactionService,
)
from bookkeeper.storage import InMemoryAuditStorage, InMemoryRecordStorage


USER = "user-1"
OTHER_USER = "user-2"


@pytest.fixture
def storage():
    return InMemoryRecordStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def transactions(storage, audit_logger):
    return TransactionService(storage, audit_logger)


@pytest.fixture
def companies(storage, audit_logger):
    return CompanyService(storage, audit_logger)


@pytest.fixture
def payees(storage, audit_logger):
    return PayeeService(storage, audit_logger)


@pytest.fixture
def classification(storage, audit_logger, transactions):
    return ClassificationService(storage, audit_logger, transactions=transactions)


def parsed(description: str, amount: str, when: date = date(2024, 3, 15), **fields) -> ParsedTransaction:
    """A parsed row with the type inferred from the sign."""
    value = Decimal(amount)
    return ParsedTransaction(
        date=when,
        description=description,
        amount=value,
        type=TransactionType.INCOME if value > 0 else TransactionType.EXPENSE,
        **fields,
    )
