from __future__ import annotations

import pytest

from nextdns_operator.adapters.credentials import StoreCredentialLookup
from nextdns_operator.adapters.sqlalchemy import SqlAlchemyResourceStore  # noqa: TC001
from nextdns_operator.domain.ports import CredentialsNotFoundError
from tests.support.resources import CREDENTIALS_SECRET, make_secret


def test_value_is_read_and_stripped(store: SqlAlchemyResourceStore) -> None:
    store.create(make_secret(api_key="  key-123\n"))

    value = StoreCredentialLookup(store).get_secret_value("default", CREDENTIALS_SECRET, "api-key")

    assert value == "key-123"


@pytest.mark.parametrize(
    ("secret_data", "detail"),
    [
        (None, "secret not found"),
        ({"other": "x"}, "key missing"),
        ({"api-key": "   "}, "value is empty"),
    ],
)
def test_missing_credentials_raise(
    store: SqlAlchemyResourceStore, secret_data: dict[str, str] | None, detail: str
) -> None:
    if secret_data is not None:
        secret = make_secret()
        store.create(secret.model_copy(update={"data": secret_data}))

    with pytest.raises(CredentialsNotFoundError, match=detail) as excinfo:
        StoreCredentialLookup(store).get_secret_value("default", CREDENTIALS_SECRET, "api-key")

    assert excinfo.value.name == CREDENTIALS_SECRET
