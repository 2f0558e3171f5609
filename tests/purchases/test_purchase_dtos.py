import pytest
from pydantic import ValidationError

from application.dtos.purchases import PurchaseCreateDTO, PurchaseUpdateDTO


def test_email_with_hash_delimiter_is_rejected_on_create(purchase_payload):
    with pytest.raises(ValidationError) as exc_info:
        PurchaseCreateDTO(**dict(purchase_payload, email="as|ha@example.com"))
    assert exc_info.value.errors()[0]["loc"] == ("email",)


def test_email_with_hash_delimiter_is_rejected_on_update():
    with pytest.raises(ValidationError):
        PurchaseUpdateDTO(email="as|ha@example.com")


def test_plain_email_passes(purchase_payload):
    assert PurchaseCreateDTO(**purchase_payload).email == "asha@example.com"
    assert PurchaseUpdateDTO(email="rao@example.com").email == "rao@example.com"
