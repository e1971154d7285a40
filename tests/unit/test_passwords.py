import pytest

from trelay.auth import hash_password, verify_password


def test_hash_and_verify():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert hashed.startswith("$2")
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_hashes_are_salted():
    assert hash_password("same") != hash_password("same")


def test_explicit_rounds():
    assert hash_password("pw", rounds=5).split("$")[2] == "05"


@pytest.mark.parametrize("password,stored", [("", "$2b$04$x"), ("pw", ""), ("pw", "not-a-bcrypt-hash")])
def test_verify_rejects_bad_input(password, stored):
    assert verify_password(password, stored) is False
