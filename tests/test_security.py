from videovault.security import hash_password, issue_token, verify_password, verify_token


def test_password_roundtrip():
    salt, password_hash = hash_password("correct-horse")
    assert verify_password("correct-horse", salt, password_hash)
    assert not verify_password("wrong-horse", salt, password_hash)


def test_same_password_gets_different_salts():
    assert hash_password("correct-horse") != hash_password("correct-horse")


def test_garbage_hash_does_not_verify():
    assert not verify_password("correct-horse", "not base64!", "also not")


def test_token_carries_user_and_tenant():
    token = issue_token(7, 3, secret_key="k1")
    assert verify_token(token, secret_key="k1") == (7, 3)


def test_token_from_other_key_is_rejected():
    token = issue_token(7, 3, secret_key="k1")
    assert verify_token(token, secret_key="k2") is None


def test_tampered_and_expired_tokens_are_rejected():
    token = issue_token(7, 3, secret_key="k1")
    assert verify_token(token[:-2] + "xx", secret_key="k1") is None
    assert verify_token(token, secret_key="k1", max_age=-1) is None
    assert verify_token("", secret_key="k1") is None
