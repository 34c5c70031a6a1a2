import time

import pyotp
import pytest
from bson import ObjectId

import mfa
from conftest import auth_header, wrong_code
from errors import InvalidMfaCode, NotFound, NotReady
from schemas import RoleName


def stored_user(mongo_db, user_id):
    return mongo_db["user"].find_one({"_id": ObjectId(user_id)})


def test_generate_stores_pending_secret_only(mongo_db, developer):
    setup = mfa.generate_secret(developer)

    user = stored_user(mongo_db, developer)
    assert user["mfa_temp_secret"] == setup.secret
    assert user["mfa_enabled"] is False
    assert user.get("mfa_secret") is None
    assert setup.uri.startswith("otpauth://totp/")
    assert "issuer=PixelForge" in setup.uri
    assert "dana" in setup.uri
    assert setup.qr_code_data_uri.startswith("data:image/png;base64,")


def test_regenerate_overwrites_pending_secret(mongo_db, developer):
    first = mfa.generate_secret(developer)
    second = mfa.generate_secret(developer)
    assert first.secret != second.secret
    assert stored_user(mongo_db, developer)["mfa_temp_secret"] == second.secret


def test_verify_and_enable_promotes_secret(mongo_db, developer):
    setup = mfa.generate_secret(developer)
    mfa.verify_and_enable(developer, pyotp.TOTP(setup.secret).now())

    user = stored_user(mongo_db, developer)
    assert user["mfa_enabled"] is True
    assert user["mfa_secret"] == setup.secret
    assert user.get("mfa_temp_secret") is None


def test_wrong_code_keeps_pending_secret(mongo_db, developer):
    setup = mfa.generate_secret(developer)
    with pytest.raises(InvalidMfaCode):
        mfa.verify_and_enable(developer, wrong_code(setup.secret))

    user = stored_user(mongo_db, developer)
    assert user["mfa_enabled"] is False
    assert user["mfa_temp_secret"] == setup.secret

    # retry with the right code still works
    mfa.verify_and_enable(developer, pyotp.TOTP(setup.secret).now())
    assert stored_user(mongo_db, developer)["mfa_enabled"] is True


def test_verify_before_generate(developer):
    with pytest.raises(NotReady):
        mfa.verify_and_enable(developer, "123456")


def test_second_verification_after_enable_is_not_ready(developer):
    setup = mfa.generate_secret(developer)
    code = pyotp.TOTP(setup.secret).now()
    mfa.verify_and_enable(developer, code)
    with pytest.raises(NotReady):
        mfa.verify_and_enable(developer, code)


def test_pending_secret_replaced_mid_verification(mongo_db, developer, monkeypatch):
    setup = mfa.generate_secret(developer)
    real_verify = mfa.verify

    def racing_verify(secret, code):
        result = real_verify(secret, code)
        # another request regenerates the secret between check and promote
        mongo_db["user"].update_one({"_id": ObjectId(developer)}, {"$set": {"mfa_temp_secret": "JBSWY3DPEHPK3PXP"}})
        return result

    monkeypatch.setattr(mfa, "verify", racing_verify)
    with pytest.raises(NotReady):
        mfa.verify_and_enable(developer, pyotp.TOTP(setup.secret).now())
    assert stored_user(mongo_db, developer)["mfa_enabled"] is False


def test_unknown_user(mongo_db):
    with pytest.raises(NotFound):
        mfa.generate_secret(str(ObjectId()))


class TestVerify:
    def test_accepts_current_and_adjacent_windows(self):
        secret = pyotp.random_base32()
        totp = pyotp.TOTP(secret)
        assert mfa.verify(secret, totp.now())
        assert mfa.verify(secret, totp.at(time.time(), -1))

    @pytest.mark.parametrize("code", ["", None, "abcdef"])
    def test_rejects_malformed(self, code):
        with pytest.raises(InvalidMfaCode):
            mfa.verify(pyotp.random_base32(), code)

    def test_rejects_missing_secret(self):
        with pytest.raises(InvalidMfaCode):
            mfa.verify(None, "123456")

    def test_rejects_wrong_code(self):
        secret = pyotp.random_base32()
        with pytest.raises(InvalidMfaCode):
            mfa.verify(secret, wrong_code(secret))


def test_mfa_endpoints(client, mongo_db, lead):
    headers = auth_header(lead, RoleName.PROJECT_LEAD)

    resp = client.post("/mfa/verify", json={"code": "123456"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "MFA_NOT_READY"

    resp = client.get("/mfa/generate", headers=headers)
    assert resp.status_code == 200
    secret = resp.json()["secret"]

    resp = client.post("/mfa/verify", json={"code": pyotp.TOTP(secret).now()}, headers=headers)
    assert resp.status_code == 200
    assert stored_user(mongo_db, lead)["mfa_enabled"] is True


def test_mfa_endpoints_require_token(client):
    assert client.get("/mfa/generate").status_code == 401
