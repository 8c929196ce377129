from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from session_service.domain.account import AccountStatus, ConfirmationPurpose
from session_service.domain.contracts import ChangePasswordInput, RegisterAccountInput
from session_service.errors import (
    AlreadyRedeemed,
    AuthenticationFailed,
    InvalidInput,
    NotFound,
    NotifierUnavailable,
    PasswordResetRequired,
    TemplateRenderError,
    TokenExpired,
)
from session_service.notifications.templates import ConfirmationTemplate

from conftest import CONFIRMATION_URL, build_identity

CREATION = ConfirmationPurpose.ACCOUNT_CREATION
RESET = ConfirmationPurpose.PASSWORD_RESET


def _register(identity, account_id: str = "a@x.com", password: str = "pw123"):
    return identity.register(
        RegisterAccountInput(account_id=account_id, name="Ana", surname="Lu", password=password)
    )


def _only_code(repository, purpose, account_id="a@x.com") -> str:
    (request,) = repository.confirmations_for(account_id, purpose)
    return request.confirmation_id


def test_register_creates_pending_account_and_mails_code(identity, repository, notifier):
    _register(identity)

    assert repository.accounts["a@x.com"].status is AccountStatus.PENDING_CONFIRMATION
    requests = repository.confirmations_for("a@x.com")
    assert len(requests) == 1
    assert requests[0].purpose is CREATION
    assert requests[0].redeemed is False

    assert len(notifier.sent) == 1
    message = notifier.sent[0]
    assert "Confirmación" in message.subject
    assert message.to == "a@x.com"
    assert message.sender == notifier.sender_alias()
    assert f"{CONFIRMATION_URL}?id={requests[0].confirmation_id}" in message.body


def test_redeeming_twice_reports_already_redeemed(identity, repository, clock):
    _register(identity)
    code = _only_code(repository, CREATION)

    assert identity.redeem_confirmation(code) == "a@x.com"
    with pytest.raises(AlreadyRedeemed):
        identity.redeem_confirmation(code)

    assert repository.lookups == [(code, True), (code, True)]

    assert repository.accounts["a@x.com"].status is AccountStatus.CONFIRMED
    stored = repository.confirmations[code]
    assert stored.redeemed is True
    assert stored.redeemed_at == clock.now


def test_codes_do_not_cross_purposes(identity, repository):
    _register(identity)
    creation_code = _only_code(repository, CREATION)
    identity.request_password_reset("a@x.com")
    reset_code = _only_code(repository, RESET)

    with pytest.raises(NotFound):
        identity.redeem_password_reset(creation_code, "newpw")
    with pytest.raises(NotFound):
        identity.redeem_confirmation(reset_code)

    assert repository.confirmations[creation_code].redeemed is False
    assert repository.confirmations[reset_code].redeemed is False


def test_unknown_code_is_not_found(identity):
    with pytest.raises(NotFound):
        identity.redeem_confirmation("00000000-0000-0000-0000-000000000000")


def test_resend_keeps_earlier_codes_valid(identity, repository, notifier):
    _register(identity)
    identity.resend_confirmation("a@x.com")

    codes = [request.confirmation_id for request in repository.confirmations_for("a@x.com", CREATION)]
    assert len(set(codes)) == 2
    assert len(notifier.sent) == 2

    for code in codes:
        assert identity.redeem_confirmation(code) == "a@x.com"


def test_resend_for_unknown_account(identity, notifier):
    with pytest.raises(NotFound):
        identity.resend_confirmation("ghost@x.com")
    assert notifier.sent == []


def test_template_failure_rolls_back_registration(repository, notifier, clock):
    broken = ConfirmationTemplate("Hola {{ name }} {{ not_provided }}", CONFIRMATION_URL)
    identity = build_identity(repository, notifier, clock=clock, creation_template=broken)

    with pytest.raises(TemplateRenderError):
        _register(identity)

    assert repository.accounts == {}
    assert repository.confirmations == {}
    assert notifier.sent == []


def test_delivery_failure_keeps_account_and_allows_resend(identity, repository, notifier):
    notifier.fail = True
    with pytest.raises(NotifierUnavailable):
        _register(identity)

    assert repository.accounts["a@x.com"].status is AccountStatus.PENDING_CONFIRMATION

    notifier.fail = False
    identity.resend_confirmation("a@x.com")

    assert len(notifier.sent) == 1
    assert len(repository.confirmations_for("a@x.com", CREATION)) == 2


def test_password_reset_flow_replaces_password(identity, repository, notifier):
    _register(identity, password="oldpw")
    identity.request_password_reset("a@x.com")
    code = _only_code(repository, RESET)
    assert "blanqueo" in notifier.sent[-1].subject

    assert identity.redeem_password_reset(code, "newpw") == "a@x.com"

    identity.login("a@x.com", "newpw")
    with pytest.raises(AuthenticationFailed):
        identity.login("a@x.com", "oldpw")
    with pytest.raises(AlreadyRedeemed):
        identity.redeem_password_reset(code, "otherpw")


def test_password_reset_does_not_confirm_account(identity, repository):
    _register(identity)
    identity.request_password_reset("a@x.com")

    identity.redeem_password_reset(_only_code(repository, RESET), "newpw")

    assert repository.accounts["a@x.com"].status is AccountStatus.PENDING_CONFIRMATION


def test_password_reset_for_unknown_account(identity, repository):
    with pytest.raises(NotFound):
        identity.request_password_reset("ghost@x.com")
    assert repository.confirmations == {}


def test_empty_reset_password_leaves_code_unused(identity, repository):
    _register(identity)
    identity.request_password_reset("a@x.com")
    code = _only_code(repository, RESET)

    with pytest.raises(InvalidInput):
        identity.redeem_password_reset(code, "")

    assert repository.confirmations[code].redeemed is False


def test_concurrent_redemptions_have_one_winner(identity, repository):
    _register(identity)
    code = _only_code(repository, CREATION)
    start = threading.Barrier(8)

    def redeem():
        start.wait()
        try:
            return identity.redeem_confirmation(code)
        except AlreadyRedeemed as exc:
            return exc

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: redeem(), range(8)))

    assert outcomes.count("a@x.com") == 1
    assert sum(isinstance(outcome, AlreadyRedeemed) for outcome in outcomes) == 7


def test_change_password_requires_matching_confirmation(identity):
    _register(identity)

    with pytest.raises(InvalidInput):
        identity.change_password(ChangePasswordInput("a@x.com", "pw123", "nueva1", "nueva2"))


def test_change_password_checks_current_password(identity):
    _register(identity)

    with pytest.raises(AuthenticationFailed):
        identity.change_password(ChangePasswordInput("a@x.com", "wrong", "nueva", "nueva"))
    identity.login("a@x.com", "pw123")


def test_change_password_recovers_expired_password(identity, clock):
    _register(identity)
    clock.advance(timedelta(days=31))
    with pytest.raises(PasswordResetRequired):
        identity.login("a@x.com", "pw123")

    identity.change_password(ChangePasswordInput("a@x.com", "pw123", "nueva", "nueva"))

    issued = identity.login("a@x.com", "nueva")
    assert identity.validate_session(issued.token) == "a@x.com"


def test_login_issues_thirty_minute_session(identity, clock):
    _register(identity)

    issued = identity.login("a@x.com", "pw123")

    assert identity.validate_session(issued.token) == "a@x.com"
    assert issued.expires_at == clock.now + timedelta(minutes=30)


def test_login_with_forced_reset(identity, repository):
    _register(identity)
    account = repository.find_account("a@x.com")
    account.must_reset_on_next_login = True
    repository.update_account(account)

    with pytest.raises(PasswordResetRequired):
        identity.login("a@x.com", "pw123")


def test_logout_returns_expired_token(identity):
    _register(identity)
    identity.login("a@x.com", "pw123")

    revoked = identity.logout()

    with pytest.raises(TokenExpired):
        identity.validate_session(revoked.token)


def test_deleting_account_keeps_confirmation_history(identity, repository):
    _register(identity)

    identity.delete_account("a@x.com")

    assert "a@x.com" not in repository.accounts
    assert len(repository.confirmations_for("a@x.com")) == 1
