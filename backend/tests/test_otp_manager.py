"""
Tests for the OTP lifecycle manager.

1. Issuance stores only a hash and replaces outstanding codes
2. Delivery failure persists nothing
3. Wrong codes count down; the fourth attempt is refused
4. Expired codes are refused and removed
5. A consumed code cannot be reused
6. Deactivated accounts are refused; a login clears other outstanding codes
7. Interleaved sessions: one winner, no lost attempt increments
8. Sweep removes expired and used rows only
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

PHONE = "+919876543210"


def _manager(db, gateway):
    from naiyaksetu.services.identity import OtpManager
    return OtpManager(db, gateway=gateway)


def _rows(db):
    from naiyaksetu.models.db_models import OneTimeCodeDB
    return db.query(OneTimeCodeDB).all()


# =============================================================================
# TEST: ISSUE
# =============================================================================

class TestRequestCode:

    def test_returns_expiry_window_only(self, db, gateway):
        issue = _manager(db, gateway).request_code("98765 43210")

        assert issue.expires_in == 300
        assert len(gateway.sent) == 1
        assert gateway.sent[0][0] == PHONE

    def test_plain_code_is_never_stored(self, db, gateway):
        _manager(db, gateway).request_code(PHONE)
        code = gateway.last_code()

        rows = _rows(db)
        assert len(rows) == 1
        assert rows[0].code_hash != code
        assert code not in rows[0].code_hash
        assert rows[0].attempts == 0
        assert rows[0].is_used is False

    def test_creates_placeholder_account(self, db, gateway):
        from naiyaksetu.models.db_models import AccountDB

        _manager(db, gateway).request_code(PHONE)

        account = db.query(AccountDB).filter(AccountDB.phone == PHONE).one()
        assert account.is_verified is False
        assert account.password_hash is None

    def test_new_code_replaces_outstanding_one(self, db, gateway):
        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        first = gateway.last_code()
        manager.request_code(PHONE)
        second = gateway.last_code()

        assert len(_rows(db)) == 1
        if first != second:
            from naiyaksetu.errors import InvalidCode
            with pytest.raises(InvalidCode):
                manager.verify_code(PHONE, first)

    def test_delivery_failure_persists_nothing(self, db):
        from naiyaksetu.errors import DeliveryFailed
        from naiyaksetu.models.db_models import AccountDB
        from conftest import CapturingGateway

        with pytest.raises(DeliveryFailed):
            _manager(db, CapturingGateway(fail=True)).request_code(PHONE)

        assert _rows(db) == []
        assert db.query(AccountDB).count() == 0

    def test_invalid_phone_rejected(self, db, gateway):
        from naiyaksetu.errors import ValidationError

        with pytest.raises(ValidationError):
            _manager(db, gateway).request_code("12345")
        assert gateway.sent == []


# =============================================================================
# TEST: VERIFY
# =============================================================================

class TestVerifyCode:

    def _wrong(self, code):
        return "000000" if code != "000000" else "111111"

    def test_correct_code_verifies_account(self, db, gateway):
        manager = _manager(db, gateway)
        manager.request_code(PHONE)

        account = manager.verify_code(PHONE, gateway.last_code())

        assert account.phone == PHONE
        assert account.is_verified is True
        assert account.last_login_at is not None
        assert _rows(db)[0].is_used is True

    def test_wrong_codes_count_down_then_correct_succeeds(self, db, gateway):
        from naiyaksetu.errors import InvalidCode

        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        code = gateway.last_code()

        with pytest.raises(InvalidCode) as exc:
            manager.verify_code(PHONE, self._wrong(code))
        assert exc.value.remaining_attempts == 2
        assert "2 attempts remaining" in exc.value.message

        with pytest.raises(InvalidCode) as exc:
            manager.verify_code(PHONE, self._wrong(code))
        assert exc.value.remaining_attempts == 1
        assert "1 attempt remaining" in exc.value.message

        account = manager.verify_code(PHONE, code)
        assert account.is_verified is True

    def test_fourth_attempt_is_exhausted_even_with_correct_code(self, db, gateway):
        from naiyaksetu.errors import AttemptsExhausted, InvalidCode

        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        code = gateway.last_code()

        for expected_remaining in (2, 1, 0):
            with pytest.raises(InvalidCode) as exc:
                manager.verify_code(PHONE, self._wrong(code))
            assert exc.value.remaining_attempts == expected_remaining

        with pytest.raises(AttemptsExhausted):
            manager.verify_code(PHONE, code)
        assert _rows(db) == []

    def test_expired_code_is_refused_and_removed(self, db, gateway):
        from naiyaksetu.errors import Expired

        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        row = _rows(db)[0]
        row.expires_at = row.expires_at - timedelta(minutes=10)
        db.commit()

        with pytest.raises(Expired):
            manager.verify_code(PHONE, gateway.last_code())
        assert _rows(db) == []

    def test_code_cannot_be_reused(self, db, gateway):
        from naiyaksetu.errors import NotFound

        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        code = gateway.last_code()
        manager.verify_code(PHONE, code)

        with pytest.raises(NotFound):
            manager.verify_code(PHONE, code)

    def test_no_code_issued(self, db, gateway):
        from naiyaksetu.errors import NotFound

        with pytest.raises(NotFound):
            _manager(db, gateway).verify_code(PHONE, "123456")

    def test_deactivated_account_gets_no_token(self, db, gateway):
        from naiyaksetu.errors import AccountNotFound
        from naiyaksetu.services.identity import AccountService

        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        account = AccountService(db).find_by_phone(PHONE)
        AccountService(db).deactivate(account.id)

        with pytest.raises(AccountNotFound):
            manager.verify_code(PHONE, gateway.last_code())
        assert _rows(db)[0].is_used is False

    def test_successful_verify_clears_other_outstanding_codes(self, db, gateway):
        from naiyaksetu.models.db_models import OneTimeCodeDB, OtpPurpose
        from naiyaksetu.utils import utcnow

        manager = _manager(db, gateway)
        manager.request_code(PHONE)
        # Older unused row, as left behind by a concurrent issuance
        db.add(OneTimeCodeDB(id="stale", phone=PHONE, code_hash="e" * 64, purpose=OtpPurpose.LOGIN,
                             expires_at=utcnow() + timedelta(minutes=5), is_used=False, attempts=0,
                             created_at=utcnow() - timedelta(minutes=1)))
        db.commit()

        manager.verify_code(PHONE, gateway.last_code())

        rows = _rows(db)
        assert len(rows) == 1
        assert rows[0].is_used is True


# =============================================================================
# TEST: CONCURRENT SUBMISSIONS
# =============================================================================

class TestConcurrentVerify:
    """Two sessions on a file-backed database, interleaved mid-verification."""

    @pytest.fixture
    def sessions(self, tmp_path):
        from sqlalchemy import create_engine
        from sqlalchemy.orm import sessionmaker

        from naiyaksetu.database import Base
        from naiyaksetu.models import db_models  # noqa: F401

        file_engine = create_engine(
            f"sqlite:///{tmp_path / 'otp.db'}", connect_args={"check_same_thread": False}
        )
        Base.metadata.create_all(bind=file_engine)
        factory = sessionmaker(bind=file_engine, autoflush=False)
        first, second = factory(), factory()
        try:
            yield first, second
        finally:
            first.close()
            second.close()
            file_engine.dispose()

    def _interleave(self, other_call):
        """Run ``other_call`` once, after this session has loaded the row."""
        from naiyaksetu.services.identity import otp_manager

        real_hash = otp_manager.hash_code
        fired = []

        def hash_then_race(*args):
            if not fired:
                fired.append(True)
                other_call()
            return real_hash(*args)

        return patch.object(otp_manager, "hash_code", side_effect=hash_then_race)

    def test_two_correct_submissions_only_one_succeeds(self, sessions, gateway):
        from naiyaksetu.errors import NotFound
        from naiyaksetu.models.db_models import OneTimeCodeDB

        first, second = sessions
        _manager(first, gateway).request_code(PHONE)
        code = gateway.last_code()
        winners = []

        with self._interleave(lambda: winners.append(_manager(second, gateway).verify_code(PHONE, code))):
            with pytest.raises(NotFound):
                _manager(first, gateway).verify_code(PHONE, code)

        assert len(winners) == 1
        assert winners[0].is_verified is True
        row = second.query(OneTimeCodeDB).one()
        assert row.is_used is True

    def test_concurrent_wrong_guesses_are_all_counted(self, sessions, gateway):
        from naiyaksetu.errors import InvalidCode
        from naiyaksetu.models.db_models import OneTimeCodeDB

        first, second = sessions
        _manager(first, gateway).request_code(PHONE)
        code = gateway.last_code()
        wrong = "000000" if code != "000000" else "111111"
        reported = []

        def other_guess():
            with pytest.raises(InvalidCode) as exc:
                _manager(second, gateway).verify_code(PHONE, wrong)
            reported.append(exc.value.remaining_attempts)

        with self._interleave(other_guess):
            with pytest.raises(InvalidCode) as exc:
                _manager(first, gateway).verify_code(PHONE, wrong)

        assert reported == [2]
        assert exc.value.remaining_attempts == 1
        second.expire_all()
        assert second.query(OneTimeCodeDB).one().attempts == 2


# =============================================================================
# TEST: SWEEP
# =============================================================================

class TestSweep:

    def test_removes_expired_and_used_rows_only(self, db, gateway):
        from naiyaksetu.models.db_models import OneTimeCodeDB, OtpPurpose
        from naiyaksetu.utils import utcnow

        now = utcnow()
        db.add_all([
            OneTimeCodeDB(id="live", phone=PHONE, code_hash="a" * 64, purpose=OtpPurpose.LOGIN,
                          expires_at=now + timedelta(minutes=5), is_used=False, attempts=0),
            OneTimeCodeDB(id="expired", phone=PHONE, code_hash="b" * 64, purpose=OtpPurpose.LOGIN,
                          expires_at=now - timedelta(minutes=1), is_used=False, attempts=0),
            OneTimeCodeDB(id="used", phone=PHONE, code_hash="c" * 64, purpose=OtpPurpose.LOGIN,
                          expires_at=now + timedelta(minutes=5), is_used=True, attempts=1),
        ])
        db.commit()

        manager = _manager(db, gateway)
        assert manager.sweep(now) == 2
        assert [r.id for r in _rows(db)] == ["live"]

        # Idempotent
        assert manager.sweep(now) == 0

    def test_scheduler_run_once_uses_its_own_session(self, db, gateway):
        from naiyaksetu.database import SessionLocal
        from naiyaksetu.models.db_models import OneTimeCodeDB, OtpPurpose
        from naiyaksetu.services.identity import OtpSweepScheduler
        from naiyaksetu.utils import utcnow

        db.add(OneTimeCodeDB(id="old", phone=PHONE, code_hash="d" * 64, purpose=OtpPurpose.LOGIN,
                             expires_at=utcnow() - timedelta(hours=1), is_used=False, attempts=0))
        db.commit()

        scheduler = OtpSweepScheduler(SessionLocal, interval_seconds=60)
        assert scheduler.run_once() == 1
        assert scheduler.last_run is not None
        assert scheduler.is_running is False
