import pytest

from db.database import db, ensure_user, transaction
from services import ledger
from services.balance import Currency
from services.errors import InsufficientFunds, UnknownUser

from conftest import USER


@pytest.fixture
def user(db_path):
    ensure_user(USER, db_path)
    return USER


def test_credit_and_debit_update_cached_balance(con, user):
    with transaction(con):
        ledger.credit(con, user, Currency.DIAMONDS, 5000, "test_fund")
        entry = ledger.debit(con, user, "diamonds", 1200, "gacha_pull", "batch-1")

    assert entry.delta == -1200
    assert entry.balance_after == 3800
    assert entry.reference == "batch-1"
    assert ledger.get_balance(con, user, Currency.DIAMONDS) == 3800
    assert ledger.get_balance(con, user, Currency.TICKETS) == 0


def test_balance_equals_sum_of_entries(con, user):
    with transaction(con):
        ledger.credit(con, user, Currency.DIAMONDS, 3000, "starter_grant")
        ledger.credit(con, user, Currency.TICKETS, 10, "starter_grant")
        ledger.debit(con, user, Currency.DIAMONDS, 3000, "gacha_pull")
        ledger.credit(con, user, Currency.DIAMONDS, 450, "admin_grant")
        ledger.debit(con, user, Currency.TICKETS, 10, "gacha_pull")

    for currency in Currency:
        assert ledger.get_balance(con, user, currency) == ledger.replay_balance(con, user, currency)
    assert ledger.get_balance(con, user, Currency.DIAMONDS) == 450


def test_debit_never_goes_negative(con, user):
    with transaction(con):
        ledger.credit(con, user, Currency.DIAMONDS, 2999, "test_fund")

    with pytest.raises(InsufficientFunds) as info:
        with transaction(con):
            ledger.debit(con, user, Currency.DIAMONDS, 3000, "gacha_pull")

    assert info.value.required == 3000
    assert info.value.current == 2999
    assert "2999" in info.value.user_message
    assert ledger.get_balance(con, user, Currency.DIAMONDS) == 2999
    assert len(ledger.history(con, user)) == 1


def test_failed_transaction_rolls_back_entries(con, user):
    with pytest.raises(RuntimeError):
        with transaction(con):
            ledger.credit(con, user, Currency.TICKETS, 10, "test_fund")
            raise RuntimeError("boom")

    assert ledger.get_balance(con, user, Currency.TICKETS) == 0
    assert ledger.history(con, user) == []


@pytest.mark.parametrize("amount", [0, -5])
def test_amounts_must_be_positive(con, user, amount):
    with pytest.raises(ValueError):
        ledger.credit(con, user, Currency.DIAMONDS, amount, "test_fund")


def test_amounts_must_be_integers(con, user):
    with pytest.raises(TypeError):
        ledger.credit(con, user, Currency.DIAMONDS, 1.5, "test_fund")


def test_unknown_currency_is_rejected(con, user):
    with pytest.raises(ValueError):
        ledger.credit(con, user, "GOLD", 10, "test_fund")


def test_unknown_user(con):
    with pytest.raises(UnknownUser):
        ledger.credit(con, 999, Currency.DIAMONDS, 10, "test_fund")
    with pytest.raises(UnknownUser):
        ledger.debit(con, 999, Currency.DIAMONDS, 10, "gacha_pull")


def test_history_is_newest_first_and_filterable(con, user):
    with transaction(con):
        ledger.credit(con, user, Currency.DIAMONDS, 100, "first")
        ledger.credit(con, user, Currency.TICKETS, 1, "second")
        ledger.credit(con, user, Currency.DIAMONDS, 200, "third")

    assert [e.reason for e in ledger.history(con, user)] == ["third", "second", "first"]
    assert [e.reason for e in ledger.history(con, user, limit=1)] == ["third"]
    tickets = ledger.history(con, user, currency=Currency.TICKETS)
    assert [(e.currency, e.delta) for e in tickets] == [(Currency.TICKETS, 1)]


def test_entries_survive_reconnect(db_path, user):
    con = db(db_path)
    with transaction(con):
        ledger.credit(con, user, Currency.DIAMONDS, 300, "test_fund")
    con.close()

    con = db(db_path)
    assert ledger.replay_balance(con, user, Currency.DIAMONDS) == 300
    con.close()
