import pytest

import admins
from conftest import NOW, add_loan
from errors import InvalidInput, NotFound, RuleViolation
from models import AdminIn


def test_login_with_matching_credentials(state):
    sid, admin = admins.authenticate(state, "admin", "password", NOW)
    assert admin.username == "admin"
    assert state.sessions.username(sid) == "admin"
    assert state.notices.active()[-1].message == "Selamat datang kembali, admin!"


@pytest.mark.parametrize("username, password", [
    ("admin", "Password"),
    ("admin", ""),
    ("nobody", "password"),
])
def test_login_mismatch(state, username, password):
    assert admins.authenticate(state, username, password, NOW) is None
    assert len(state.sessions) == 0
    assert state.notices.active()[-1].type == "error"


def test_login_warns_about_overdue_loans(state, store):
    add_loan(store, 1, days_ago=9)
    add_loan(store, 3, days_ago=12)
    state.refresh()
    admins.authenticate(state, "admin", "password", NOW)
    messages = [n.message for n in state.notices.active()]
    assert "2 Barang terlambat dikembalikan!" in messages


def test_logout_requires_confirmation(state):
    sid, _ = admins.authenticate(state, "admin", "password", NOW)
    with pytest.raises(InvalidInput):
        admins.logout(state, sid, confirm=False)
    assert state.sessions.username(sid) == "admin"

    admins.logout(state, sid, confirm=True)
    assert state.sessions.username(sid) is None


def test_add_admin(state):
    new_id, notice = admins.add_admin(
        state, AdminIn(username="  gudang ", password="s3cret", confirm_password="s3cret"))
    assert notice.type == "success"
    assert state.snapshot.admin(new_id).username == "gudang"
    assert admins.authenticate(state, "gudang", "s3cret", NOW) is not None


def test_add_admin_rejects_duplicate_username(state, store):
    with pytest.raises(RuleViolation):
        admins.add_admin(state, AdminIn(username="operator", password="x", confirm_password="x"))
    assert len(store.admins.rows) == 2


@pytest.mark.parametrize("body", [
    AdminIn(username="", password="x", confirm_password="x"),
    AdminIn(username="baru", password=None),
    AdminIn(username="baru", password="x", confirm_password="y"),
])
def test_add_admin_validation(state, store, body):
    with pytest.raises(InvalidInput):
        admins.add_admin(state, body)
    assert store.all_calls() == []


def test_update_admin_keeps_password_when_blank(state, store):
    admins.update_admin(state, 2, AdminIn(username="operator2"))
    assert store.admins.row(2)["password"] == "rahasia"
    assert state.snapshot.admin(2).username == "operator2"


def test_update_admin_changes_password(state):
    admins.update_admin(state, 2, AdminIn(username="operator", password="baru", confirm_password="baru"))
    assert admins.authenticate(state, "operator", "baru", NOW) is not None
    assert admins.authenticate(state, "operator", "rahasia", NOW) is None


def test_rename_moves_sessions(state):
    sid, _ = admins.authenticate(state, "operator", "rahasia", NOW)
    admins.update_admin(state, 2, AdminIn(username="kepala"))
    assert state.sessions.username(sid) == "kepala"


def test_update_unknown_admin(state):
    with pytest.raises(NotFound):
        admins.update_admin(state, 99, AdminIn(username="x"))


def test_cannot_delete_yourself(state, store):
    with pytest.raises(RuleViolation) as exc:
        admins.delete_admin(state, 1, current_username="admin")
    assert exc.value.message == "Anda tidak dapat menghapus diri sendiri."
    assert len(store.admins.rows) == 2


def test_cannot_delete_the_last_admin(state, store):
    admins.delete_admin(state, 2, current_username="admin")
    assert [a.username for a in state.snapshot.admins] == ["admin"]

    with pytest.raises(RuleViolation) as exc:
        admins.delete_admin(state, 1, current_username="someone-else")
    assert exc.value.message == "Minimal harus ada satu admin."
    assert len(store.admins.rows) == 1


def test_deleting_an_admin_closes_their_sessions(state):
    sid, _ = admins.authenticate(state, "operator", "rahasia", NOW)
    own, _ = admins.authenticate(state, "admin", "password", NOW)
    admins.delete_admin(state, 2, current_username="admin")
    assert state.sessions.username(sid) is None
    assert state.sessions.username(own) == "admin"
