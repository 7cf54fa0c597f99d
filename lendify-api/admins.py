import logging
from datetime import datetime
from typing import Optional, Tuple

from errors import InvalidInput, NotFound, RuleViolation, StoreError
from loans import overdue_loans
from models import Admin, AdminIn
from notices import Notice
from security import hash_password, verify_password

logger = logging.getLogger(__name__)


def authenticate(state, username: str, password: str, now: Optional[datetime] = None) -> Optional[Tuple[str, Admin]]:
    """Open a session for a matching admin; None when the credentials do not match."""
    admin = state.snapshot.admin_by_username(username)
    if admin is None or not verify_password(password, admin.password):
        logger.info("login failed for %r", username)
        state.notices.post("Login gagal.", "error")
        return None

    sid = state.sessions.open(admin.username)
    logger.info("admin %r logged in", admin.username)
    state.notices.post(f"Selamat datang kembali, {admin.username}!", "success")

    late = overdue_loans(state.snapshot.active_loans, now)
    if late:
        state.notices.post(f"{len(late)} Barang terlambat dikembalikan!", "warning")
    return sid, admin


def logout(state, sid: str, confirm: bool) -> Notice:
    if not confirm:
        raise InvalidInput("Logout harus dikonfirmasi.")
    username = state.sessions.username(sid)
    state.sessions.close(sid)
    logger.info("admin %r logged out", username)
    return state.notices.post("Logout berhasil.", "info")


def _check_password(body: AdminIn, required: bool) -> None:
    if required and not body.password:
        raise InvalidInput("Password wajib diisi untuk admin baru.")
    if body.password and body.password != body.confirm_password:
        raise InvalidInput("Konfirmasi password tidak cocok.")


def add_admin(state, body: AdminIn) -> Tuple[int, Notice]:
    username = (body.username or "").strip()
    if not username:
        raise InvalidInput("Username harus diisi.")
    _check_password(body, required=True)

    with state.mutation() as snapshot:
        if snapshot.admin_by_username(username) is not None:
            raise RuleViolation("Username sudah digunakan.")
        try:
            new_id = state.store.admins.insert({
                "username": username,
                "password": hash_password(body.password),
            })[0]
        except StoreError as e:
            raise e.relabel("Gagal tambah admin.") from e
        notice = state.notices.post("Admin baru ditambahkan.", "success")
    return new_id, notice


def update_admin(state, admin_id: int, body: AdminIn) -> Notice:
    username = (body.username or "").strip()
    if not username:
        raise InvalidInput("Username harus diisi.")
    _check_password(body, required=False)

    with state.mutation() as snapshot:
        admin = snapshot.admin(admin_id)
        if admin is None:
            raise NotFound("Admin tidak ditemukan.")
        fields = {"username": username}
        if body.password:
            fields["password"] = hash_password(body.password)
        try:
            state.store.admins.update(admin.id, fields)
        except StoreError as e:
            raise e.relabel("Gagal update admin.") from e
        if username != admin.username:
            # sessions of the renamed admin follow the new username
            state.sessions.rename(admin.username, username)
        notice = state.notices.post("Data admin diperbarui.", "success")
    return notice


def delete_admin(state, admin_id: int, current_username: str) -> Notice:
    with state.mutation() as snapshot:
        admin = snapshot.admin(admin_id)
        if admin is None:
            raise NotFound("Admin tidak ditemukan.")
        if admin.username == current_username:
            raise RuleViolation("Anda tidak dapat menghapus diri sendiri.")
        if len(snapshot.admins) <= 1:
            raise RuleViolation("Minimal harus ada satu admin.")
        try:
            state.store.admins.delete(admin.id)
        except StoreError as e:
            raise e.relabel("Gagal hapus admin.") from e
        closed = state.sessions.close_user(admin.username)
        logger.info("admin %r deleted, %d session(s) closed", admin.username, closed)
        notice = state.notices.post("Admin dihapus.", "info")
    return notice
