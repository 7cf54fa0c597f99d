import logging
from typing import Callable, Dict, Any, Tuple

from pydantic import BaseModel

from errors import InvalidInput, NotFound, StoreError
from models import CategoryIn, ItemIn, ItemPatch, UnitIn, UserIn
from notices import Notice

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "https://via.placeholder.com/150"


def _required(value, message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise InvalidInput(message)
    return value


def _restore(state, collection, record: BaseModel, message: str) -> Callable[[], None]:
    """Undo action for a delete: put the record back (it gets a new id)."""
    fields = record.model_dump(exclude={"id"})

    def undo():
        with state.mutation():
            try:
                collection.insert(fields)
            except StoreError as e:
                raise e.relabel("Gagal membatalkan penghapusan.") from e
            state.notices.post(message, "success")

    return undo

# --------------------------------------------------------------------------
# Categories
# --------------------------------------------------------------------------
def add_category(state, body: CategoryIn) -> Tuple[int, Notice]:
    name = _required(body.name, "Nama kategori harus diisi.")
    with state.mutation():
        try:
            new_id = state.store.categories.insert({"name": name})[0]
        except StoreError as e:
            raise e.relabel("Gagal tambah kategori.") from e
        notice = state.notices.post("Kategori baru ditambahkan.", "success")
    return new_id, notice


def delete_category(state, category_id: int) -> Notice:
    with state.mutation() as snapshot:
        if snapshot.category(category_id) is None:
            raise NotFound("Kategori tidak ditemukan.")
        try:
            state.store.categories.delete(category_id)
        except StoreError as e:
            raise e.relabel("Gagal hapus kategori.") from e
        notice = state.notices.post("Kategori dihapus.", "info")
    return notice

# --------------------------------------------------------------------------
# Items
# --------------------------------------------------------------------------
def _item_fields(snapshot, name, description, image_url, purchase_date, category_id, quantity) -> Dict[str, Any]:
    name = _required(name, "Nama barang harus diisi.")
    description = _required(description, "Deskripsi barang harus diisi.")
    if purchase_date is None:
        raise InvalidInput("Tanggal pembelian harus diisi.")
    if quantity is None or quantity < 0:
        raise InvalidInput("Jumlah barang tidak boleh negatif.")
    if snapshot.category(category_id) is None:
        raise InvalidInput("Kategori harus dipilih.")
    return {
        "name": name,
        "description": description,
        "image_url": image_url or DEFAULT_IMAGE_URL,
        "purchase_date": purchase_date,
        "category_id": category_id,
        "quantity": quantity,
    }


def add_item(state, body: ItemIn) -> Tuple[int, Notice]:
    fields = _item_fields(
        state.snapshot, body.name, body.description, body.image_url,
        body.purchase_date, body.category_id, body.quantity,
    )
    with state.mutation():
        try:
            new_id = state.store.items.insert(fields)[0]
        except StoreError as e:
            raise e.relabel("Gagal menambah barang.") from e
        notice = state.notices.post("Barang berhasil ditambahkan!", "success")
    return new_id, notice


def update_item(state, item_id: int, patch: ItemPatch) -> Notice:
    with state.mutation() as snapshot:
        item = snapshot.item(item_id)
        if item is None:
            raise NotFound("Barang tidak ditemukan.")
        fields = _item_fields(
            snapshot,
            patch.name if patch.name is not None else item.name,
            patch.description if patch.description is not None else item.description,
            patch.image_url if patch.image_url is not None else item.image_url,
            patch.purchase_date if patch.purchase_date is not None else item.purchase_date,
            patch.category_id if patch.category_id is not None else item.category_id,
            patch.quantity if patch.quantity is not None else item.quantity,
        )
        try:
            state.store.items.update(item.id, fields)
        except StoreError as e:
            raise e.relabel("Gagal update barang.") from e
        notice = state.notices.post("Data barang diperbarui.", "success")
    return notice


def delete_item(state, item_id: int) -> Notice:
    with state.mutation() as snapshot:
        item = snapshot.item(item_id)
        if item is None:
            raise NotFound("Barang tidak ditemukan.")
        try:
            state.store.items.delete(item.id)
        except StoreError as e:
            raise e.relabel("Gagal menghapus barang.") from e
        logger.info("item %s (%s) deleted", item.id, item.name)
        notice = state.notices.post(
            "Barang dihapus.", "info",
            undo=_restore(state, state.store.items, item, f"Barang {item.name} dipulihkan."),
        )
    return notice

# --------------------------------------------------------------------------
# Units
# --------------------------------------------------------------------------
def add_unit(state, body: UnitIn) -> Tuple[int, Notice]:
    name = _required(body.name, "Nama unit harus diisi.")
    with state.mutation():
        try:
            new_id = state.store.units.insert({"name": name})[0]
        except StoreError as e:
            raise e.relabel("Gagal tambah unit.") from e
        notice = state.notices.post("Unit baru ditambahkan.", "success")
    return new_id, notice


def delete_unit(state, unit_id: int) -> Notice:
    with state.mutation() as snapshot:
        if snapshot.unit(unit_id) is None:
            raise NotFound("Unit tidak ditemukan.")
        try:
            state.store.units.delete(unit_id)
        except StoreError as e:
            raise e.relabel("Gagal hapus unit.") from e
        notice = state.notices.post("Unit dihapus.", "info")
    return notice

# --------------------------------------------------------------------------
# Users (borrowers)
# --------------------------------------------------------------------------
def add_user(state, body: UserIn) -> Tuple[int, Notice]:
    name = _required(body.name, "Nama pengguna harus diisi.")
    snapshot = state.snapshot
    unit_id = body.unit_id
    if unit_id is None:
        unit_id = snapshot.units[0].id if snapshot.units else None
    elif snapshot.unit(unit_id) is None:
        raise InvalidInput("Unit tidak ditemukan.")
    with state.mutation():
        try:
            new_id = state.store.users.insert({"name": name, "unit_id": unit_id})[0]
        except StoreError as e:
            raise e.relabel("Gagal tambah pengguna.") from e
        notice = state.notices.post("Pengguna baru ditambahkan.", "success")
    return new_id, notice


def delete_user(state, user_id: int) -> Notice:
    with state.mutation() as snapshot:
        user = snapshot.user(user_id)
        if user is None:
            raise NotFound("Pengguna tidak ditemukan.")
        try:
            state.store.users.delete(user.id)
        except StoreError as e:
            raise e.relabel("Gagal hapus pengguna.") from e
        logger.info("user %s (%s) deleted", user.id, user.name)
        notice = state.notices.post(
            "Pengguna dihapus.", "info",
            undo=_restore(state, state.store.users, user, f"Pengguna {user.name} dipulihkan."),
        )
    return notice
