"""Category management.

Categories form a two level tree: root categories and their direct children. A
category cannot be deleted while it still has children or while a transaction refers
to it, locally or on the backend.

Categories that could not be written to the backend are listed as pending in the
mirror and kept over remote reads until a sync sweep pushes them. Deletes that could
not reach the backend are kept as tombstones.
"""
import logging
from typing import List, Optional

from PySide6 import QtCore

from .connectivity import connectivity
from .database import database
from .models import Category, DEFAULT_COLOR, DEFAULT_ICON, Table, from_records
from .remote import REMOTE_ERRORS, remote
from .signals import signals
from ..settings.lib import is_valid_hex_color
from ..status import status


class CategoriesAPI(QtCore.QObject):
    """Controller for adding, editing and deleting categories."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)

    @property
    def categories(self) -> List[Category]:
        return sorted(database.load_categories(), key=lambda c: c.name.lower())

    def _save(self, categories: List[Category]) -> None:
        categories = sorted(categories, key=lambda c: c.name.lower())
        database.save_categories(categories)
        signals.categoriesChanged.emit(categories)

    def merge_remote(self, remote_categories: List[Category]) -> List[Category]:
        """Keep local pending categories and deletions on top of a fresh remote read."""
        deleted = set(database.load_category_tombstones())
        pending = set(database.load_pending_categories())
        local = {c.id: c for c in database.load_categories() if c.id in pending}

        merged = [local.pop(c.id, c) for c in remote_categories if c.id not in deleted]
        merged.extend(local.values())
        return sorted(merged, key=lambda c: c.name.lower())

    def fetch_categories(self) -> List[Category]:
        """Refresh the categories from the backend, falling back to the mirror."""
        if connectivity.is_online:
            try:
                records = remote.select(Table.Categories.value, order='name')
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to fetch categories, using the local mirror: {ex}')
            else:
                self._save(self.merge_remote(from_records(Category, records)))
        return self.categories

    def get_category(self, category_id: str) -> Category:
        for c in database.load_categories():
            if c.id == category_id:
                return c
        raise status.CategoryInvalidException(f'Category "{category_id}" not found.')

    def root_categories(self) -> List[Category]:
        return [c for c in self.categories if c.is_root]

    def children_of(self, category_id: str) -> List[Category]:
        return [c for c in self.categories if c.parent_id == category_id]

    def parent_candidates(self, category_id: Optional[str] = None) -> List[Category]:
        """Root categories a category may be nested under. Excludes the category itself."""
        return [c for c in self.root_categories() if c.id != category_id]

    def _validate(
            self,
            name: str,
            color: str,
            parent_id: Optional[str],
            category_id: Optional[str] = None
    ) -> tuple:
        name = (name or '').strip()
        if not name:
            raise status.CategoryInvalidException('Category name is required.')

        color = (color or DEFAULT_COLOR).strip()
        if not is_valid_hex_color(color):
            raise status.CategoryInvalidException(f'Colour must be #RRGGBB, got "{color}".')

        parent_id = parent_id or None
        if parent_id:
            if parent_id not in {c.id for c in self.parent_candidates(category_id)}:
                raise status.CategoryInvalidException(
                    f'Parent "{parent_id}" must be an existing root category other than itself.'
                )
            if category_id and self.children_of(category_id):
                raise status.CategoryInvalidException('A category with subcategories cannot be nested.')
        return name, color, parent_id

    def _push(self, category: Category) -> None:
        """Upsert a category, or queue it for the next sync sweep."""
        pushed = False
        if connectivity.is_online:
            try:
                remote.upsert(Table.Categories.value, category.to_record())
                pushed = True
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to save category {category.id} remotely: {ex}')
                signals.notification.emit('Failed to save category to database. It will sync when back online.')

        pending = database.load_pending_categories()
        if pushed:
            if category.id in pending:
                database.save_pending_categories([_id for _id in pending if _id != category.id])
        else:
            database.save_pending_categories(pending + [category.id])

    def _transactions_using(self, category_id: str) -> List[str]:
        """Ids of the transactions that refer to a category, locally or on the backend."""
        tombstones = set(database.load_tombstones())
        ids = {t.id for t in database.load_transactions() if t.category_id == category_id}

        if connectivity.is_online:
            try:
                records = remote.select(
                    Table.Transactions.value, columns='id', match={'category_id': category_id}
                )
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to check the backend for transactions in {category_id}: {ex}')
            else:
                ids.update(str(r['id']) for r in records if r.get('id') is not None)

        return sorted(ids - tombstones)

    def add_category(
            self,
            name: str,
            color: str = DEFAULT_COLOR,
            icon: str = DEFAULT_ICON,
            parent_id: Optional[str] = None
    ) -> Category:
        """Create a category.

        Raises:
            status.CategoryInvalidException: If the input fails validation.
        """
        name, color, parent_id = self._validate(name, color, parent_id)
        category = Category(name=name, color=color, icon=icon or DEFAULT_ICON, parent_id=parent_id)

        self._save(database.load_categories() + [category])
        self._push(category)
        signals.notification.emit('Category created successfully')
        return category

    def update_category(
            self,
            category_id: str,
            name: str,
            color: str = DEFAULT_COLOR,
            icon: str = DEFAULT_ICON,
            parent_id: Optional[str] = None
    ) -> Category:
        """Edit a category.

        Raises:
            status.CategoryInvalidException: If the id is unknown or the input fails validation.
        """
        self.get_category(category_id)
        name, color, parent_id = self._validate(name, color, parent_id, category_id=category_id)
        category = Category(
            id=category_id, name=name, color=color, icon=icon or DEFAULT_ICON, parent_id=parent_id
        )

        self._save([category if c.id == category_id else c for c in database.load_categories()])
        self._push(category)
        signals.notification.emit('Category updated successfully')
        return category

    def delete_category(self, category_id: str) -> None:
        """Delete a category that has no children and no transactions.

        Raises:
            status.CategoryInvalidException: If the id is unknown.
            status.CategoryInUseException: If the category still has children or transactions.
        """
        category = self.get_category(category_id)

        children = self.children_of(category_id)
        if children:
            raise status.CategoryInUseException(
                f'"{category.name}" has {len(children)} subcategories. Delete or move them first.'
            )

        used = self._transactions_using(category_id)
        if used:
            raise status.CategoryInUseException(
                f'"{category.name}" is used by {len(used)} transaction(s).'
            )

        self._save([c for c in database.load_categories() if c.id != category_id])

        pending = database.load_pending_categories()
        if category_id in pending:
            database.save_pending_categories([_id for _id in pending if _id != category_id])

        deleted = False
        if connectivity.is_online:
            try:
                remote.delete(Table.Categories.value, {'id': category_id})
                deleted = True
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to delete category {category_id} remotely: {ex}')
                signals.notification.emit('Failed to delete category from database. It will sync when back online.')

        if not deleted:
            database.save_category_tombstones(database.load_category_tombstones() + [category_id])

        signals.notification.emit('Category deleted successfully')


categories = CategoriesAPI()
