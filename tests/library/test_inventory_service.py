"""
Test cases for InventoryService catalog operations.
"""

import json

import pytest

from storage.models import BookStatus
from utilities.errors import ConflictingState, DuplicateCatalogEntry, NotFound, Rule, ValidationFailed


@pytest.fixture
def inventory(library):
    return library.inventory


class TestAddBook:
    """Test cases for adding catalog entries."""

    def test_add_trims_and_marks_available(self, inventory):
        book = inventory.add_book("  Dune ", " Frank Herbert ", " Sci-Fi ")

        assert book.id
        assert book.title == "Dune"
        assert book.author == "Frank Herbert"
        assert book.genre == "Sci-Fi"
        assert book.status == BookStatus.AVAILABLE
        assert inventory.find_book(book.id) == book

    def test_duplicate_title_author(self, inventory, dune):
        """Same title and author, different case and spacing, is a duplicate."""
        with pytest.raises(DuplicateCatalogEntry) as exc_info:
            inventory.add_book("dune", "  FRANK HERBERT")

        assert exc_info.value.rule == Rule.DUPLICATE_TITLE_AUTHOR
        assert len(inventory.get_all_books()) == 1

    def test_same_title_other_author_allowed(self, inventory, dune):
        inventory.add_book("Dune", "Someone Else")
        assert len(inventory.get_all_books()) == 2

    def test_validation_lists_every_rule(self, inventory):
        with pytest.raises(ValidationFailed) as exc_info:
            inventory.add_book("", "a" * 51, "g" * 31)

        assert exc_info.value.rules == [Rule.TITLE_REQUIRED, Rule.AUTHOR_TOO_LONG, Rule.GENRE_TOO_LONG]
        assert inventory.get_all_books() == []


class TestUpdateBook:
    """Test cases for editing catalog entries."""

    def test_update_keeps_id_and_status(self, library, inventory, member, dune):
        library.rentals.rent_book(member.id, dune.id)

        updated = inventory.update_book(dune.id, "Dune (1965)", "Frank Herbert", None)

        assert updated.id == dune.id
        assert updated.genre is None
        assert inventory.get_book(dune.id).status == BookStatus.RENTED
        assert inventory.get_book(dune.id).title == "Dune (1965)"

    def test_update_to_own_identity_allowed(self, inventory, dune):
        updated = inventory.update_book(dune.id, "DUNE", "frank herbert", "Classic")
        assert updated.genre == "Classic"

    def test_update_collision(self, inventory, dune):
        emma = inventory.add_book("Emma", "Jane Austen")

        with pytest.raises(DuplicateCatalogEntry):
            inventory.update_book(emma.id, "Dune", "Frank Herbert")

    def test_update_missing(self, inventory):
        with pytest.raises(NotFound) as exc_info:
            inventory.update_book("missing", "Title", "Author")
        assert exc_info.value.rule == Rule.BOOK_NOT_FOUND


class TestDeleteBook:
    """Test cases for removing catalog entries."""

    def test_delete_available(self, inventory, dune):
        inventory.delete_book(dune.id)
        assert inventory.find_book(dune.id) is None

    def test_delete_missing(self, inventory):
        with pytest.raises(NotFound):
            inventory.delete_book("missing")

    def test_delete_rented_refused_until_returned(self, library, inventory, member, dune):
        rental = library.rentals.rent_book(member.id, dune.id)

        with pytest.raises(ConflictingState) as exc_info:
            inventory.delete_book(dune.id)
        assert exc_info.value.rule == Rule.BOOK_RENTED

        library.rentals.return_book(rental.id, member.id)
        inventory.delete_book(dune.id)
        assert inventory.find_book(dune.id) is None


class TestSearchAndBrowse:
    """Test cases for listing, search and paging."""

    @pytest.fixture
    def shelf(self, inventory):
        for i in range(25):
            inventory.add_book(f"Volume {i:02d}", "Serial Author")
        inventory.add_book("Emma", "Jane Austen")
        return inventory

    def test_available_books(self, library, inventory, member, dune):
        emma = inventory.add_book("Emma", "Jane Austen")
        library.rentals.rent_book(member.id, dune.id)

        assert [book.id for book in inventory.get_available_books()] == [emma.id]

    def test_corrupted_catalog_reads_as_empty(self, library, inventory):
        library.catalog.store.path.write_bytes(b"\x80\x81garbage")

        assert inventory.get_all_books() == []

        emma = inventory.add_book("Emma", "Jane Austen")
        assert [book.id for book in inventory.get_all_books()] == [emma.id]

    def test_search(self, shelf):
        assert [book.title for book in shelf.search_by_title("EMMA")] == ["Emma"]
        assert len(shelf.search_by_author("serial")) == 25

    def test_browse_pages_are_sorted_by_id(self, shelf):
        first = shelf.browse_catalog(page=0, size=10)
        last = shelf.browse_catalog(page=2, size=10)

        assert first.total == 26
        assert first.total_pages == 3
        assert first.has_next and not first.has_previous
        assert len(last.content) == 6
        assert last.has_previous and not last.has_next

        ids = [book.id for book in first.content]
        assert ids == sorted(ids)

    def test_title_filter_takes_precedence(self, shelf):
        page = shelf.browse_catalog(title="emma", author="serial")
        assert [book.title for book in page.content] == ["Emma"]

    def test_author_filter(self, shelf):
        page = shelf.browse_catalog(author="austen")
        assert page.total == 1

    def test_page_past_end_is_empty(self, shelf):
        page = shelf.browse_catalog(page=5, size=10)
        assert page.content == []
        assert page.total == 26

    def test_invalid_paging(self, shelf):
        with pytest.raises(ValidationFailed) as exc_info:
            shelf.browse_catalog(page=-1, size=101)
        assert exc_info.value.rules == [Rule.PAGE_NEGATIVE, Rule.PAGE_SIZE_TOO_LARGE]


class TestImportExport:
    """Test cases for catalog import and export."""

    def test_export_uses_stored_layout(self, inventory, dune):
        exported = json.loads(inventory.export_catalog())

        assert exported == [{
            "id": dune.id,
            "title": "Dune",
            "author": "Frank Herbert",
            "genre": "Sci-Fi",
            "status": "AVAILABLE",
        }]

    def test_import_summary(self, inventory, dune):
        summary = inventory.import_catalog([
            {"title": "Emma", "author": "Jane Austen", "genre": "Classic"},
            {"title": "dune", "author": "frank herbert"},
            {"author": "No Title"},
            {"title": "No Author", "author": "  "},
            {"title": "t" * 101, "author": "Too Long"},
            "not an object",
            {"title": "Neuromancer", "author": "William Gibson"},
        ])

        assert summary.added == 2
        assert summary.skipped == 1
        assert len(summary.errors) == 4
        assert summary.errors[0].startswith("Row 3:")
        assert summary.errors[1].startswith("Row 4:")
        assert summary.errors[2].startswith("Row 5:")
        assert summary.errors[3].startswith("Row 6:")
        assert len(inventory.get_all_books()) == 3

    def test_import_never_modifies_existing(self, library, inventory, member, dune):
        library.rentals.rent_book(member.id, dune.id)

        inventory.import_catalog([{"title": "Dune", "author": "Frank Herbert", "status": "AVAILABLE"}])

        assert inventory.get_book(dune.id).status == BookStatus.RENTED

    def test_export_then_import_is_all_skipped(self, inventory, dune):
        inventory.add_book("Emma", "Jane Austen")

        summary = inventory.import_catalog(json.loads(inventory.export_catalog()))

        assert summary.added == 0
        assert summary.skipped == 2
