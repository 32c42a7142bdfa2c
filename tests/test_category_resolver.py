from sap_storefront_connector.category_resolver import CategoryResolver
from sap_storefront_connector.models import HierarchyEntry
from sap_storefront_connector.storefront import InMemoryCategories


def entry(code, name, parent=None, status="O"):
    return HierarchyEntry(Code=code, Name=name, U_Recipient=parent, U_Status=status)


def make_resolver(categories, entries, sync_logger):
    return CategoryResolver(categories, entries, slug_prefix="sap-", sync_logger=sync_logger)


def test_child_creates_missing_parent_first(sync_logger):
    categories = InMemoryCategories()
    resolver = make_resolver(categories, [entry("A", "Dobozok"), entry("A1", "Kartondobozok", "A")], sync_logger)

    child_id = resolver.resolve("A1")

    parent_id = categories.find_by_slug("sap-A")
    assert parent_id is not None
    assert categories.get_category(child_id)["parent_id"] == parent_id
    assert categories.get_category(child_id)["slug"] == "sap-A1"
    assert categories.get_category(parent_id)["parent_id"] == 0


def test_resolving_twice_creates_nothing_new(sync_logger):
    categories = InMemoryCategories()
    resolver = make_resolver(categories, [entry("A", "Dobozok"), entry("A1", "Kartondobozok", "A")], sync_logger)

    first = resolver.resolve("A1")
    second = resolver.resolve("A1")

    assert first == second
    assert len(categories.categories) == 2


def test_unknown_code_returns_none(sync_logger, log_sink):
    resolver = make_resolver(InMemoryCategories(), [entry("A", "Dobozok")], sync_logger)

    assert resolver.resolve("ZZ") is None
    assert any(e.type == "warning" and "ZZ" in e.message for e in log_sink.entries)


def test_inactive_code_returns_none(sync_logger):
    categories = InMemoryCategories()
    resolver = make_resolver(categories, [entry("A", "Régi", status="C")], sync_logger)

    assert resolver.resolve("A") is None
    assert categories.categories == {}


def test_cycle_is_detected_and_logged(sync_logger, log_sink):
    categories = InMemoryCategories()
    resolver = make_resolver(categories, [entry("A", "Első", "B"), entry("B", "Második", "A")], sync_logger)

    assert resolver.resolve("A") is None
    assert categories.categories == {}
    assert any(e.type == "error" and "Ciclo" in e.message for e in log_sink.entries)


def test_self_parent_is_a_cycle(sync_logger):
    resolver = make_resolver(InMemoryCategories(), [entry("A", "Önmaga", "A")], sync_logger)

    assert resolver.resolve("A") is None


def test_missing_parent_creates_root_category(sync_logger):
    categories = InMemoryCategories()
    resolver = make_resolver(categories, [entry("A1", "Árva", "X")], sync_logger)

    category_id = resolver.resolve("A1")

    assert categories.get_category(category_id)["parent_id"] == 0


def test_name_conflict_reuses_existing_category(sync_logger):
    categories = InMemoryCategories()
    existing = categories.create("Dobozok", "dobozok", 0)
    resolver = make_resolver(categories, [entry("A", "Dobozok")], sync_logger)

    assert resolver.resolve("A") == existing
    assert len(categories.categories) == 1
