"""
Tests for catalog lookup and learning
"""
import pytest

from groceries.models.category import Category, DEFAULT_ICON, DEFAULT_SORT_ORDER, catalog_key
from groceries.models.product import Product, ProductAlias
from groceries.schemas import ParsedGroceryItem
from groceries.services.normalization import (
    add_alias,
    get_or_create_category,
    get_or_create_product,
    get_plural_variants,
    learn_from_parse,
    list_aliases,
    lookup_product,
    parse_lines,
    remove_alias,
    seed_default_categories,
)


@pytest.mark.unit
class TestPluralVariants:

    def test_plural_term(self):
        assert get_plural_variants("tomates") == ["tomates", "tomate", "tomat"]

    def test_singular_term(self):
        assert get_plural_variants("pomme") == ["pomme", "pommes"]

    def test_short_terms(self):
        assert get_plural_variants("os") == ["os", "oss"]
        assert get_plural_variants("es") == ["es", "ess"]
        assert get_plural_variants("ses") == ["ses", "se"]


@pytest.mark.unit
class TestLookup:

    def test_singular_and_plural_resolve_same_product(self, test_db, catalog):
        assert lookup_product(test_db, "tomate") == catalog["tomates"]
        assert lookup_product(test_db, "tomates") == catalog["tomates"]

    def test_case_insensitive(self, test_db, catalog):
        assert lookup_product(test_db, "  LAIT ") == catalog["lait"]

    def test_inner_whitespace_is_folded(self, test_db, catalog):
        pain_complet = Product(name="Pain  complet", category=catalog["pain"].category)
        test_db.add(pain_complet)
        test_db.commit()

        assert pain_complet.name_key == "pain complet"
        assert lookup_product(test_db, "pain   complet") == pain_complet
        assert lookup_product(test_db, "Pain\tComplet") == pain_complet
        assert catalog_key("  Pain \t complet ") == "pain complet"

    def test_alias_resolves_like_name(self, test_db, catalog):
        assert lookup_product(test_db, "Tomato") == catalog["tomates"]
        assert lookup_product(test_db, "tomatoes") == catalog["tomates"]

    def test_name_before_alias_for_same_variant(self, test_db, catalog):
        # "laits" is an alias of Pain, "lait" the name of Lait
        test_db.add(ProductAlias(product_id=catalog["pain"].id, alias="laits"))
        test_db.commit()

        assert lookup_product(test_db, "laits") == catalog["pain"]
        assert lookup_product(test_db, "lait") == catalog["lait"]

    def test_unknown_term(self, test_db, catalog):
        assert lookup_product(test_db, "pain compplet") is None
        assert lookup_product(test_db, "   ") is None

    def test_parse_lines_partitions_in_order(self, test_db, catalog):
        found, not_found = parse_lines(
            test_db, ["2 pommes", "Pain compplet", "", "tomate 4", "3 bananes"]
        )

        assert [(f.product.name, f.quantity) for f in found] == [("Pommes", 2), ("Tomates", 4)]
        assert [f.original_input for f in found] == ["2 pommes", "tomate 4"]
        assert [(n.term, n.quantity) for n in not_found] == [
            ("Pain compplet", 1),
            ("bananes", 3),
        ]


@pytest.mark.unit
class TestCatalogWrites:

    def test_get_or_create_category_is_case_insensitive(self, seeded_db):
        category, created = get_or_create_category(seeded_db, "boulangerie")

        assert created is False
        assert category.name == "Boulangerie"

    def test_new_category_gets_defaults(self, seeded_db):
        category, created = get_or_create_category(seeded_db, "  Animaux  ")

        assert created is True
        assert category.name == "Animaux"
        assert category.icon == DEFAULT_ICON
        assert category.sort_order == DEFAULT_SORT_ORDER

    def test_category_name_is_sanitized(self, seeded_db):
        with pytest.raises(ValueError):
            get_or_create_category(seeded_db, "\x00\x07 ")

    def test_get_or_create_product(self, seeded_db, catalog):
        product, created = get_or_create_product(seeded_db, "POMMES", None)
        assert created is False
        assert product == catalog["pommes"]

        product, created = get_or_create_product(seeded_db, "Kiwi", catalog["pommes"].category_id)
        assert created is True
        assert product.name_key == "kiwi"

    def test_alias_rules(self, test_db, catalog):
        tomates = catalog["tomates"]

        assert add_alias(test_db, tomates, "Tomatoes") is True
        # same as product name
        assert add_alias(test_db, tomates, "TOMATES") is False
        # globally unique
        assert add_alias(test_db, catalog["pommes"], "tomato") is False
        assert add_alias(test_db, tomates, "") is False
        test_db.commit()

        assert list_aliases(test_db, tomates) == ["tomato", "tomatoes"]

    def test_remove_alias(self, test_db, catalog):
        assert remove_alias(test_db, catalog["tomates"], "Tomato") is True
        assert remove_alias(test_db, catalog["tomates"], "tomato") is False
        test_db.commit()

        assert lookup_product(test_db, "tomato") is None

    def test_seed_is_idempotent(self, seeded_db):
        count = seeded_db.query(Category).count()

        assert seed_default_categories(seeded_db) == 0
        assert seeded_db.query(Category).count() == count


@pytest.mark.unit
class TestLearnFromParse:

    def test_learns_product_and_alias(self, test_db, catalog):
        parsed = ParsedGroceryItem(article="Pain complet", quantity=1, category="Boulangerie")

        product, _ = learn_from_parse(test_db, parsed, "Pain compplet")
        test_db.commit()

        assert product.name == "Pain complet"
        assert product.category.name == "Boulangerie"
        assert list_aliases(test_db, product) == ["pain compplet"]
        assert lookup_product(test_db, "pain compplet") == product

    def test_no_alias_when_term_equals_article(self, test_db, catalog):
        parsed = ParsedGroceryItem(article="Kiwi", category="Fruits et légumes")

        product, _ = learn_from_parse(test_db, parsed, "kiwi")

        assert list_aliases(test_db, product) == []

    def test_parser_category_wins(self, test_db, catalog):
        parsed = ParsedGroceryItem(article="lait", category="Boissons")

        product, _ = learn_from_parse(test_db, parsed, "lait")
        test_db.commit()

        assert product == catalog["lait"]
        assert product.category.name == "Boissons"

    def test_reports_new_category(self, test_db, catalog):
        parsed = ParsedGroceryItem(article="Croquettes", category="Unknown")

        product, category_created = learn_from_parse(test_db, parsed, "croquetes")

        assert product.category.name == "Unknown"
        assert category_created is True

    def test_existing_category_not_reported(self, test_db, catalog):
        parsed = ParsedGroceryItem(article="Croissant", category="boulangerie")

        _, category_created = learn_from_parse(test_db, parsed, "croisant")

        assert category_created is False

    def test_alias_conflict_does_not_fail(self, test_db, catalog):
        # "tomato" already belongs to Tomates
        parsed = ParsedGroceryItem(article="Tomates cerises", category="Fruits et légumes")

        product, _ = learn_from_parse(test_db, parsed, "tomato")
        test_db.commit()

        assert product.name == "Tomates cerises"
        assert list_aliases(test_db, product) == []
        assert lookup_product(test_db, "tomato") == catalog["tomates"]
