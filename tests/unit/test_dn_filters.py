"""Tests for ldif_export/lib/dn.py and filters.py."""

import pytest

from ldif_export.lib.dn import DN
from ldif_export.lib.filters import (
    AndFilter,
    EqualityFilter,
    NotFilter,
    OrFilter,
    PresenceFilter,
    SubstringFilter,
    parse_filter,
)
from tests.helpers import make_entry


class TestDN:
    def test_parse_normalizes(self):
        assert DN.parse("UID=Alice, OU=People,dc=Example") == DN.parse("uid=alice,ou=people,dc=example")

    def test_root_dn(self):
        root = DN.parse("")
        assert root.is_root()
        assert root.is_ancestor_or_equal(DN.parse("dc=example"))

    def test_ancestor_or_equal(self):
        branch = DN.parse("ou=people,dc=example")
        assert branch.is_ancestor_or_equal(DN.parse("ou=people,dc=example"))
        assert branch.is_ancestor_or_equal(DN.parse("uid=a,ou=people,dc=example"))
        assert not branch.is_ancestor_or_equal(DN.parse("ou=groups,dc=example"))
        assert not branch.is_ancestor_or_equal(DN.parse("dc=example"))

    def test_suffix_match_is_per_rdn(self):
        assert not DN.parse("dc=ample").is_ancestor_or_equal(DN.parse("dc=example"))

    def test_escaped_comma(self):
        dn = DN.parse(r"cn=Doe\, John,dc=example")
        assert len(dn.rdns) == 2
        assert DN.parse("dc=example").is_ancestor_or_equal(dn)

    def test_multi_valued_rdn_order_insensitive(self):
        assert DN.parse("cn=a+sn=b,dc=x") == DN.parse("sn=b+cn=a,dc=x")

    def test_invalid_rdn(self):
        with pytest.raises(ValueError):
            DN.parse("novalue,dc=example")

    def test_parent(self):
        assert DN.parse("uid=a,dc=example").parent() == DN.parse("dc=example")
        with pytest.raises(ValueError):
            DN.parse("").parent()

    def test_str_keeps_original_text(self):
        assert str(DN.parse("uid=Alice,dc=Example")) == "uid=Alice,dc=Example"


class TestFilters:
    entry = make_entry(
        "uid=alice,dc=example",
        {"objectClass": ["top", "person"], "cn": ["Alice Smith"], "mail": ["alice@example.com"]},
    )

    def test_equality_case_insensitive(self):
        assert EqualityFilter("objectclass", "PERSON").matches(self.entry)
        assert not EqualityFilter("cn", "Bob").matches(self.entry)

    def test_presence(self):
        assert PresenceFilter("mail").matches(self.entry)
        assert not PresenceFilter("telephoneNumber").matches(self.entry)

    def test_substring(self):
        assert SubstringFilter("cn", "Ali*").matches(self.entry)
        assert SubstringFilter("mail", "*@example.com").matches(self.entry)
        assert not SubstringFilter("cn", "*Jones").matches(self.entry)

    def test_boolean_combinations(self):
        assert AndFilter((PresenceFilter("mail"), EqualityFilter("cn", "alice smith"))).matches(self.entry)
        assert OrFilter((EqualityFilter("cn", "x"), PresenceFilter("mail"))).matches(self.entry)
        assert NotFilter(PresenceFilter("mail")).matches(self.entry) is False


class TestParseFilter:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("(cn=Alice)", EqualityFilter("cn", "Alice")),
            ("(mail=*)", PresenceFilter("mail")),
            ("(cn=Al*ce)", SubstringFilter("cn", "Al*ce")),
            ("cn=Alice", EqualityFilter("cn", "Alice")),
            ("(!(cn=a))", NotFilter(EqualityFilter("cn", "a"))),
            (
                "(&(objectClass=person)(mail=*))",
                AndFilter((EqualityFilter("objectClass", "person"), PresenceFilter("mail"))),
            ),
        ],
    )
    def test_parses(self, text, expected):
        assert parse_filter(text) == expected

    @pytest.mark.parametrize("text", ["(cn=a", "(&)", "(cn>=a)", "(cn=a)(sn=b)", "()"])
    def test_rejects(self, text):
        with pytest.raises(ValueError):
            parse_filter(text)

    def test_str_round_trips_shape(self):
        assert str(parse_filter("(|(cn=a)(cn=b))")) == "(|(cn=a)(cn=b))"
