"""Tests for dot-path resolution and ${...} interpolation."""
import pytest
from pydantic import BaseModel

from models.schemas import Contact
from utils.fields import (
    interpolate_string, resolve_field, resolve_params, resolve_value,
    stringify_value, token_path,
)


class TestResolveField:
    def test_top_level_key(self):
        ctx = {"loyalty": 7}
        assert resolve_field(ctx, "loyalty") == 7

    def test_nested_dicts(self):
        ctx = {"loyalty": {"OPERADOR": 17, "meta": {"source": "crm"}}}
        assert resolve_field(ctx, "loyalty.OPERADOR") == 17
        assert resolve_field(ctx, "loyalty.meta.source") == "crm"

    def test_missing_intermediate_returns_none(self):
        assert resolve_field({"a": {}}, "a.b.c") is None
        assert resolve_field({}, "missing.path") is None

    def test_null_intermediate_returns_none(self):
        assert resolve_field({"loyalty": None}, "loyalty.OPERADOR") is None

    def test_list_index(self):
        ctx = {"rows": [{"id": 1}, {"id": 2}]}
        assert resolve_field(ctx, "rows.1.id") == 2
        assert resolve_field(ctx, "rows.5.id") is None

    def test_model_field_name_and_alias(self):
        contact = Contact(id=1, customerId=99, isOnlyAdmin=True)
        ctx = {"contact": contact}
        assert resolve_field(ctx, "contact.customer_id") == 99
        assert resolve_field(ctx, "contact.customerId") == 99
        assert resolve_field(ctx, "contact.isOnlyAdmin") is True

    def test_model_extra_fields(self):
        contact = Contact(id=1, avatarUrl="http://x/a.png")
        assert resolve_field({"contact": contact}, "contact.avatarUrl") == "http://x/a.png"

    def test_plain_attributes(self):
        class Holder:
            value = "attr"
        assert resolve_field({"h": Holder()}, "h.value") == "attr"
        assert resolve_field({"h": Holder()}, "h.nope") is None

    def test_execution_context(self, make_context, contact):
        ctx = make_context(loyalty={"OPERADOR": 5})
        assert resolve_field(ctx, "contact.customerId") == contact.customer_id
        assert resolve_field(ctx, "loyalty.OPERADOR") == 5
        assert resolve_field(ctx, "sectorId") == 3
        assert resolve_field(ctx, "instance") == "vollo"

    def test_set_then_resolve(self, make_context):
        ctx = make_context()
        ctx["result"] = [1, 2, 3]
        assert resolve_field(ctx, "result") == [1, 2, 3]


class TestResolveParams:
    def test_mixed_literal_and_tokens(self, make_context):
        ctx = make_context()
        assert resolve_params(ctx, ["${contact.customerId}", 5, "plain"]) == [1234, 5, "plain"]

    def test_missing_token_resolves_to_none(self, make_context):
        assert resolve_params(make_context(), ["${nothing.here}"]) == [None]

    def test_embedded_token_is_not_resolved(self, make_context):
        assert resolve_params(make_context(), ["id=${contact.id}"]) == ["id=${contact.id}"]

    def test_resolve_value_keeps_non_strings(self, make_context):
        assert resolve_value(make_context(), -1) == -1
        assert resolve_value(make_context(), None) is None


class TestTokenPath:
    def test_exact_token(self):
        assert token_path("${a.b}") == "a.b"

    def test_not_a_token(self):
        assert token_path("a.b") is None
        assert token_path("x ${a.b}") is None
        assert token_path(12) is None


class TestInterpolateString:
    def test_no_tokens_unchanged(self, make_context):
        assert interpolate_string(make_context(), "no tokens here") == "no tokens here"

    def test_missing_token_left_intact(self, make_context):
        assert interpolate_string(make_context(), "${missing.path}") == "${missing.path}"

    def test_replaces_every_token(self, make_context):
        ctx = make_context(loyalty={"OPERADOR": 17})
        text = interpolate_string(ctx, "Hi ${contact.name}, operator ${loyalty.OPERADOR}")
        assert text == "Hi Maria Souza, operator 17"

    def test_partial_resolution(self, make_context):
        text = interpolate_string(make_context(), "${contact.name} / ${x.y}")
        assert text == "Maria Souza / ${x.y}"

    def test_booleans_and_collections(self, make_context):
        ctx = make_context(flag=True, tags=["a", "b"])
        assert interpolate_string(ctx, "${flag}") == "true"
        assert interpolate_string(ctx, "${tags}") == '["a", "b"]'

    def test_empty_template(self, make_context):
        assert interpolate_string(make_context(), "") == ""


class TestStringifyValue:
    def test_values(self):
        assert stringify_value(None) == ""
        assert stringify_value(False) == "false"
        assert stringify_value(3) == "3"
        assert stringify_value({"a": 1}) == '{"a": 1}'

    def test_model(self):
        class M(BaseModel):
            x: int
        assert stringify_value(M(x=1)) == '{"x":1}'
