"""Tests para las transformaciones de campos."""

from __future__ import annotations

import re

import pytest

from kbsync.mapping.transforms import (
    apply_multiple_transforms,
    apply_transform,
    apply_transforms_to_fields,
    url_safe,
)


@pytest.mark.parametrize("value", ["", None, 0, False])
def test_falsy_values_pass_through(value):
    """Un valor falsy se devuelve tal cual, sin importar la transformación."""
    assert apply_transform(value, "urlSafe") is value
    assert apply_transform(value, {"type": "replace", "pattern": "x"}) is value


def test_url_safe_builds_slug():
    assert url_safe("How to Reset  Password!") == "how-to-reset-password"


def test_url_safe_collapses_and_trims_separator():
    assert url_safe("  --Hello -- World--  ") == "hello-world"


@pytest.mark.parametrize(
    "value",
    ["Ñandú Über café", "C++ & Java: 2024 edition", "  a  b  ", "___", "Ya_existe_un_slug"],
)
def test_url_safe_output_alphabet(value: str):
    """El slug solo contiene [a-z0-9] y el separador, sin repetirlo ni en los bordes."""
    slug = url_safe(value, "_")
    assert re.fullmatch(r"[a-z0-9_]*", slug)
    assert "__" not in slug
    assert not slug.startswith("_")
    assert not slug.endswith("_")


def test_url_safe_empty_separator_joins_words():
    assert url_safe("Hello World 42", "") == "helloworld42"


def test_string_spec_with_parameter():
    assert apply_transform("Hello World", "urlSafe:_") == "hello_world"
    assert apply_transform("a  b\tc", "replaceSpaces") == "a-b-c"
    assert apply_transform("a  b\tc", "replaceSpaces:+") == "a+b+c"


def test_string_spec_with_empty_parameter():
    """``nombre:`` usa un parámetro vacío, no el valor por defecto."""
    assert apply_transform("a b c", "replaceSpaces:") == "abc"


def test_case_and_space_transforms():
    assert apply_transform("Hello World", "lowercase") == "hello world"
    assert apply_transform("Hello World", "uppercase") == "HELLO WORLD"
    assert apply_transform(" Hello \n World ", "removeSpaces") == "HelloWorld"


def test_object_spec_with_parameter():
    assert apply_transform("Hello World", {"type": "urlSafe", "separator": "_"}) == "hello_world"
    assert apply_transform("Hello World", {"type": "replaceSpaces", "with": "."}) == "Hello.World"


def test_unknown_transform_returns_value():
    assert apply_transform("Hello", "titleCase") == "Hello"
    assert apply_transform("Hello", {"type": "titleCase"}) == "Hello"
    assert apply_transform("Hello", {"pattern": "l"}) == "Hello"


def test_replace_is_object_only():
    """``replace`` en forma compacta no tiene de dónde sacar el patrón."""
    assert apply_transform("Hello", "replace") == "Hello"


def test_non_string_value_is_coerced():
    assert apply_transform(42, "uppercase") == "42"


# ---------- replace ----------

def test_replace_global_by_default():
    spec = {"type": "replace", "pattern": r"\s+", "replaceWith": "_"}
    assert apply_transform("a b  c", spec) == "a_b_c"


def test_replace_without_global_flag_replaces_first():
    spec = {"type": "replace", "pattern": "foo", "replaceWith": "bar", "flags": "i"}
    assert apply_transform("FOO foo", spec) == "bar foo"


def test_replace_case_insensitive_global():
    spec = {"type": "replace", "pattern": "foo", "replaceWith": "bar", "flags": "gi"}
    assert apply_transform("FOO foo Foo", spec) == "bar bar bar"


def test_replace_supports_group_references():
    spec = {"type": "replace", "pattern": r"(\w+)@(\w+)", "replaceWith": "$2 at $1"}
    assert apply_transform("user@example", spec) == "example at user"


def test_replace_missing_replacement_deletes():
    spec = {"type": "replace", "pattern": "[0-9]"}
    assert apply_transform("a1b2c3", spec) == "abc"


@pytest.mark.parametrize(
    "spec",
    [
        {"type": "replace", "pattern": "("},
        {"type": "replace", "pattern": "a", "flags": "gq"},
        {"type": "replace"},
    ],
)
def test_replace_invalid_config_returns_value(spec):
    assert apply_transform("banana", spec) == "banana"


# ---------- Cadenas y campos ----------

def test_chain_is_left_fold():
    chain = ["lowercase", {"type": "replace", "pattern": "world", "replaceWith": "there"}, "urlSafe:_"]
    value = "Hello World Again"

    expected = value
    for spec in chain:
        expected = apply_transform(expected, spec)

    assert apply_multiple_transforms(value, chain) == expected == "hello_there_again"


def test_chain_not_a_list_returns_value():
    assert apply_multiple_transforms("Hello", "lowercase") == "Hello"


def test_apply_to_fields_skips_unmapped_and_copies():
    fields = {"Title": "Hello World", "UrlName": "Hello World"}
    result = apply_transforms_to_fields(fields, {"UrlName": "urlSafe", "Missing__c": "lowercase"})

    assert result == {"Title": "Hello World", "UrlName": "hello-world"}
    assert "Missing__c" not in result
    assert fields["UrlName"] == "Hello World"


def test_apply_to_fields_without_transforms():
    fields = {"Title": "Hello"}
    assert apply_transforms_to_fields(fields, None) == fields
    assert apply_transforms_to_fields(fields, {}) == fields
